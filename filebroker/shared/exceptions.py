"""自定义异常类定义

定义应用中使用的各种自定义异常
提供统一的错误处理机制
"""

from typing import Any, Iterable, Optional

from fastapi import HTTPException


class BaseAPIException(HTTPException):
    """API异常基类

    所有自定义API异常都应该继承这个类。
    extra 中的内容会作为响应的 data 字段返回给客户端
    """

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_type: str = "APIError",
        extra: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_type = error_type
        self.extra = extra


class UnauthenticatedError(BaseAPIException):
    """无法解析调用者身份"""

    def __init__(self, detail: str = "未授权访问：无法识别用户身份"):
        super().__init__(
            status_code=401,
            detail=detail,
            error_type="Unauthenticated",
            headers={"WWW-Authenticate": "Bearer"}
        )


class MissingFieldError(BaseAPIException):
    """缺少必填字段"""

    def __init__(self, fields: Iterable[str]):
        self.fields = list(fields)
        super().__init__(
            status_code=400,
            detail=f"缺少必填字段: {', '.join(self.fields)}",
            error_type="MissingField",
            extra={"missing_fields": self.fields}
        )


class InvalidActionError(BaseAPIException):
    """审计动作不在允许的枚举内"""

    def __init__(self, action: str, allowed_actions: Iterable[str]):
        allowed = list(allowed_actions)
        super().__init__(
            status_code=400,
            detail=f"无效的审计动作 '{action}'，必须是以下之一: {', '.join(allowed)}",
            error_type="InvalidAction",
            extra={"allowed_actions": allowed}
        )


class InvalidCursorError(BaseAPIException):
    """分页游标无法解析"""

    def __init__(self, detail: str = "无效的分页游标"):
        super().__init__(
            status_code=400,
            detail=detail,
            error_type="InvalidCursor"
        )


class ValidationError(BaseAPIException):
    """数据验证异常

    当请求数据验证失败时抛出
    """

    def __init__(self, detail: str = "数据验证失败"):
        super().__init__(
            status_code=422,
            detail=detail,
            error_type="ValidationError"
        )


class PayloadTooLargeError(BaseAPIException):
    """文件大小超过上限"""

    def __init__(self, max_size: int):
        super().__init__(
            status_code=413,
            detail=f"文件大小超过允许的最大值 ({max_size // 1024 // 1024} MB)",
            error_type="PayloadTooLarge",
            extra={"max_file_size": max_size}
        )


class UnsupportedMediaTypeError(BaseAPIException):
    """文件类型不在白名单内

    响应中附带允许的类型列表，便于客户端提示
    """

    def __init__(self, content_type: str, allowed_types: Iterable[str]):
        allowed = list(allowed_types)
        super().__init__(
            status_code=415,
            detail=f"不允许的文件类型 '{content_type}'",
            error_type="UnsupportedMediaType",
            extra={"allowed_types": allowed}
        )


class NotFoundError(BaseAPIException):
    """资源不存在异常

    当请求的资源不存在时抛出
    """

    def __init__(self, detail: str = "资源不存在"):
        super().__init__(
            status_code=404,
            detail=detail,
            error_type="NotFound"
        )


class ConflictError(BaseAPIException):
    """资源冲突异常

    当资源状态不允许请求的变更时抛出
    """

    def __init__(self, detail: str = "资源冲突", error_type: str = "Conflict"):
        super().__init__(
            status_code=409,
            detail=detail,
            error_type=error_type
        )


class AlreadyDeletedError(ConflictError):
    """文件已被删除"""

    def __init__(self, detail: str = "文件已被删除"):
        super().__init__(detail=detail, error_type="AlreadyDeleted")


class InternalServerError(BaseAPIException):
    """服务器内部错误异常

    消息固定为通用文本，不向调用方暴露内部细节
    """

    def __init__(self, detail: str = "服务器内部错误"):
        super().__init__(
            status_code=500,
            detail=detail,
            error_type="Internal"
        )
