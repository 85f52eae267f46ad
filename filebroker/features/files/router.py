"""文件生命周期路由模块

提供上传凭证、下载凭证、文件列表和软删除四个接口。
每个处理器的顺序：解析身份 -> 校验输入 -> 调用存储/签发器 -> 记录审计日志 -> 返回响应
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from loguru import logger

from filebroker.core.config import Settings
from filebroker.core.dependencies import (
    get_app_settings,
    get_blob_store,
    get_credential_issuer,
    get_file_store,
)
from filebroker.features.audit.models import AuditAction
from filebroker.features.audit.recorder import AuditRecorder, get_audit_recorder
from filebroker.features.transfer.blob_store import BlobStore
from filebroker.features.transfer.service import TransferCredentialIssuer
from filebroker.shared.exceptions import (
    AlreadyDeletedError,
    BaseAPIException,
    InternalServerError,
    MissingFieldError,
    ValidationError,
)
from filebroker.shared.pagination import resolve_page_size
from filebroker.shared.schemas import APIResponse

from .models import (
    DeleteFileRequest,
    DeleteFileResponse,
    DownloadUrlRequest,
    DownloadUrlResponse,
    FileListResponse,
    FileRecordRead,
    FileStatus,
    UploadUrlRequest,
    UploadUrlResponse,
)
from .store import FileMetadataStore


router = APIRouter()


@router.post(
    "/presigned/upload",
    response_model=APIResponse[UploadUrlResponse],
    summary="获取预签名上传URL",
    description="创建 pending 状态的文件记录，并返回可直接上传到对象存储的限时URL"
)
async def issue_upload_url(
    request: UploadUrlRequest,
    store: FileMetadataStore = Depends(get_file_store),
    issuer: TransferCredentialIssuer = Depends(get_credential_issuer),
    recorder: AuditRecorder = Depends(get_audit_recorder),
) -> APIResponse[UploadUrlResponse]:
    """获取预签名上传URL

    Raises:
        MissingFieldError: 缺少 file_name、content_type 或 file_size
        PayloadTooLargeError: 文件过大
        UnsupportedMediaTypeError: 文件类型不允许
    """
    try:
        missing = [
            name for name, value in (
                ("file_name", request.file_name),
                ("content_type", request.content_type),
                ("file_size", request.file_size),
            )
            if not value
        ]
        if missing:
            raise MissingFieldError(missing)
        if request.file_size < 0:
            raise ValidationError("文件大小必须为正数")

        logger.info(f"请求预签名上传URL: {request.file_name} ({request.file_size} bytes)")

        credential = await issuer.issue_upload_credential(
            store,
            recorder,
            request.file_name,
            request.content_type,
            request.file_size,
        )

        return APIResponse(
            success=True,
            data=UploadUrlResponse(
                upload_url=credential.url,
                file_id=credential.file_id,
                storage_key=credential.storage_key,
                expires_in=credential.expires_in,
            ),
            message="预签名上传URL生成成功",
            code=200
        )

    except BaseAPIException:
        raise
    except Exception as e:
        logger.exception(f"生成预签名上传URL失败: {e}")
        raise InternalServerError()


@router.post(
    "/presigned/download",
    response_model=APIResponse[DownloadUrlResponse],
    summary="获取预签名下载URL",
    description="为未删除的文件生成限时下载URL"
)
async def issue_download_url(
    request: DownloadUrlRequest,
    store: FileMetadataStore = Depends(get_file_store),
    issuer: TransferCredentialIssuer = Depends(get_credential_issuer),
    recorder: AuditRecorder = Depends(get_audit_recorder),
) -> APIResponse[DownloadUrlResponse]:
    """获取预签名下载URL

    Raises:
        MissingFieldError: 缺少 file_id
        NotFoundError: 文件不存在或已删除
    """
    try:
        if not request.file_id:
            raise MissingFieldError(["file_id"])

        credential = await issuer.issue_download_credential(store, recorder, request.file_id)

        return APIResponse(
            success=True,
            data=DownloadUrlResponse(
                download_url=credential.url,
                file_name=credential.file_name,
                content_type=credential.content_type,
                file_size=credential.file_size,
                expires_in=credential.expires_in,
            ),
            message="下载URL生成成功",
            code=200
        )

    except BaseAPIException:
        raise
    except Exception as e:
        logger.exception(f"生成下载URL失败: {e}")
        raise InternalServerError()


@router.get(
    "",
    response_model=APIResponse[FileListResponse],
    summary="列出文件",
    description="按创建时间倒序列出当前用户未删除的文件，支持游标分页"
)
async def list_files(
    limit: Optional[str] = Query(default=None, description="每页数量，最大100"),
    cursor: Optional[str] = Query(default=None, description="上一页返回的 next_cursor"),
    store: FileMetadataStore = Depends(get_file_store),
    settings: Settings = Depends(get_app_settings),
) -> APIResponse[FileListResponse]:
    try:
        page_size = resolve_page_size(limit, settings.files_page_size, settings.max_page_size)
        records, next_cursor = await store.list(page_size, cursor)

        files = [FileRecordRead.model_validate(record, from_attributes=True) for record in records]

        return APIResponse(
            success=True,
            data=FileListResponse(files=files, count=len(files), next_cursor=next_cursor),
            message=f"获取文件列表成功，共{len(files)}个文件",
            code=200
        )

    except BaseAPIException:
        raise
    except Exception as e:
        logger.exception(f"获取文件列表失败: {e}")
        raise InternalServerError()


@router.post(
    "/delete",
    response_model=APIResponse[DeleteFileResponse],
    summary="删除文件",
    description="软删除文件记录，并尽力删除对象存储中的文件"
)
async def delete_file(
    request: DeleteFileRequest,
    store: FileMetadataStore = Depends(get_file_store),
    blob_store: BlobStore = Depends(get_blob_store),
    recorder: AuditRecorder = Depends(get_audit_recorder),
) -> APIResponse[DeleteFileResponse]:
    """删除文件

    对象删除失败不会阻止元数据的软删除，接口仍然返回成功

    Raises:
        MissingFieldError: 缺少 file_id
        NotFoundError: 文件不存在
        AlreadyDeletedError: 文件已被删除
    """
    try:
        if not request.file_id:
            raise MissingFieldError(["file_id"])

        record = await store.get(request.file_id)
        if record.status == FileStatus.DELETED.value:
            raise AlreadyDeletedError()

        try:
            blob_deleted = await blob_store.delete(record.storage_key)
        except Exception as e:
            logger.error(f"删除对象时出错 {record.storage_key}: {e}")
            blob_deleted = False

        if not blob_deleted:
            logger.warning(f"对象未能删除，留待清理: {record.storage_key}")

        record = await store.soft_delete(request.file_id)

        recorder.record(record.file_id, AuditAction.DELETE, {
            "fileName": record.file_name,
            "storageKey": record.storage_key,
            "hardDelete": request.hard_delete,
            "blobDeleted": blob_deleted,
        })

        return APIResponse(
            success=True,
            data=DeleteFileResponse(
                message="文件删除成功",
                file_id=record.file_id,
                file_name=record.file_name,
            ),
            message="文件删除成功",
            code=200
        )

    except BaseAPIException:
        raise
    except Exception as e:
        logger.exception(f"删除文件失败: {e}")
        raise InternalServerError()
