"""调用者身份解析模块

按固定优先级从请求中提取可信的所有者标识：
1. 上游身份层附加的已验证 claims（优先 sub，其次 cognito:username）
2. 上游身份层附加的原始 principal 标识
3. 直接解码 Bearer 令牌的 payload（不做签名校验），作为最后手段
"""

import binascii
import json
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, Sequence

from fastapi import Depends, Request
from jose.utils import base64url_decode
from loguru import logger

from filebroker.shared.exceptions import UnauthenticatedError


SUBJECT_CLAIM = "sub"
USERNAME_CLAIM = "cognito:username"


def _non_blank(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value
    return None


def _identity_from_claims(claims: dict[str, Any]) -> Optional[str]:
    return _non_blank(claims.get(SUBJECT_CLAIM)) or _non_blank(claims.get(USERNAME_CLAIM))


@dataclass
class CallerContext:
    """单个请求中与调用者相关的原始材料"""

    claims: Optional[dict[str, Any]] = None
    principal_id: Optional[str] = None
    authorization: Optional[str] = None
    source_ip: Optional[str] = None
    user_agent: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_request(cls, request: Request) -> "CallerContext":
        """从ASGI请求构造调用者上下文

        上游授权结构有两种来源：Lambda适配器放入 scope 的 aws.event，
        或其他网关直接放入 scope 的 authorizer
        """
        event = request.scope.get("aws.event") or {}
        request_context = event.get("requestContext") or {}
        authorizer = request_context.get("authorizer") or request.scope.get("authorizer") or {}
        identity = request_context.get("identity") or {}

        claims = None
        if isinstance(authorizer, dict):
            nested_jwt = authorizer.get("jwt")
            nested_claims = nested_jwt.get("claims") if isinstance(nested_jwt, dict) else None
            for candidate in (authorizer.get("claims"), nested_claims, authorizer):
                if isinstance(candidate, dict) and _identity_from_claims(candidate):
                    claims = candidate
                    break

        principal_id = None
        if isinstance(authorizer, dict):
            principal_id = _non_blank(authorizer.get("principalId"))
        principal_id = principal_id or _non_blank(identity.get("cognitoIdentityId"))

        source_ip = _non_blank(identity.get("sourceIp"))
        if not source_ip:
            forwarded = request.headers.get("x-forwarded-for")
            if forwarded:
                source_ip = forwarded.split(",")[0].strip()
            elif request.client:
                source_ip = request.client.host

        return cls(
            claims=claims,
            principal_id=principal_id,
            authorization=request.headers.get("authorization"),
            source_ip=source_ip,
            user_agent=request.headers.get("user-agent"),
        )

    def request_metadata(self) -> dict[str, str]:
        """审计日志中合并的请求元数据"""
        return {
            "ipAddress": self.source_ip or "unknown",
            "userAgent": self.user_agent or "unknown",
        }


class ClaimsSource(Protocol):
    """身份提取策略"""

    name: str

    def try_extract(self, context: CallerContext) -> Optional[str]:
        ...


class VerifiedClaimsSource:
    """上游已验证的 claims"""

    name = "verified_claims"

    def try_extract(self, context: CallerContext) -> Optional[str]:
        if not context.claims:
            return None
        return _identity_from_claims(context.claims)


class PrincipalSource:
    """上游附加的原始 principal 标识"""

    name = "principal"

    def try_extract(self, context: CallerContext) -> Optional[str]:
        return _non_blank(context.principal_id)


class BearerTokenSource:
    """直接解码 Bearer 令牌 payload

    仅用于上游不做预验证的部署；不校验签名，也不解析header段。
    payload 段兼容 base64url 和带填充的标准 base64
    """

    name = "bearer_token"
    prefix = "Bearer "

    def try_extract(self, context: CallerContext) -> Optional[str]:
        header = context.authorization
        if not header or not header.startswith(self.prefix):
            return None

        segments = header[len(self.prefix):].strip().split(".")
        if len(segments) != 3:
            return None

        try:
            claims = json.loads(base64url_decode(segments[1].encode("ascii")))
        except (binascii.Error, UnicodeError, ValueError) as e:
            logger.warning(f"Bearer令牌payload解码失败: {e}")
            return None

        if not isinstance(claims, dict):
            return None
        return _identity_from_claims(claims)


DEFAULT_SOURCES: tuple[ClaimsSource, ...] = (
    VerifiedClaimsSource(),
    PrincipalSource(),
    BearerTokenSource(),
)


class IdentityResolver:
    """按顺序尝试各个策略，第一个命中者获胜"""

    def __init__(self, sources: Sequence[ClaimsSource] = DEFAULT_SOURCES) -> None:
        self.sources = tuple(sources)

    def resolve(self, context: CallerContext) -> str:
        """解析所有者标识

        Raises:
            UnauthenticatedError: 所有策略都无法得到身份时
        """
        for source in self.sources:
            owner_id = source.try_extract(context)
            if owner_id:
                logger.debug(f"身份已通过 {source.name} 解析")
                return owner_id

        logger.warning("无法解析调用者身份")
        raise UnauthenticatedError()


def get_caller_context(request: Request) -> CallerContext:
    return CallerContext.from_request(request)


def get_current_owner(
    request: Request,
    context: CallerContext = Depends(get_caller_context),
) -> str:
    """FastAPI依赖：解析当前请求的所有者标识"""
    resolver: IdentityResolver = request.app.state.identity_resolver
    return resolver.resolve(context)
