"""游标分页工具

游标对客户端是不透明的：内部是最后一条记录位置的紧凑JSON，
再做URL安全的base64编码
"""

import base64
import binascii
import json
from typing import Any, Optional

from .exceptions import InvalidCursorError


def encode_cursor(position: dict[str, Any]) -> str:
    """将扫描位置编码为游标

    Args:
        position: 最后一条记录的排序键

    Returns:
        str: 不透明的游标字符串
    """
    raw = json.dumps(position, separators=(",", ":"), sort_keys=True)
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")


def decode_cursor(token: str) -> dict[str, Any]:
    """解码游标

    Args:
        token: encode_cursor 生成的游标

    Returns:
        dict: 扫描位置

    Raises:
        InvalidCursorError: 游标格式错误时
    """
    try:
        padded = token + "=" * (-len(token) % 4)
        position = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (binascii.Error, UnicodeError, ValueError):
        raise InvalidCursorError()

    if not isinstance(position, dict):
        raise InvalidCursorError()
    return position


def resolve_page_size(raw: Optional[Any], default: int, maximum: int) -> int:
    """解析每页数量

    非数字或小于1时使用默认值，超过上限时截断为上限
    """
    try:
        size = int(raw)
    except (TypeError, ValueError):
        return default
    if size < 1:
        return default
    return min(size, maximum)
