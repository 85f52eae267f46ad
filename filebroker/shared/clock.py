"""时间工具

数据库中统一保存不带时区的UTC时间
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """当前UTC时间（naive）"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def iso_timestamp(moment: datetime) -> str:
    """格式化为毫秒精度、Z结尾的ISO-8601字符串

    该格式按字典序比较即按时间先后排序
    """
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment.isoformat(timespec="milliseconds") + "Z"
