"""
基础模型模块

文档中的所有时间都以带时区的 UTC datetime 保存，序列化为 ISO 8601 字符串。
"""
from datetime import datetime, timezone

from sqlmodel import SQLModel


def utc_now() -> datetime:
    """当前 UTC 时间"""
    return datetime.now(timezone.utc)


def is_expired(moment: datetime, *, now: datetime | None = None) -> bool:
    """
    判断某个截止时间是否已过

    截止时间等于当前时间也视为已过期。
    """
    return moment <= (now or utc_now())


__all__ = ["SQLModel", "is_expired", "utc_now"]
