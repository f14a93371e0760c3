"""
文档模型定义模块

本模块使用 SQLModel（非表模型）定义持久化 JSON 文档中的各类记录。

模型按功能拆分：
- user.py: 用户、登录会话、邮箱验证码
- points.py: 积分流水
- recharge.py: 充值订单
- database.py: 整份文档（五个顶层集合）
"""
from sqlmodel import SQLModel

from .base import is_expired, utc_now
from .database import Database
from .points import (
    REASON_GENERATE,
    REASON_GENERATE_REFUND,
    PointsLedgerEntry,
    recharge_reason,
)
from .recharge import RechargeOrder
from .user import AuthSession, EmailCode, User

__all__ = [
    "SQLModel",
    "is_expired",
    "utc_now",
    "Database",
    "User",
    "AuthSession",
    "EmailCode",
    "PointsLedgerEntry",
    "REASON_GENERATE",
    "REASON_GENERATE_REFUND",
    "recharge_reason",
    "RechargeOrder",
]
