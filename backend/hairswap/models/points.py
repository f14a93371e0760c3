"""
积分流水模型

流水只追加、不修改、不删除，用于审计和排查问题；
余额的读路径是 User.points_balance，二者在同一次存储变更中一起写入。
"""
from datetime import datetime

from sqlmodel import Field, SQLModel

from hairswap.core.snowflake import generate_id

from .base import utc_now

# 流水原因标签
REASON_GENERATE = "generate"
REASON_GENERATE_REFUND = "generate_refund"
RECHARGE_REASON_PREFIX = "recharge_order_"


def recharge_reason(order_id: str) -> str:
    """充值入账的原因标签，带上订单号便于追溯"""
    return f"{RECHARGE_REASON_PREFIX}{order_id}"


class PointsLedgerEntry(SQLModel):
    """
    积分流水记录

    字段说明：
    - id: Snowflake ID
    - user_id: 用户 ID
    - delta: 变动值（正数入账，负数扣除）
    - reason: 原因标签（generate / generate_refund / recharge_order_<id>）
    - created_at: 记录时间
    """
    id: int = Field(default_factory=generate_id)
    user_id: int
    delta: int
    reason: str = Field(max_length=128)
    created_at: datetime = Field(default_factory=utc_now)
