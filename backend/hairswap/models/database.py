"""
持久化文档模型

整个存储是一份 JSON 文档，包含五个顶层集合。
读取时缺失或类型不对的集合一律按空列表处理，兼容旧版本或不完整的文档。
"""
from typing import Any

from pydantic import field_validator
from sqlmodel import Field, SQLModel

from .points import PointsLedgerEntry
from .recharge import RechargeOrder
from .user import AuthSession, EmailCode, User


class Database(SQLModel):
    users: list[User] = Field(default_factory=list)
    sessions: list[AuthSession] = Field(default_factory=list)
    email_codes: list[EmailCode] = Field(default_factory=list)
    points_ledger: list[PointsLedgerEntry] = Field(default_factory=list)
    recharge_orders: list[RechargeOrder] = Field(default_factory=list)

    @field_validator(
        "users", "sessions", "email_codes", "points_ledger", "recharge_orders", mode="before"
    )
    @classmethod
    def _default_collection(cls, v: Any) -> Any:
        return v if isinstance(v, list) else []

    def find_user(self, user_id: int) -> User | None:
        return next((u for u in self.users if u.id == user_id), None)

    def find_user_by_email(self, email: str) -> User | None:
        return next((u for u in self.users if u.email == email), None)

    def find_order(self, order_id: str) -> RechargeOrder | None:
        return next((o for o in self.recharge_orders if o.id == order_id), None)
