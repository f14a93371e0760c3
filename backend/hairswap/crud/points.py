"""积分 CRUD 操作"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from hairswap.api.errors import InvalidArgument, user_not_found
from hairswap.core.db import JsonStore
from hairswap.models import Database, PointsLedgerEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DebitResult:
    """扣减结果：ok=False 时余额未变"""
    ok: bool
    balance: int


def apply_delta(db: Database, *, user_id: int, delta: int, reason: str) -> int:
    """
    在一次 mutate 内变更余额并追加流水，返回新余额

    只能在 store.mutate 的回调中调用：余额与流水必须同一次写入。
    """
    user = db.find_user(user_id)
    if user is None:
        raise user_not_found()
    new_balance = user.points_balance + delta
    if new_balance < 0:
        # 调用方应在此之前检查余额
        raise InvalidArgument(message="Balance cannot become negative")
    user.points_balance = new_balance
    db.points_ledger.append(PointsLedgerEntry(user_id=user_id, delta=delta, reason=reason))
    return new_balance


def _require_positive(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidArgument(message="Points amount must be a positive integer")


async def get_balance(*, store: JsonStore, user_id: int) -> int:
    """查询余额，用户不存在时为 0"""
    db = await store.read()
    user = db.find_user(user_id)
    return user.points_balance if user else 0


async def credit_points(*, store: JsonStore, user_id: int, amount: int, reason: str) -> int:
    """入账积分，返回新余额"""
    _require_positive(amount)

    def _credit(db: Database) -> int:
        return apply_delta(db, user_id=user_id, delta=amount, reason=reason)

    balance = await store.mutate(_credit)
    logger.info("Credited %s points to user %s (%s), balance=%s", amount, user_id, reason, balance)
    return balance


async def debit_points(*, store: JsonStore, user_id: int, amount: int, reason: str) -> DebitResult:
    """
    扣减积分

    余额不足时返回 ok=False 且不修改任何状态；检查与扣减在同一次 mutate 内完成，
    并发扣减不会超扣。
    """
    _require_positive(amount)

    def _debit(db: Database) -> DebitResult:
        user = db.find_user(user_id)
        if user is None:
            raise user_not_found()
        if user.points_balance < amount:
            return DebitResult(ok=False, balance=user.points_balance)
        balance = apply_delta(db, user_id=user_id, delta=-amount, reason=reason)
        return DebitResult(ok=True, balance=balance)

    return await store.mutate(_debit)


async def list_ledger(
    *, store: JsonStore, user_id: int, offset: int = 0, limit: int | None = None
) -> tuple[list[PointsLedgerEntry], int]:
    """
    查询用户积分流水（按时间倒序）

    Returns:
        (当前页记录, 总数)
    """
    db = await store.read()
    rows = [e for e in reversed(db.points_ledger) if e.user_id == user_id]
    rows.sort(key=lambda e: e.created_at, reverse=True)
    page = rows[offset:] if limit is None else rows[offset : offset + limit]
    return page, len(rows)
