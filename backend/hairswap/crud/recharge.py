"""
充值订单 CRUD 操作（订单状态机）

状态只允许 pending -> approved 或 pending -> rejected，终态不可再变。
settle() 的“读状态 -> 分支 -> 入账 -> 写回”整体在一次 mutate 内完成，
所以网关回调与管理员审核同时到达时，也只会有一次结算生效。
"""
from __future__ import annotations

import logging
import secrets
import time
from decimal import Decimal, InvalidOperation
from typing import Any

from hairswap.api.errors import InvalidAmount, InvalidArgument, user_not_found
from hairswap.core.db import JsonStore
from hairswap.crud.points import apply_delta
from hairswap.enums import PaymentChannel, PaymentProvider, RechargeOrderStatus, SettleAction
from hairswap.models import Database, RechargeOrder, recharge_reason, utc_now

logger = logging.getLogger(__name__)

EXCHANGE_RATE = 10  # 1 货币单位 = 10 积分
ALLOWED_AMOUNTS = (1, 5, 10, 50)
_ALLOWED_DECIMALS = frozenset(Decimal(a) for a in ALLOWED_AMOUNTS)


def parse_amount(value: Any) -> int:
    """
    校验并规范化充值金额

    接受整数、整数值的浮点数/Decimal 以及数字字符串（"5"、"5.0"），
    结果必须在 ALLOWED_AMOUNTS 内。

    Raises:
        InvalidAmount: 金额缺失、不是数字或不在允许档位内
    """
    if value is None or isinstance(value, bool):
        raise InvalidAmount()
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise InvalidAmount()
    # 先与允许档位比较再转 int，"1e2000000" 之类的输入不会被展开成超长整数
    if not amount.is_finite() or amount not in _ALLOWED_DECIMALS:
        raise InvalidAmount()
    return int(amount)


def new_order_id() -> str:
    """订单号：r + 秒级时间戳 + 16 位随机十六进制，只含字母数字，可直接作为网关 out_trade_no"""
    return f"r{int(time.time())}{secrets.token_hex(8)}"


async def create_order(
    *,
    store: JsonStore,
    user_id: int,
    amount: Any,
    provider: PaymentProvider | None = None,
    channel: PaymentChannel | None = None,
) -> RechargeOrder:
    """创建 pending 订单，积分数在此刻按汇率固定"""
    value = parse_amount(amount)

    def _create(db: Database) -> RechargeOrder:
        if db.find_user(user_id) is None:
            raise user_not_found()
        order = RechargeOrder(
            id=new_order_id(),
            user_id=user_id,
            amount=value,
            points=value * EXCHANGE_RATE,
            provider=provider,
            channel=channel,
        )
        db.recharge_orders.append(order)
        return order

    order = await store.mutate(_create)
    logger.info("Recharge order %s created: user=%s amount=%s", order.id, user_id, value)
    return order


async def attach_payment_session(
    *,
    store: JsonStore,
    order_id: str,
    provider: PaymentProvider | None = None,
    channel: PaymentChannel | None = None,
    provider_trade_no: str | None = None,
    pay_url: str | None = None,
    qr_code_url: str | None = None,
) -> RechargeOrder | None:
    """
    合并网关支付会话信息到订单

    只写入非空字段，后续调用不会用空值覆盖之前的值。订单不存在时返回 None。
    """
    updates = {
        "provider": provider,
        "channel": channel,
        "provider_trade_no": provider_trade_no,
        "pay_url": pay_url,
        "qr_code_url": qr_code_url,
    }

    def _attach(db: Database) -> RechargeOrder | None:
        order = db.find_order(order_id)
        if order is None:
            return None
        for field, value in updates.items():
            if value:
                setattr(order, field, value)
        return order

    return await store.mutate(_attach)


async def settle(
    *,
    store: JsonStore,
    order_id: str,
    action: SettleAction | str,
    note: str | None = None,
) -> RechargeOrder | None:
    """
    结算订单（通过 / 拒绝）

    - 订单不存在：返回 None
    - 已是终态：原样返回（重复回调、重复点击都是安全的空操作）
    - approve：给下单用户入账 order.points，流水原因为 recharge_order_<id>
    - reject：只改状态，不影响积分

    Raises:
        InvalidArgument: action 不是 approve / reject
        NotFound: 订单关联的用户已不存在（整个变更被放弃）
    """
    try:
        decision = SettleAction(action)
    except ValueError:
        raise InvalidArgument(code=400201, message="Action must be approve or reject")

    def _settle(db: Database) -> tuple[RechargeOrder | None, bool]:
        order = db.find_order(order_id)
        if order is None:
            return None, False
        if order.is_terminal:
            return order, False

        if decision == SettleAction.approve:
            apply_delta(
                db, user_id=order.user_id, delta=order.points, reason=recharge_reason(order.id)
            )
            order.status = RechargeOrderStatus.approved
        else:
            order.status = RechargeOrderStatus.rejected
        order.reviewed_at = utc_now()
        if note:
            order.note = note
        return order, True

    order, changed = await store.mutate(_settle)
    if order is not None and changed:
        logger.info("Recharge order %s %s (note=%s)", order.id, order.status.value, note)
    elif order is not None:
        logger.info("Recharge order %s already %s, settle is a no-op", order.id, order.status.value)
    return order


async def approve_order(*, store: JsonStore, order_id: str, note: str | None = None) -> RechargeOrder | None:
    return await settle(store=store, order_id=order_id, action=SettleAction.approve, note=note)


async def reject_order(*, store: JsonStore, order_id: str, note: str | None = None) -> RechargeOrder | None:
    return await settle(store=store, order_id=order_id, action=SettleAction.reject, note=note)


async def get_order(*, store: JsonStore, order_id: str) -> RechargeOrder | None:
    db = await store.read()
    return db.find_order(order_id)


async def list_orders(
    *, store: JsonStore, status: RechargeOrderStatus | None = None
) -> list[RechargeOrder]:
    """按创建时间倒序列出订单（管理员审核用），可按状态过滤"""
    db = await store.read()
    # 先反转再稳定排序：创建时间相同的订单，后创建的排在前面
    orders = [o for o in reversed(db.recharge_orders) if status is None or o.status == status]
    orders.sort(key=lambda o: o.created_at, reverse=True)
    return orders
