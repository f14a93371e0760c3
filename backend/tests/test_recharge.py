from __future__ import annotations

import asyncio

import pytest

from hairswap import crud
from hairswap.api.errors import InvalidAmount, InvalidArgument, NotFound
from hairswap.crud.recharge import parse_amount
from hairswap.enums import PaymentChannel, PaymentProvider, RechargeOrderStatus, SettleAction
from hairswap.models import Database


def _new_user(store, email: str = "buyer@example.com") -> int:
    return asyncio.run(crud.create_user(store=store, email=email, password_hash="h")).id


def _create(store, user_id: int, amount=5):
    return asyncio.run(crud.create_recharge_order(store=store, user_id=user_id, amount=amount))


def _balance(store, user_id: int) -> int:
    return asyncio.run(crud.get_balance(store=store, user_id=user_id))


def test_approve_and_reject_scenario(store):
    user_id = _new_user(store)

    order = _create(store, user_id, 5)
    assert order.points == 50
    assert order.status == RechargeOrderStatus.pending
    assert order.id.startswith("r") and order.id.isalnum()

    approved = asyncio.run(crud.approve_order(store=store, order_id=order.id, note="manual"))
    assert approved.status == RechargeOrderStatus.approved
    assert approved.reviewed_at is not None
    assert approved.note == "manual"
    assert _balance(store, user_id) == 50

    db = asyncio.run(store.read())
    entries = [e for e in db.points_ledger if e.user_id == user_id]
    assert [(e.delta, e.reason) for e in entries] == [(50, f"recharge_order_{order.id}")]

    second = _create(store, user_id, 10)
    rejected = asyncio.run(crud.reject_order(store=store, order_id=second.id))
    assert rejected.status == RechargeOrderStatus.rejected
    assert rejected.reviewed_at is not None
    assert _balance(store, user_id) == 50


@pytest.mark.parametrize(
    "value, expected", [(1, 1), ("5", 5), (10.0, 10), (" 50 ", 50), ("5.0", 5), ("5e0", 5), ("0.5e1", 5)]
)
def test_parse_amount_accepts_allowed_values(value, expected):
    assert parse_amount(value) == expected


@pytest.mark.parametrize(
    "value",
    [None, True, 0, 3, 100, 5.5, "abc", "", "nan", "snan", "inf", [5], "-5", "1e2000000", "5e-2000000"],
)
def test_parse_amount_rejects_invalid_values(value):
    with pytest.raises(InvalidAmount):
        parse_amount(value)


def test_create_order_rejects_invalid_amount_without_persisting(store):
    user_id = _new_user(store)
    with pytest.raises(InvalidAmount):
        _create(store, user_id, 7)
    assert asyncio.run(store.read()).recharge_orders == []


def test_create_order_for_unknown_user(store):
    with pytest.raises(NotFound):
        _create(store, 999, 5)


def test_settle_twice_credits_once(store):
    user_id = _new_user(store)
    order = _create(store, user_id, 10)

    first = asyncio.run(crud.approve_order(store=store, order_id=order.id))
    second = asyncio.run(crud.approve_order(store=store, order_id=order.id, note="again"))
    assert second.status == RechargeOrderStatus.approved
    assert second.reviewed_at == first.reviewed_at
    assert second.note is None
    assert _balance(store, user_id) == 100

    # 已通过的订单不能再被拒绝
    third = asyncio.run(crud.reject_order(store=store, order_id=order.id))
    assert third.status == RechargeOrderStatus.approved
    assert _balance(store, user_id) == 100


def test_concurrent_settle_is_exactly_once(store):
    user_id = _new_user(store)
    order = _create(store, user_id, 50)

    async def scenario():
        return await asyncio.gather(
            *(crud.approve_order(store=store, order_id=order.id) for _ in range(8))
        )

    results = asyncio.run(scenario())
    assert all(r.status == RechargeOrderStatus.approved for r in results)
    assert _balance(store, user_id) == 500
    db = asyncio.run(store.read())
    assert sum(1 for e in db.points_ledger if e.reason == f"recharge_order_{order.id}") == 1


def test_approve_racing_reject_settles_once(store):
    user_id = _new_user(store)
    order = _create(store, user_id, 1)

    async def scenario():
        return await asyncio.gather(
            crud.reject_order(store=store, order_id=order.id),
            crud.approve_order(store=store, order_id=order.id),
        )

    rejected, approved = asyncio.run(scenario())
    # 先提交的 reject 先执行，之后的 approve 是空操作
    assert rejected.status == RechargeOrderStatus.rejected
    assert approved.status == RechargeOrderStatus.rejected
    assert _balance(store, user_id) == 0


def test_settle_unknown_order_returns_none(store):
    assert asyncio.run(crud.approve_order(store=store, order_id="missing")) is None


@pytest.mark.parametrize("action", ["", "APPROVE", "refund", None])
def test_settle_rejects_unknown_action(store, action):
    user_id = _new_user(store)
    order = _create(store, user_id)
    with pytest.raises(InvalidArgument):
        asyncio.run(crud.settle_recharge_order(store=store, order_id=order.id, action=action))
    assert asyncio.run(crud.get_recharge_order(store=store, order_id=order.id)).status == "pending"


def test_settle_accepts_plain_string_action(store):
    user_id = _new_user(store)
    order = _create(store, user_id)
    settled = asyncio.run(crud.settle_recharge_order(store=store, order_id=order.id, action="reject"))
    assert settled.status == RechargeOrderStatus.rejected


def test_approve_with_vanished_user_aborts_whole_mutation(store):
    user_id = _new_user(store)
    order = _create(store, user_id)

    def _drop_user(db: Database) -> None:
        db.users = [u for u in db.users if u.id != user_id]

    asyncio.run(store.mutate(_drop_user))
    with pytest.raises(NotFound):
        asyncio.run(crud.approve_order(store=store, order_id=order.id))

    current = asyncio.run(crud.get_recharge_order(store=store, order_id=order.id))
    assert current.status == RechargeOrderStatus.pending
    assert current.reviewed_at is None


def test_attach_payment_session_merges_non_empty_fields(store):
    user_id = _new_user(store)
    order = _create(store, user_id)

    first = asyncio.run(
        crud.attach_payment_session(
            store=store,
            order_id=order.id,
            provider=PaymentProvider.epay,
            channel=PaymentChannel.alipay,
            pay_url="https://pay.example.com/p/1",
            qr_code_url="https://pay.example.com/qr/1",
        )
    )
    assert first.pay_url == "https://pay.example.com/p/1"

    second = asyncio.run(
        crud.attach_payment_session(
            store=store, order_id=order.id, provider_trade_no="T100", pay_url="", qr_code_url=None
        )
    )
    assert second.provider_trade_no == "T100"
    assert second.pay_url == "https://pay.example.com/p/1"
    assert second.qr_code_url == "https://pay.example.com/qr/1"
    assert second.channel == PaymentChannel.alipay

    assert asyncio.run(crud.attach_payment_session(store=store, order_id="missing", pay_url="x")) is None


def test_list_orders_newest_first_with_status_filter(store):
    user_id = _new_user(store)
    first = _create(store, user_id, 1)
    second = _create(store, user_id, 5)
    asyncio.run(crud.settle_recharge_order(store=store, order_id=first.id, action=SettleAction.approve))
    asyncio.run(crud.settle_recharge_order(store=store, order_id=second.id, action=SettleAction.reject))

    assert asyncio.run(crud.list_recharge_orders(store=store, status=RechargeOrderStatus.pending)) == []
    orders = asyncio.run(crud.list_recharge_orders(store=store))
    assert [o.id for o in orders] == [second.id, first.id]

    approved = asyncio.run(crud.list_recharge_orders(store=store, status=RechargeOrderStatus.approved))
    assert [o.id for o in approved] == [first.id]


def test_order_survives_reload(store):
    user_id = _new_user(store)
    order = _create(store, user_id, 50)
    loaded = asyncio.run(crud.get_recharge_order(store=store, order_id=order.id))
    assert loaded.model_dump() == order.model_dump()
