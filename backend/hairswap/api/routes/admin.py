"""
管理员审核路由模块

用于非自动渠道（或回调丢失）的人工对账：列出订单、通过或拒绝。
所有接口都要求当前用户在 ADMIN_EMAILS 白名单内。
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Query

from hairswap import crud
from hairswap.api.deps import AdminUser, StoreDep
from hairswap.api.errors import InvalidArgument, order_not_found
from hairswap.api.schemas import (
    AdminRechargeListData,
    AdminRechargeOrder,
    AdminSettleData,
    AdminSettleRequest,
    ApiEnvelope,
)
from hairswap.enums import RechargeOrderStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])

UNKNOWN_USER_EMAIL = "unknown"


def _parse_status(value: str | None) -> RechargeOrderStatus | None:
    """非法的状态过滤值直接忽略（等同于不过滤）"""
    if not value:
        return None
    try:
        return RechargeOrderStatus(value)
    except ValueError:
        return None


@router.get("/recharge", response_model=ApiEnvelope)
async def list_recharge_orders(
    store: StoreDep,
    admin: AdminUser,
    status: str | None = Query(default=None),
) -> ApiEnvelope:
    """
    列出充值订单（按创建时间倒序），附带下单用户邮箱

    请求路径: GET /api/v1/admin/recharge?status=pending
    """
    orders = await crud.list_recharge_orders(store=store, status=_parse_status(status))
    db = await store.read()
    enriched = []
    for order in orders:
        owner = db.find_user(order.user_id)
        enriched.append(
            AdminRechargeOrder.from_order(
                order, user_email=owner.email if owner else UNKNOWN_USER_EMAIL
            )
        )
    return ApiEnvelope(data=AdminRechargeListData(orders=enriched))


@router.post("/recharge", response_model=ApiEnvelope)
async def settle_recharge_order(
    store: StoreDep, admin: AdminUser, body: AdminSettleRequest
) -> ApiEnvelope:
    """
    审核充值订单

    请求路径: POST /api/v1/admin/recharge
    请求体: {"orderId": "...", "action": "approve" | "reject", "note": "..."}

    对已结算的订单重复操作是安全的空操作，原样返回订单。
    """
    if not body.order_id:
        raise InvalidArgument(code=400202, message="Order id is required")

    order = await crud.settle_recharge_order(
        store=store, order_id=body.order_id, action=body.action or "", note=body.note
    )
    if order is None:
        raise order_not_found()

    logger.info("Admin %s settled order %s -> %s", admin.email, order.id, order.status.value)
    owner = await crud.get_user_by_id(store=store, user_id=order.user_id)
    return ApiEnvelope(
        data=AdminSettleData(
            order=AdminRechargeOrder.from_order(
                order, user_email=owner.email if owner else UNKNOWN_USER_EMAIL
            )
        )
    )
