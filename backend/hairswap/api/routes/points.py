"""
积分路由模块

- 查询积分余额
- 查询积分流水（分页）
"""
from __future__ import annotations

from fastapi import APIRouter, Query

from hairswap import crud
from hairswap.api.deps import CurrentUser, StoreDep
from hairswap.api.schemas import (
    ApiEnvelope,
    PointsBalanceData,
    PointsLedgerData,
    PointsLedgerEntryPublic,
)

router = APIRouter(prefix="/points", tags=["points"])


@router.get("", response_model=ApiEnvelope)
async def balance(store: StoreDep, current_user: CurrentUser) -> ApiEnvelope:
    """
    获取积分余额

    请求路径: GET /api/v1/points
    """
    value = await crud.get_balance(store=store, user_id=current_user.id)
    return ApiEnvelope(data=PointsBalanceData(balance=value))


@router.get("/ledger", response_model=ApiEnvelope)
async def ledger(
    store: StoreDep,
    current_user: CurrentUser,
    page: int = Query(default=1, ge=1),  # 页码，从 1 开始
    page_size: int = Query(default=20, ge=1, le=100),  # 每页数量，1-100
) -> ApiEnvelope:
    """
    获取积分流水（按时间倒序）

    请求路径: GET /api/v1/points/ledger?page=1&page_size=20
    """
    offset = (page - 1) * page_size
    rows, count = await crud.list_ledger(
        store=store, user_id=current_user.id, offset=offset, limit=page_size
    )
    data = [PointsLedgerEntryPublic.from_entry(row) for row in rows]
    return ApiEnvelope(data=PointsLedgerData(data=data, count=count))
