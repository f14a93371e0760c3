"""
充值路由模块

- POST /recharge: 创建充值订单并在网关下单，返回支付链接/二维码
- GET|POST /recharge/notify: 网关异步通知（无需登录，靠签名认证，只返回纯文本）
- GET /recharge/{order_id}: 查询自己的订单
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from hairswap import crud
from hairswap.api.deps import CurrentUser, EpayClientDep, StoreDep
from hairswap.api.errors import order_not_found
from hairswap.api.schemas import ApiEnvelope, RechargeCreateRequest, RechargeOrderData, RechargeOrderPublic
from hairswap.services import payment_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/recharge", tags=["recharge"])


@router.post("", response_model=ApiEnvelope)
async def create_recharge(
    current_user: CurrentUser,
    store: StoreDep,
    client: EpayClientDep,
    body: RechargeCreateRequest,
    request: Request,
) -> ApiEnvelope:
    """
    创建充值订单

    请求路径: POST /api/v1/recharge

    - 400: 金额不在 1 / 5 / 10 / 50 内
    - 401: 未登录
    - 500: 网关或站点地址未配置
    - 502: 网关下单失败（订单保持 pending，可由管理员处理）
    """
    order = await payment_service.start_recharge(
        store=store,
        client=client,
        user_id=current_user.id,
        amount=body.amount,
        channel=body.channel,
        client_ip=request.client.host if request.client else None,
    )
    return ApiEnvelope(data=RechargeOrderData(order=RechargeOrderPublic.from_order(order)))


async def _read_params(request: Request) -> dict[str, str]:
    """把通知参数读成扁平的字符串字典：GET 读查询串，POST 读 JSON 或表单"""
    if request.method == "GET":
        return dict(request.query_params)

    content_type = request.headers.get("content-type", "")
    if "application/json" in content_type:
        data = await request.json()
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items() if v is not None}

    form = await request.form()
    return {k: v for k, v in form.items() if isinstance(v, str)}


async def _handle_notify(request: Request, store: StoreDep, client: EpayClientDep) -> PlainTextResponse:
    try:
        params = await _read_params(request)
    except (ValueError, StarletteHTTPException):
        # 请求体无法解析（坏 JSON、缺 boundary 的 multipart 等）：按空参数处理，仍以纯文本 fail 应答
        logger.warning("Unparseable Epay notification body")
        params = {}
    outcome = await payment_service.handle_notification(store=store, client=client, params=params)
    return PlainTextResponse(outcome.body, status_code=outcome.status_code)


@router.post("/notify", response_class=PlainTextResponse)
async def notify(request: Request, store: StoreDep, client: EpayClientDep) -> PlainTextResponse:
    """
    网关异步通知

    请求路径: POST /api/v1/recharge/notify（表单或 JSON）

    成功返回 200 "success"，任何拒绝返回 "fail"（401 签名/商户号错误、400 缺订单号、
    404 订单不存在、409 金额不符或未支付、500 内部错误）。
    """
    return await _handle_notify(request, store, client)


@router.get("/notify", response_class=PlainTextResponse)
async def notify_get(request: Request, store: StoreDep, client: EpayClientDep) -> PlainTextResponse:
    """网关异步通知（GET 版本，参数在查询串里）"""
    return await _handle_notify(request, store, client)


@router.get("/{order_id}", response_model=ApiEnvelope)
async def get_recharge(order_id: str, current_user: CurrentUser, store: StoreDep) -> ApiEnvelope:
    """
    查询订单

    请求路径: GET /api/v1/recharge/{order_id}

    订单不存在和订单属于其他用户都返回 404，不暴露订单是否存在。
    """
    order = await crud.get_recharge_order(store=store, order_id=order_id)
    if order is None or order.user_id != current_user.id:
        raise order_not_found()
    return ApiEnvelope(data=RechargeOrderData(order=RechargeOrderPublic.from_order(order)))
