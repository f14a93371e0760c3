"""
充值支付流程服务

两条路径：
1. 下单：创建 pending 订单 -> 在网关创建托管支付单 -> 把支付链接/二维码写回订单
2. 网关异步通知：验签 -> 核对订单与金额 -> 记录交易号 -> 自动结算（approve）

通知处理对网关永远只返回纯文本 success / fail，重复投递同一条合法通知是安全的：
订单已是终态时 settle() 原样返回，不会重复入账。
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass

from hairswap import crud
from hairswap.api.errors import GatewayError
from hairswap.core.config import settings
from hairswap.core.db import JsonStore
from hairswap.crud.recharge import parse_amount
from hairswap.enums import PaymentChannel, PaymentProvider, SettleAction
from hairswap.integrations import epay
from hairswap.integrations.epay import EpayClient, EpayOrderRequest
from hairswap.models import RechargeOrder

logger = logging.getLogger(__name__)

SUCCESS_TOKEN = "success"
FAIL_TOKEN = "fail"
AMOUNT_EPSILON = 1e-4  # 通知金额与订单金额允许的浮点误差


@dataclass(frozen=True)
class NotifyOutcome:
    """通知处理结果：HTTP 状态码 + 纯文本应答"""
    status_code: int
    body: str

    @property
    def accepted(self) -> bool:
        return self.body == SUCCESS_TOKEN


def _reject(status_code: int, reason: str, params: Mapping[str, str]) -> NotifyOutcome:
    logger.warning(
        "Epay notification rejected (%s): order=%s trade_no=%s",
        reason,
        epay.get_order_id(params),
        epay.get_trade_no(params),
    )
    return NotifyOutcome(status_code=status_code, body=FAIL_TOKEN)


def notify_url() -> str:
    if not settings.APP_BASE_URL:
        raise GatewayError(message="APP_BASE_URL is not configured")
    return f"{settings.APP_BASE_URL.rstrip('/')}{settings.API_V1_STR}/recharge/notify"


def return_url(order_id: str) -> str | None:
    if not settings.APP_BASE_URL:
        return None
    return f"{settings.APP_BASE_URL.rstrip('/')}/recharge?orderId={order_id}"


async def start_recharge(
    *,
    store: JsonStore,
    client: EpayClient | None,
    user_id: int,
    amount: object,
    channel: PaymentChannel | None = None,
    client_ip: str | None = None,
) -> RechargeOrder:
    """
    创建充值订单并在网关下单

    Args:
        store: 存储
        client: 网关客户端，None 表示网关未配置
        user_id: 下单用户
        amount: 充值金额（在读取任何配置之前先校验）
        channel: 支付渠道，缺省为微信
        client_ip: 用户 IP，透传给网关

    Returns:
        RechargeOrder: 已写入支付会话信息的订单

    Raises:
        InvalidAmount: 金额不在允许档位内
        GatewayError: 网关或 APP_BASE_URL 未配置（500），网关调用失败（502，订单保持 pending）
    """
    value = parse_amount(amount)
    if client is None:
        raise GatewayError(message="Payment gateway is not configured")
    callback = notify_url()
    channel = channel or PaymentChannel.wechat
    order = await crud.create_recharge_order(
        store=store,
        user_id=user_id,
        amount=value,
        provider=PaymentProvider.epay,
        channel=channel,
    )

    result = await client.create_order(
        EpayOrderRequest(
            amount=order.amount,
            out_trade_no=order.id,
            name=f"{settings.PROJECT_NAME} {order.points} points",
            notify_url=callback,
            return_url=return_url(order.id),
            channel=channel,
            client_ip=client_ip,
        )
    )
    updated = await crud.attach_payment_session(
        store=store,
        order_id=order.id,
        provider=PaymentProvider.epay,
        channel=channel,
        provider_trade_no=result.trade_no,
        pay_url=result.pay_url,
        qr_code_url=result.qr_code_url,
    )
    return updated or order


async def handle_notification(
    *, store: JsonStore, client: EpayClient | None, params: Mapping[str, str]
) -> NotifyOutcome:
    """
    处理网关异步通知

    任何异常都转换为 500 + fail，让网关按自己的策略重试。
    """
    try:
        return await _process_notification(store=store, client=client, params=params)
    except Exception:
        logger.exception("Epay notification processing failed: order=%s", epay.get_order_id(params))
        return NotifyOutcome(status_code=500, body=FAIL_TOKEN)


async def _process_notification(
    *, store: JsonStore, client: EpayClient | None, params: Mapping[str, str]
) -> NotifyOutcome:
    if client is None:
        return _reject(500, "gateway not configured", params)

    pid = params.get("pid")
    if client.config.pid and pid and pid != client.config.pid:
        return _reject(401, "merchant id mismatch", params)

    if not client.verify_signature(params):
        return _reject(401, "bad signature", params)

    order_id = epay.get_order_id(params)
    if not order_id:
        return _reject(400, "missing order id", params)

    order = await crud.get_recharge_order(store=store, order_id=order_id)
    if order is None:
        return _reject(404, "order not found", params)

    amount = epay.get_amount(params)
    if amount is None or abs(amount - order.amount) > AMOUNT_EPSILON:
        return _reject(409, "amount mismatch", params)

    if not epay.is_paid(params):
        return _reject(409, "not paid", params)

    channel = epay.get_channel(params, client.config)
    await crud.attach_payment_session(
        store=store,
        order_id=order_id,
        provider=PaymentProvider.epay,
        channel=channel,
        provider_trade_no=epay.get_trade_no(params),
    )

    note = f"auto_{channel.value if channel else 'unknown'}"
    settled = await crud.settle_recharge_order(
        store=store, order_id=order_id, action=SettleAction.approve, note=note
    )
    if settled is None:
        return _reject(404, "order not found", params)
    logger.info("Epay notification accepted for order %s (status=%s)", order_id, settled.status.value)
    return NotifyOutcome(status_code=200, body=SUCCESS_TOKEN)
