"""
易支付（Epay）网关集成模块

封装第三方托管支付页网关的两个方向：
- 出站：按网关协议签名并提交下单请求，取回支付链接 / 二维码 / 网关交易号
- 入站：校验异步通知的签名，并从通知参数中提取订单号、金额、交易号、支付状态

签名规则：
1. 取所有非空参数，排除 sign 和 sign_type
2. 按 key 字典序排序，拼成 k1=v1&k2=v2
3. 拼接商户密钥后取 MD5：
   - plain 风格：md5(base + key)
   - key 风格：md5(base + "&key=" + key)

网关不同版本对签名风格的实现不一致，所以验签时两种风格任一匹配即视为通过。
这放宽了校验面，确认网关行为一致后应收紧为单一风格。

网关返回字段名也不统一（pay_url / payurl / url 等），提取时按优先级逐个尝试别名。
"""
from __future__ import annotations

import hashlib
import hmac
import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Literal

import httpx

from hairswap.api.errors import GatewayError
from hairswap.core.config import Settings, settings
from hairswap.enums import PaymentChannel

logger = logging.getLogger(__name__)

SignStyle = Literal["plain", "key"]

SUCCESS_CODE = 1  # 下单接口成功时 code 的取值
PAID_STATUSES = frozenset({"1", "success", "paid", "trade_success"})
_EXCLUDED_SIGN_KEYS = frozenset({"sign", "sign_type"})

# 字段别名（按优先级排列）
_ORDER_ID_KEYS = ("out_trade_no", "outTradeNo", "orderId")
_AMOUNT_KEYS = ("money", "amount", "total_fee")
_TRADE_NO_KEYS = ("trade_no", "tradeNo")
_STATUS_KEYS = ("status", "trade_status")
_PAY_URL_KEYS = ("pay_url", "payurl", "url")
_QR_CODE_KEYS = ("qrcode", "qrcode_url", "qrCode")


@dataclass(frozen=True)
class EpayConfig:
    """
    网关配置（进程启动时由 Settings 构建一次）

    字段说明：
    - base_url: 网关地址（去掉末尾斜杠）
    - pid: 商户 ID
    - md5_key: 商户密钥
    - api_path: 下单接口路径
    - act: 下单动作参数
    - wechat_type / alipay_type: 渠道在网关侧的 type 值
    - sign_style: 下单时使用的签名风格
    """
    base_url: str
    pid: str
    md5_key: str
    api_path: str = "/api.php"
    act: str = "pay"
    wechat_type: str = "wxpay"
    alipay_type: str = "alipay"
    sign_style: SignStyle = "plain"
    timeout: float = 15.0

    @classmethod
    def from_settings(cls, s: Settings) -> EpayConfig:
        """
        Raises:
            GatewayError: 网关地址、商户 ID、密钥任一缺失
        """
        if not (s.EPAY_BASE_URL and s.EPAY_PID and s.EPAY_MD5_KEY):
            raise GatewayError(code=500201, message="Payment gateway is not configured")
        return cls(
            base_url=s.EPAY_BASE_URL.rstrip("/"),
            pid=s.EPAY_PID,
            md5_key=s.EPAY_MD5_KEY,
            api_path=s.EPAY_API_PATH or "/api.php",
            act=s.EPAY_ACT or "pay",
            wechat_type=s.EPAY_WECHAT_TYPE,
            alipay_type=s.EPAY_ALIPAY_TYPE,
            sign_style=s.EPAY_SIGN_STYLE,
            timeout=s.EPAY_TIMEOUT_SECONDS,
        )

    @property
    def endpoint(self) -> str:
        path = self.api_path if self.api_path.startswith("/") else f"/{self.api_path}"
        return f"{self.base_url}{path}"

    def type_for(self, channel: PaymentChannel) -> str:
        return self.alipay_type if channel == PaymentChannel.alipay else self.wechat_type


@dataclass(frozen=True)
class EpayOrderRequest:
    """下单请求"""
    amount: int | float
    out_trade_no: str  # 我方订单号
    name: str  # 商品名称
    notify_url: str  # 异步通知地址
    channel: PaymentChannel
    return_url: str | None = None  # 支付完成后跳转地址
    client_ip: str | None = None


@dataclass(frozen=True)
class EpayOrderResult:
    """下单结果：只保留这三个字段，不携带签名后的原始请求/响应"""
    trade_no: str | None = None
    pay_url: str | None = None
    qr_code_url: str | None = None


# ============================================================
# 签名
# ============================================================


def canonicalize(params: Mapping[str, str]) -> str:
    """按签名规则生成待签名串"""
    items = sorted(
        (k, v) for k, v in params.items() if v and k not in _EXCLUDED_SIGN_KEYS
    )
    return "&".join(f"{k}={v}" for k, v in items)


def _md5(value: str) -> str:
    return hashlib.md5(value.encode("utf-8")).hexdigest()


def sign_params(params: Mapping[str, str], key: str, style: SignStyle = "plain") -> str:
    base = canonicalize(params)
    if style == "key":
        return _md5(f"{base}&key={key}")
    return _md5(f"{base}{key}")


def verify_signature(params: Mapping[str, str], key: str) -> bool:
    """
    校验通知签名

    sign 字段不区分大小写；plain / key 两种风格任一匹配即通过。纯函数，无副作用，
    任何输入（包括非 ASCII 的 sign）都只返回 True / False。
    """
    signature = (params.get("sign") or "").strip().lower().encode("utf-8")
    if not signature:
        return False
    return any(
        hmac.compare_digest(signature, sign_params(params, key, style).encode("ascii"))
        for style in ("plain", "key")
    )


# ============================================================
# 通知字段提取（全部是总函数：缺失/非法时返回 None 或 False）
# ============================================================


def _first(params: Mapping[str, Any], keys: tuple[str, ...]) -> str | None:
    for key in keys:
        value = params.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def get_order_id(params: Mapping[str, str]) -> str | None:
    return _first(params, _ORDER_ID_KEYS)


def get_trade_no(params: Mapping[str, str]) -> str | None:
    return _first(params, _TRADE_NO_KEYS)


def get_amount(params: Mapping[str, str]) -> float | None:
    raw = _first(params, _AMOUNT_KEYS)
    if raw is None:
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def is_paid(params: Mapping[str, str]) -> bool:
    status = (_first(params, _STATUS_KEYS) or "").lower()
    return status in PAID_STATUSES


def get_channel(params: Mapping[str, str], config: EpayConfig | None = None) -> PaymentChannel | None:
    """根据通知里的 type 字段还原支付渠道，无法识别时返回 None"""
    pay_type = params.get("type") or ""
    alipay_type = config.alipay_type if config else "alipay"
    wechat_type = config.wechat_type if config else "wxpay"
    if pay_type == alipay_type:
        return PaymentChannel.alipay
    if pay_type == wechat_type:
        return PaymentChannel.wechat
    return None


def _format_money(amount: int | float) -> str:
    if float(amount).is_integer():
        return str(int(amount))
    return f"{amount:.2f}"


def _to_str_params(data: Mapping[str, Any]) -> dict[str, str]:
    return {k: str(v) for k, v in data.items() if v is not None}


class EpayClient:
    """
    易支付网关客户端

    配置通过构造函数注入，客户端本身不读取环境变量。
    """

    def __init__(self, config: EpayConfig) -> None:
        self.config = config

    def verify_signature(self, params: Mapping[str, str]) -> bool:
        return verify_signature(params, self.config.md5_key)

    def build_order_params(self, req: EpayOrderRequest) -> dict[str, str]:
        """构建带签名的下单参数"""
        cfg = self.config
        params = _to_str_params(
            {
                "act": cfg.act,
                "pid": cfg.pid,
                "type": cfg.type_for(req.channel),
                "out_trade_no": req.out_trade_no,
                "notify_url": req.notify_url,
                "return_url": req.return_url,
                "name": req.name,
                "money": _format_money(req.amount),
                "clientip": req.client_ip,
            }
        )
        params["sign"] = sign_params(params, cfg.md5_key, cfg.sign_style)
        params["sign_type"] = "MD5"
        return params

    async def create_order(self, req: EpayOrderRequest) -> EpayOrderResult:
        """
        在网关创建托管支付订单

        Args:
            req: 下单请求

        Returns:
            EpayOrderResult: 交易号 / 支付链接 / 二维码链接（均可能为空）

        Raises:
            GatewayError: HTTP 调用失败（502）、响应无法解析（502）或网关返回失败（502）
        """
        params = self.build_order_params(req)
        try:
            async with httpx.AsyncClient(timeout=self.config.timeout) as client:
                response = await client.post(self.config.endpoint, data=params)
        except httpx.HTTPError as e:
            logger.error("Epay create order request failed: %s", e)
            raise GatewayError(code=502201, message="Payment gateway request failed", status_code=502)

        try:
            data = response.json()
        except ValueError:
            logger.error(
                "Epay returned non-JSON response (status=%s) for order %s",
                response.status_code,
                req.out_trade_no,
            )
            raise GatewayError(code=502202, message="Invalid payment gateway response", status_code=502)
        if not isinstance(data, dict):
            raise GatewayError(code=502202, message="Invalid payment gateway response", status_code=502)

        code_value = data.get("code", data.get("status"))
        try:
            code = float(code_value) if code_value is not None else 0.0
        except (TypeError, ValueError):
            code = math.nan
        if code != SUCCESS_CODE:
            msg = data.get("msg") if isinstance(data.get("msg"), str) else None
            logger.warning("Epay create order %s rejected: code=%s msg=%s", req.out_trade_no, code_value, msg)
            raise GatewayError(
                code=502203,
                message=msg or "Payment gateway rejected the order",
                status_code=502,
            )

        result = EpayOrderResult(
            trade_no=_first(data, _TRADE_NO_KEYS),
            pay_url=_first(data, _PAY_URL_KEYS),
            qr_code_url=_first(data, _QR_CODE_KEYS),
        )
        logger.info("Epay order created for %s (trade_no=%s)", req.out_trade_no, result.trade_no)
        return result


@lru_cache
def get_epay_client() -> EpayClient:
    """
    获取全局网关客户端

    Raises:
        GatewayError: 网关未配置（异常不会被缓存，配置补齐后可重试）
    """
    return EpayClient(EpayConfig.from_settings(settings))
