from __future__ import annotations

import asyncio
import hashlib

import httpx
import pytest

from hairswap.api.errors import GatewayError
from hairswap.core.config import Settings
from hairswap.enums import PaymentChannel
from hairswap.integrations import epay
from hairswap.integrations.epay import EpayClient, EpayConfig, EpayOrderRequest

KEY = "secret"


def _md5(value: str) -> str:
    return hashlib.md5(value.encode("utf-8")).hexdigest()


def test_canonicalize_sorts_and_skips_empty_and_sign_fields():
    params = {"b": "2", "a": "1", "sign": "x", "sign_type": "MD5", "empty": "", "c": "3"}
    assert epay.canonicalize(params) == "a=1&b=2&c=3"


def test_sign_params_both_styles():
    params = {"pid": "1001", "money": "5", "out_trade_no": "r1"}
    base = "money=5&out_trade_no=r1&pid=1001"
    assert epay.sign_params(params, KEY) == _md5(base + KEY)
    assert epay.sign_params(params, KEY, "key") == _md5(f"{base}&key={KEY}")


@pytest.mark.parametrize("style", ["plain", "key"])
def test_verify_signature_accepts_either_style_case_insensitively(style):
    params = {"pid": "1001", "money": "5.00", "trade_status": "TRADE_SUCCESS"}
    params["sign"] = epay.sign_params(params, KEY, style).upper()
    params["sign_type"] = "MD5"
    assert epay.verify_signature(params, KEY) is True


def test_verify_signature_rejects_tampering_and_missing_sign():
    params = {"pid": "1001", "money": "5"}
    signed = dict(params, sign=epay.sign_params(params, KEY))
    assert epay.verify_signature(signed, KEY) is True
    assert epay.verify_signature(dict(signed, money="50"), KEY) is False
    assert epay.verify_signature(signed, "other-key") is False
    assert epay.verify_signature(params, KEY) is False
    assert epay.verify_signature(dict(params, sign=""), KEY) is False


def test_field_extractors_try_aliases_in_order():
    assert epay.get_order_id({"out_trade_no": "a", "orderId": "b"}) == "a"
    assert epay.get_order_id({"outTradeNo": "x"}) == "x"
    assert epay.get_order_id({"orderId": "y"}) == "y"
    assert epay.get_order_id({}) is None

    assert epay.get_amount({"money": "5.00"}) == 5.0
    assert epay.get_amount({"total_fee": "10"}) == 10.0
    assert epay.get_amount({"amount": "abc"}) is None
    assert epay.get_amount({"money": "inf"}) is None
    assert epay.get_amount({}) is None

    assert epay.get_trade_no({"tradeNo": "T1"}) == "T1"
    assert epay.get_trade_no({"trade_no": ""}) is None


@pytest.mark.parametrize(
    "params, paid",
    [
        ({"trade_status": "TRADE_SUCCESS"}, True),
        ({"status": "1"}, True),
        ({"status": "paid"}, True),
        ({"status": "Success"}, True),
        ({"status": "0"}, False),
        ({"trade_status": "WAIT_BUYER_PAY"}, False),
        ({}, False),
    ],
)
def test_is_paid(params, paid):
    assert epay.is_paid(params) is paid


def test_get_channel_maps_gateway_type():
    assert epay.get_channel({"type": "alipay"}) == PaymentChannel.alipay
    assert epay.get_channel({"type": "wxpay"}) == PaymentChannel.wechat
    assert epay.get_channel({"type": "qqpay"}) is None

    cfg = EpayConfig(base_url="https://p", pid="1", md5_key="k", wechat_type="wechat")
    assert epay.get_channel({"type": "wechat"}, cfg) == PaymentChannel.wechat


def test_config_from_settings():
    with pytest.raises(GatewayError) as exc_info:
        EpayConfig.from_settings(Settings())
    assert exc_info.value.status_code == 500

    cfg = EpayConfig.from_settings(
        Settings(
            EPAY_BASE_URL="https://pay.example.com/",
            EPAY_PID="1001",
            EPAY_MD5_KEY="k",
            EPAY_API_PATH="submit.php",
        )
    )
    assert cfg.endpoint == "https://pay.example.com/submit.php"


def test_settings_reject_partial_epay_config():
    with pytest.raises(ValueError):
        Settings(EPAY_BASE_URL="https://pay.example.com", EPAY_PID="1001")


class _FakeAsyncClient:
    """替换 httpx.AsyncClient，记录请求并按队列返回响应"""

    requests: list[tuple[str, dict]] = []
    responses: list[httpx.Response | Exception] = []

    def __init__(self, *args, **kwargs):  # type: ignore[no-untyped-def]
        _ = args, kwargs

    async def __aenter__(self):  # type: ignore[no-untyped-def]
        return self

    async def __aexit__(self, exc_type, exc, tb):  # type: ignore[no-untyped-def]
        return False

    async def post(self, url, data=None, **kwargs):  # type: ignore[no-untyped-def]
        type(self).requests.append((url, data))
        result = type(self).responses.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def fake_http(monkeypatch):
    _FakeAsyncClient.requests = []
    _FakeAsyncClient.responses = []
    monkeypatch.setattr(httpx, "AsyncClient", _FakeAsyncClient)
    return _FakeAsyncClient


def _json_response(data, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, json=data, request=httpx.Request("POST", "https://pay.example.com"))


def _order_request(channel: PaymentChannel = PaymentChannel.alipay) -> EpayOrderRequest:
    return EpayOrderRequest(
        amount=5,
        out_trade_no="r123abc",
        name="Hair Studio 50 points",
        notify_url="https://hair.example.com/api/v1/recharge/notify",
        return_url=None,
        channel=channel,
        client_ip="127.0.0.1",
    )


def test_create_order_signs_and_parses_response(fake_http):
    cfg = EpayConfig(base_url="https://pay.example.com", pid="1001", md5_key=KEY)
    fake_http.responses.append(
        _json_response({"code": 1, "trade_no": "T9", "payurl": "https://pay.example.com/p", "qrcode": "weixin://q"})
    )

    result = asyncio.run(EpayClient(cfg).create_order(_order_request()))
    assert result == epay.EpayOrderResult(
        trade_no="T9", pay_url="https://pay.example.com/p", qr_code_url="weixin://q"
    )

    url, data = fake_http.requests[0]
    assert url == "https://pay.example.com/api.php"
    assert data["type"] == "alipay"
    assert data["money"] == "5"
    assert data["act"] == "pay"
    assert data["sign_type"] == "MD5"
    assert "return_url" not in data
    assert epay.verify_signature(data, KEY)


def test_create_order_uses_key_style_and_status_alias(fake_http):
    cfg = EpayConfig(base_url="https://pay.example.com", pid="1001", md5_key=KEY, sign_style="key")
    fake_http.responses.append(_json_response({"status": "1", "url": "https://pay.example.com/u"}))

    result = asyncio.run(EpayClient(cfg).create_order(_order_request(PaymentChannel.wechat)))
    assert result.pay_url == "https://pay.example.com/u"
    assert result.trade_no is None

    _, data = fake_http.requests[0]
    assert data["type"] == "wxpay"
    assert data["sign"] == epay.sign_params(data, KEY, "key")


@pytest.mark.parametrize(
    "response, message",
    [
        (_json_response({"code": -1, "msg": "merchant disabled"}), "merchant disabled"),
        (_json_response({"msg": "no code"}), "Payment gateway rejected the order"),
        (_json_response(["not", "an", "object"]), "Invalid payment gateway response"),
        (
            httpx.Response(200, text="<html>", request=httpx.Request("POST", "https://pay.example.com")),
            "Invalid payment gateway response",
        ),
        (httpx.ConnectError("refused"), "Payment gateway request failed"),
    ],
)
def test_create_order_failures_raise_gateway_error(fake_http, response, message):
    cfg = EpayConfig(base_url="https://pay.example.com", pid="1001", md5_key=KEY)
    fake_http.responses.append(response)

    with pytest.raises(GatewayError) as exc_info:
        asyncio.run(EpayClient(cfg).create_order(_order_request()))
    assert exc_info.value.status_code == 502
    assert exc_info.value.message == message


@pytest.mark.parametrize("sign", ["é" * 32, "ü", "签名" * 16])
def test_verify_signature_non_ascii_sign_is_rejected(sign):
    params = {"out_trade_no": "r1", "money": "5", "sign": sign}
    assert epay.verify_signature(params, KEY) is False
    assert EpayClient(EpayConfig(base_url="https://p", pid="1", md5_key=KEY)).verify_signature(params) is False
