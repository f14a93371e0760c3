from __future__ import annotations

import asyncio
import base64

import httpx
import pytest

from hairswap import crud
from hairswap.api.errors import AppError, InvalidArgument
from hairswap.core.config import Settings
from hairswap.integrations import nano_banana
from hairswap.integrations.nano_banana import NanoBananaClient, decode_data_url, normalize_output
from hairswap.services import generation_service

PNG_DATA_URL = "data:image/png;base64," + base64.b64encode(b"\x89PNG fake").decode()


class _FakeNanoClient:
    """按预设行为返回结果的生成客户端"""

    def __init__(self, *, output=None, error: BaseException | None = None, delay: float = 0.0, configured=True):  # type: ignore[no-untyped-def]
        self.output = output if output is not None else ["https://img.example.com/1.png"]
        self.error = error
        self.delay = delay
        self.configured = configured
        self.calls: list[str] = []

    def ensure_configured(self) -> None:
        if not self.configured:
            raise AppError(code=500401, message="Image generation is not configured", status_code=500)

    async def edit_images(self, *, user_image, hairstyle_image, prompt):  # type: ignore[no-untyped-def]
        self.calls.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.output


def _user(store, points: int) -> int:
    user = asyncio.run(crud.create_user(store=store, email="gen@example.com", password_hash="h"))
    if points:
        asyncio.run(crud.credit_points(store=store, user_id=user.id, amount=points, reason="seed"))
    return user.id


def _generate(store, client, user_id, **kwargs):  # type: ignore[no-untyped-def]
    return asyncio.run(
        generation_service.generate(
            store=store,
            client=client,
            user_id=user_id,
            user_image=kwargs.pop("user_image", PNG_DATA_URL),
            hairstyle_image=kwargs.pop("hairstyle_image", PNG_DATA_URL),
            **kwargs,
        )
    )


def _reasons(store, user_id: int) -> list[str]:
    db = asyncio.run(store.read())
    return [e.reason for e in db.points_ledger if e.user_id == user_id]


def test_generate_debits_cost_and_uses_default_prompt(store):
    user_id = _user(store, 12)
    client = _FakeNanoClient()
    output = _generate(store, client, user_id)

    assert output == ["https://img.example.com/1.png"]
    assert client.calls == [nano_banana.DEFAULT_PROMPT]
    assert asyncio.run(crud.get_balance(store=store, user_id=user_id)) == 7
    assert _reasons(store, user_id) == ["seed", "generate"]


def test_generate_insufficient_points(store):
    user_id = _user(store, 3)
    client = _FakeNanoClient()
    with pytest.raises(AppError) as exc_info:
        _generate(store, client, user_id, prompt="short hair")
    assert exc_info.value.status_code == 402
    assert client.calls == []
    assert asyncio.run(crud.get_balance(store=store, user_id=user_id)) == 3


def test_generate_validates_before_debit(store):
    user_id = _user(store, 10)
    with pytest.raises(AppError) as exc_info:
        _generate(store, _FakeNanoClient(configured=False), user_id)
    assert exc_info.value.status_code == 500

    with pytest.raises(InvalidArgument):
        _generate(store, _FakeNanoClient(), user_id, hairstyle_image="https://not-a-data-url")
    assert _reasons(store, user_id) == ["seed"]


def test_generate_refunds_on_upstream_failure(store):
    user_id = _user(store, 10)
    error = AppError(code=502401, message="Image generation failed", status_code=502)
    with pytest.raises(AppError) as exc_info:
        _generate(store, _FakeNanoClient(error=error), user_id)
    assert exc_info.value is error
    assert asyncio.run(crud.get_balance(store=store, user_id=user_id)) == 10
    assert _reasons(store, user_id) == ["seed", "generate", "generate_refund"]


def test_generate_refunds_on_empty_output(store):
    user_id = _user(store, 10)
    with pytest.raises(AppError) as exc_info:
        _generate(store, _FakeNanoClient(output=[]), user_id)
    assert exc_info.value.status_code == 502
    assert asyncio.run(crud.get_balance(store=store, user_id=user_id)) == 10


def test_generate_refunds_when_cancelled(store):
    user_id = _user(store, 10)
    client = _FakeNanoClient(delay=10)

    async def scenario() -> None:
        task = asyncio.create_task(
            generation_service.generate(
                store=store,
                client=client,
                user_id=user_id,
                user_image=PNG_DATA_URL,
                hairstyle_image=PNG_DATA_URL,
            )
        )
        while not client.calls:
            await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())
    assert asyncio.run(crud.get_balance(store=store, user_id=user_id)) == 10
    assert _reasons(store, user_id)[-1] == "generate_refund"


def test_failed_refund_is_logged_not_raised(store, monkeypatch, caplog):
    user_id = _user(store, 10)
    attempts = []

    async def _broken_credit(**kwargs):  # type: ignore[no-untyped-def]
        attempts.append(kwargs)
        raise OSError("disk full")

    monkeypatch.setattr(generation_service.crud, "credit_points", _broken_credit)
    error = AppError(code=502401, message="Image generation failed", status_code=502)
    with pytest.raises(AppError) as exc_info:
        _generate(store, _FakeNanoClient(error=error), user_id)

    # 原始错误不被退款失败覆盖
    assert exc_info.value is error
    assert len(attempts) == generation_service.REFUND_MAX_TRIES
    assert "Failed to refund" in caplog.text
    assert asyncio.run(crud.get_balance(store=store, user_id=user_id)) == 5


def test_decode_data_url():
    image = decode_data_url("data:image/jpeg;base64," + base64.b64encode(b"jpeg").decode())
    assert image.mime_type == "image/jpeg"
    assert image.content == b"jpeg"

    for bad in ["", "https://example.com/a.png", "data:image/png;base64,@@@"]:
        with pytest.raises(InvalidArgument):
            decode_data_url(bad)


@pytest.mark.parametrize(
    "data, expected",
    [
        ({"output": ["a", "b"]}, ["a", "b"]),
        ({"data": [{"url": "u1"}, {"b64_json": "QUJD"}, {"other": 1}]}, ["u1", "data:image/png;base64,QUJD"]),
        ({"url": "u2"}, ["u2"]),
        ({"b64_json": "WFla"}, ["data:image/png;base64,WFla"]),
        ({"nothing": True}, []),
        (None, []),
    ],
)
def test_normalize_output(data, expected):
    assert normalize_output(data) == expected


def test_nano_client_posts_multipart_form(monkeypatch):
    captured = {}

    class FakeAsyncClient:
        def __init__(self, *args, **kwargs):  # type: ignore[no-untyped-def]
            captured["timeout"] = kwargs.get("timeout")

        async def __aenter__(self):  # type: ignore[no-untyped-def]
            return self

        async def __aexit__(self, exc_type, exc, tb):  # type: ignore[no-untyped-def]
            return False

        async def post(self, url, headers=None, data=None, files=None):  # type: ignore[no-untyped-def]
            captured.update(url=url, headers=headers, data=data, files=files)
            return httpx.Response(200, json={"data": [{"url": "https://img/1"}]}, request=httpx.Request("POST", url))

    monkeypatch.setattr(httpx, "AsyncClient", FakeAsyncClient)
    client = NanoBananaClient(
        Settings(NANO_API_URL="https://nano.example.com/", NANO_API_KEY="nk", NANO_IMAGE_SIZE="1K")
    )
    image = decode_data_url(PNG_DATA_URL)
    output = asyncio.run(client.edit_images(user_image=image, hairstyle_image=image, prompt="p"))

    assert output == ["https://img/1"]
    assert captured["url"] == "https://nano.example.com/v1/images/edits"
    assert captured["headers"] == {"Authorization": "Bearer nk"}
    assert captured["data"]["model"] == "nano-banana"
    assert captured["data"]["image_size"] == "1K"
    assert [name for name, _ in captured["files"]] == ["image", "image"]
    assert captured["files"][0][1][0] == "user-image.png"


def test_nano_client_maps_http_errors(monkeypatch):
    class FailingAsyncClient:
        def __init__(self, *args, **kwargs):  # type: ignore[no-untyped-def]
            pass

        async def __aenter__(self):  # type: ignore[no-untyped-def]
            return self

        async def __aexit__(self, exc_type, exc, tb):  # type: ignore[no-untyped-def]
            return False

        async def post(self, url, **kwargs):  # type: ignore[no-untyped-def]
            return httpx.Response(500, json={"error": "x"}, request=httpx.Request("POST", url))

    monkeypatch.setattr(httpx, "AsyncClient", FailingAsyncClient)
    client = NanoBananaClient(Settings(NANO_API_URL="https://nano.example.com", NANO_API_KEY="nk"))
    image = decode_data_url(PNG_DATA_URL)
    with pytest.raises(AppError) as exc_info:
        asyncio.run(client.edit_images(user_image=image, hairstyle_image=image, prompt="p"))
    assert exc_info.value.status_code == 502

    unconfigured = NanoBananaClient(Settings())
    with pytest.raises(AppError) as exc_info:
        unconfigured.ensure_configured()
    assert exc_info.value.status_code == 500
