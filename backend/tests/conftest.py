from __future__ import annotations

import asyncio
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from hairswap import crud
from hairswap.api.deps import get_optional_epay_client
from hairswap.core import security
from hairswap.core.config import settings
from hairswap.core.db import JsonStore, get_store
from hairswap.integrations.epay import EpayClient, EpayConfig
from hairswap.main import app
from hairswap.models import User

EPAY_PID = "1001"
EPAY_KEY = "test-merchant-key"
APP_BASE_URL = "https://hair.example.com"
ADMIN_EMAIL = "admin@example.com"
DEFAULT_PASSWORD = "password123"


@pytest.fixture(scope="function")
def store(tmp_path) -> JsonStore:
    # 每个测试一个全新的文档和一把新锁
    return JsonStore(tmp_path / "db.json")


@pytest.fixture(scope="function")
def epay_config() -> EpayConfig:
    return EpayConfig(base_url="https://pay.example.com", pid=EPAY_PID, md5_key=EPAY_KEY)


@pytest.fixture(scope="function")
def epay_client(epay_config) -> EpayClient:
    return EpayClient(epay_config)


@pytest.fixture(scope="function")
def client(store, epay_client, monkeypatch) -> Generator[TestClient, None, None]:
    monkeypatch.setattr(settings, "APP_BASE_URL", APP_BASE_URL)
    monkeypatch.setattr(settings, "ADMIN_EMAILS", [ADMIN_EMAIL])
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_optional_epay_client] = lambda: epay_client
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def _create_user(
    store: JsonStore, email: str, *, password: str = DEFAULT_PASSWORD, points: int = 0
) -> User:
    user = asyncio.run(
        crud.create_user(store=store, email=email, password_hash=security.get_password_hash(password))
    )
    if points:
        asyncio.run(crud.credit_points(store=store, user_id=user.id, amount=points, reason="seed"))
    return user


def _login(client: TestClient, email: str, password: str = DEFAULT_PASSWORD) -> dict[str, str]:
    """
    登录并返回 Bearer 头

    登录响应会在 client 上种下会话 Cookie，而 Cookie 优先于 Bearer 头；
    这里清掉 Cookie，方便同一个测试里切换多个用户。
    """
    r = client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.text
    client.cookies.clear()
    return {"Authorization": f"Bearer {r.json()['data']['token']}"}


@pytest.fixture(scope="function")
def make_user(store):
    """直接在存储里创建用户（可选初始积分），绕过邮箱验证码流程"""

    def _make(email: str, *, password: str = DEFAULT_PASSWORD, points: int = 0) -> User:
        return _create_user(store, email, password=password, points=points)

    return _make


@pytest.fixture(scope="function")
def login_as(client):
    def _as(email: str, password: str = DEFAULT_PASSWORD) -> dict[str, str]:
        return _login(client, email, password)

    return _as
