"""
FastAPI 依赖注入模块

提供可复用的依赖项，用于路由处理函数中。

关键概念：
- StoreDep: 全局 JsonStore（测试中通过 dependency_overrides 替换为临时目录里的实例）
- OptionalUser / CurrentUser: 从会话 Cookie 或 Authorization: Bearer 头解析当前用户
- AdminUser: 管理员（邮箱在 ADMIN_EMAILS 白名单内）
- 外部客户端（支付网关、生成接口）也作为依赖注入，便于测试替换
"""
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from hairswap import crud
from hairswap.api.errors import AppError, Forbidden, Unauthenticated
from hairswap.core.config import settings
from hairswap.core.db import JsonStore, get_store
from hairswap.integrations.epay import EpayClient, get_epay_client
from hairswap.integrations.nano_banana import NanoBananaClient, get_nano_client
from hairswap.models import User

# Bearer 头是可选的：浏览器走 Cookie，脚本/移动端走 Authorization 头
reusable_bearer = HTTPBearer(auto_error=False)

StoreDep = Annotated[JsonStore, Depends(get_store)]
BearerDep = Annotated[HTTPAuthorizationCredentials | None, Depends(reusable_bearer)]


def get_session_token(request: Request, bearer: BearerDep) -> str | None:
    """
    提取会话令牌

    优先使用 Cookie，其次是 Authorization: Bearer 头。
    """
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if token:
        return token
    if bearer is not None and bearer.credentials:
        return bearer.credentials
    return None


SessionTokenDep = Annotated[str | None, Depends(get_session_token)]


async def get_optional_user(store: StoreDep, token: SessionTokenDep) -> User | None:
    """解析当前用户，未登录或会话过期时返回 None"""
    if not token:
        return None
    return await crud.get_user_by_session_token(store=store, token=token)


OptionalUser = Annotated[User | None, Depends(get_optional_user)]


async def get_current_user(user: OptionalUser) -> User:
    """
    获取当前登录用户

    Raises:
        Unauthenticated: 未登录或会话无效
    """
    if user is None:
        raise Unauthenticated()
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


def is_admin(user: User) -> bool:
    return user.email.strip().lower() in settings.admin_emails


async def get_admin_user(user: CurrentUser) -> User:
    """
    获取当前管理员

    Raises:
        AppError: 未配置任何管理员邮箱（500）
        Forbidden: 当前用户不在管理员白名单内
    """
    if not settings.admin_emails:
        raise AppError(code=500001, message="Admin emails are not configured", status_code=500)
    if not is_admin(user):
        raise Forbidden()
    return user


AdminUser = Annotated[User, Depends(get_admin_user)]


def get_optional_epay_client() -> EpayClient | None:
    """支付网关未配置时返回 None，由调用方决定返回 500 还是纯文本 fail"""
    if not settings.epay_enabled:
        return None
    return get_epay_client()


EpayClientDep = Annotated[EpayClient | None, Depends(get_optional_epay_client)]
NanoClientDep = Annotated[NanoBananaClient, Depends(get_nano_client)]
