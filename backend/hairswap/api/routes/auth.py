"""
认证路由模块

邮箱 + 验证码注册，邮箱 + 密码登录。
登录态是服务端保存的不透明会话令牌：以 HttpOnly Cookie 下发，也可以通过
Authorization: Bearer 头携带。
"""
from __future__ import annotations

import re

from fastapi import APIRouter, Response

from hairswap import crud
from hairswap.api.deps import OptionalUser, SessionTokenDep, StoreDep, is_admin
from hairswap.api.errors import AppError, Conflict, InvalidArgument, Unauthenticated
from hairswap.api.schemas import (
    ApiEnvelope,
    LoginRequest,
    Message,
    RegisterRequest,
    RequestCodeRequest,
    SessionData,
    UserPublic,
)
from hairswap.core import security
from hairswap.core.config import settings
from hairswap.integrations import mail
from hairswap.models import AuthSession, User

router = APIRouter(prefix="/auth", tags=["auth"])

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
CODE_RE = re.compile(r"^\d{6}$")
MIN_PASSWORD_LENGTH = 8


def _validate_email(email: str) -> str:
    normalized = crud.normalize_email(email)
    if not EMAIL_RE.match(normalized):
        raise InvalidArgument(code=400001, message="Invalid email address")
    return normalized


def _set_session_cookie(response: Response, session: AuthSession) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=session.token,
        max_age=settings.SESSION_TTL_DAYS * 24 * 60 * 60,
        httponly=True,
        samesite="lax",
        secure=settings.ENVIRONMENT != "local",
        path="/",
    )


def _session_data(session: AuthSession, user: User) -> SessionData:
    return SessionData(
        token=session.token,
        expires_at=session.expires_at,
        user=UserPublic.from_user(user, is_admin=is_admin(user)),
    )


@router.post("/request-code", response_model=ApiEnvelope)
async def request_code(store: StoreDep, body: RequestCodeRequest) -> ApiEnvelope:
    """
    发送注册验证码

    请求路径: POST /api/v1/auth/request-code

    - 400: 邮箱格式不正确
    - 409: 邮箱已注册
    - 429: 冷却时间内重复请求
    - 500: 邮件服务未配置
    """
    email = _validate_email(body.email)
    if await crud.get_user_by_email(store=store, email=email) is not None:
        raise Conflict(code=409001, message="Email already registered")
    # 先检查邮件配置，避免验证码已落盘却发不出去、还占用冷却时间
    if not mail.smtp_configured():
        raise AppError(code=500301, message="Email delivery is not configured", status_code=500)

    code = security.generate_email_code()
    await crud.store_email_code(store=store, email=email, code=code)
    await mail.send_verification_code(email, code)
    return ApiEnvelope(data=Message(message="Verification code sent"))


@router.post("/register", response_model=ApiEnvelope)
async def register(store: StoreDep, body: RegisterRequest, response: Response) -> ApiEnvelope:
    """
    注册并登录

    请求路径: POST /api/v1/auth/register

    验证码校验通过后即被消费；新用户初始积分为 0。
    """
    email = _validate_email(body.email)
    if len(body.password) < MIN_PASSWORD_LENGTH:
        raise InvalidArgument(code=400002, message="Password must be at least 8 characters")
    if not CODE_RE.match(body.code.strip()):
        raise InvalidArgument(code=400003, message="Invalid verification code")
    if await crud.get_user_by_email(store=store, email=email) is not None:
        raise Conflict(code=409001, message="Email already registered")

    if not await crud.verify_email_code(store=store, email=email, code=body.code.strip()):
        raise InvalidArgument(code=400003, message="Invalid verification code")

    user = await crud.create_user(
        store=store, email=email, password_hash=security.get_password_hash(body.password)
    )
    session = await crud.create_session(store=store, user_id=user.id)
    _set_session_cookie(response, session)
    return ApiEnvelope(data=_session_data(session, user))


@router.post("/login", response_model=ApiEnvelope)
async def login(store: StoreDep, body: LoginRequest, response: Response) -> ApiEnvelope:
    """
    邮箱密码登录

    请求路径: POST /api/v1/auth/login

    邮箱不存在与密码错误返回同一个 401，不暴露邮箱是否注册。
    """
    user = await crud.get_user_by_email(store=store, email=body.email)
    if user is None or not security.verify_password(body.password, user.password_hash):
        raise Unauthenticated(code=401001, message="Invalid email or password")

    session = await crud.create_session(store=store, user_id=user.id)
    _set_session_cookie(response, session)
    return ApiEnvelope(data=_session_data(session, user))


@router.post("/logout", response_model=ApiEnvelope)
async def logout(store: StoreDep, token: SessionTokenDep, response: Response) -> ApiEnvelope:
    """退出登录：删除服务端会话并清除 Cookie（未登录时也返回成功）"""
    if token:
        await crud.delete_session(store=store, token=token)
    response.delete_cookie(key=settings.SESSION_COOKIE_NAME, path="/")
    return ApiEnvelope(data=Message(message="Logged out"))


@router.get("/me", response_model=ApiEnvelope)
async def me(user: OptionalUser) -> ApiEnvelope:
    """当前用户信息，未登录时 data 为 null"""
    if user is None:
        return ApiEnvelope(data=None)
    return ApiEnvelope(data=UserPublic.from_user(user, is_admin=is_admin(user)))
