"""用户、会话与邮箱验证码 CRUD 操作"""
from __future__ import annotations

from datetime import timedelta

from hairswap.api.errors import Conflict, too_frequent
from hairswap.core import security
from hairswap.core.config import settings
from hairswap.core.db import JsonStore
from hairswap.enums import EmailCodePurpose
from hairswap.models import AuthSession, Database, EmailCode, User, is_expired, utc_now


def normalize_email(email: str) -> str:
    return email.strip().lower()


async def get_by_email(*, store: JsonStore, email: str) -> User | None:
    """根据邮箱查询用户"""
    db = await store.read()
    return db.find_user_by_email(normalize_email(email))


async def get_by_id(*, store: JsonStore, user_id: int) -> User | None:
    db = await store.read()
    return db.find_user(user_id)


async def create(*, store: JsonStore, email: str, password_hash: str) -> User:
    """创建用户（初始余额 0），邮箱已存在时抛出 Conflict"""
    normalized = normalize_email(email)

    def _create(db: Database) -> User:
        if db.find_user_by_email(normalized) is not None:
            raise Conflict(code=409001, message="Email already registered")
        user = User(email=normalized, password_hash=password_hash)
        db.users.append(user)
        return user

    return await store.mutate(_create)


async def create_session(*, store: JsonStore, user_id: int) -> AuthSession:
    """为用户创建新会话，有效期 SESSION_TTL_DAYS 天"""
    session = AuthSession(
        token=security.generate_session_token(),
        user_id=user_id,
        expires_at=utc_now() + timedelta(days=settings.SESSION_TTL_DAYS),
    )

    def _add(db: Database) -> AuthSession:
        db.sessions.append(session)
        return session

    return await store.mutate(_add)


async def delete_session(*, store: JsonStore, token: str) -> None:
    def _delete(db: Database) -> None:
        db.sessions = [s for s in db.sessions if s.token != token]

    await store.mutate(_delete)


async def get_by_session_token(*, store: JsonStore, token: str) -> User | None:
    """
    根据会话令牌解析用户

    会话过期时顺手删除该会话并返回 None。
    """
    db = await store.read()
    session = next((s for s in db.sessions if s.token == token), None)
    if session is None:
        return None
    if is_expired(session.expires_at):
        await delete_session(store=store, token=token)
        return None
    return db.find_user(session.user_id)


async def store_email_code(*, store: JsonStore, email: str, code: str) -> None:
    """
    保存注册验证码（只保存哈希）

    同一邮箱在冷却时间内重复请求会抛出 429；新验证码会替换旧的。
    """
    normalized = normalize_email(email)
    now = utc_now()
    record = EmailCode(
        email=normalized,
        code_hash=security.hash_email_code(code),
        purpose=EmailCodePurpose.register,
        expires_at=now + timedelta(minutes=settings.EMAIL_CODE_TTL_MINUTES),
        cooldown_until=now + timedelta(seconds=settings.EMAIL_CODE_COOLDOWN_SECONDS),
    )

    def _store(db: Database) -> None:
        existing = next(
            (c for c in db.email_codes if c.email == normalized and c.purpose == record.purpose),
            None,
        )
        if existing is not None and not is_expired(existing.cooldown_until, now=now):
            raise too_frequent()
        db.email_codes = [
            c for c in db.email_codes if c.email != normalized or c.purpose != record.purpose
        ]
        db.email_codes.append(record)

    await store.mutate(_store)


async def verify_email_code(*, store: JsonStore, email: str, code: str) -> bool:
    """
    校验注册验证码

    匹配成功后验证码被消费（删除）；过期的验证码在校验时删除。
    """
    normalized = normalize_email(email)

    def _verify(db: Database) -> bool:
        record = next(
            (
                c
                for c in db.email_codes
                if c.email == normalized and c.purpose == EmailCodePurpose.register
            ),
            None,
        )
        if record is None:
            return False
        if is_expired(record.expires_at):
            db.email_codes = [c for c in db.email_codes if c is not record]
            return False
        matches = security.email_code_matches(code, record.code_hash)
        if matches:
            db.email_codes = [c for c in db.email_codes if c is not record]
        return matches

    return await store.mutate(_verify)
