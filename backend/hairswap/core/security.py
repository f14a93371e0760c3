"""
安全工具模块

- 密码哈希：passlib + bcrypt
- 会话令牌：高熵随机十六进制串
- 邮箱验证码：6 位数字，只以加盐 SHA-256 形式落盘
"""
import hashlib
import hmac
import secrets

from passlib.context import CryptContext

from hairswap.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

SESSION_TOKEN_BYTES = 32  # 64 个十六进制字符


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def generate_session_token() -> str:
    return secrets.token_hex(SESSION_TOKEN_BYTES)


def generate_email_code() -> str:
    """生成 6 位数字验证码（100000-999999）"""
    return str(100000 + secrets.randbelow(900000))


def hash_email_code(code: str) -> str:
    return hashlib.sha256(f"{settings.AUTH_CODE_SECRET}:{code}".encode()).hexdigest()


def email_code_matches(code: str, code_hash: str) -> bool:
    return hmac.compare_digest(hash_email_code(code), code_hash)
