"""
SMTP 邮件发送

目前只用于发送注册验证码。smtplib 是阻塞调用，路由里通过 send_verification_code()
放到线程池执行，不阻塞事件循环。
"""
from __future__ import annotations

import asyncio
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from hairswap.api.errors import AppError
from hairswap.core.config import settings

logger = logging.getLogger(__name__)


def smtp_configured() -> bool:
    return bool(settings.SMTP_HOST and settings.SMTP_USER and settings.SMTP_PASSWORD)


def _build_message(to_email: str, code: str) -> MIMEMultipart:
    sender = settings.EMAILS_FROM_EMAIL or settings.SMTP_USER or ""
    msg = MIMEMultipart()
    msg["From"] = sender
    msg["To"] = to_email
    msg["Subject"] = f"{settings.PROJECT_NAME} 注册验证码"

    body = f"""您好！

您的验证码是：{code}

验证码有效期为 {settings.EMAIL_CODE_TTL_MINUTES} 分钟，请尽快使用。

如果这不是您的操作，请忽略此邮件。
"""
    msg.attach(MIMEText(body, "plain", "utf-8"))
    return msg


def send_verification_email(to_email: str, code: str) -> None:
    """
    发送验证码邮件（阻塞）

    Raises:
        AppError: SMTP 未配置（500301）或发送失败（502301）
    """
    if not smtp_configured():
        raise AppError(code=500301, message="Email delivery is not configured", status_code=500)

    msg = _build_message(to_email, code)
    smtp_cls = smtplib.SMTP_SSL if settings.SMTP_SSL else smtplib.SMTP
    try:
        with smtp_cls(settings.SMTP_HOST, settings.SMTP_PORT, timeout=30) as server:
            if not settings.SMTP_SSL:
                server.starttls()
            server.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
            server.sendmail(msg["From"], to_email, msg.as_string())
    except (smtplib.SMTPException, OSError) as e:
        logger.error("Failed to send verification email to %s: %s", to_email, e)
        raise AppError(code=502301, message="Failed to send verification email", status_code=502)

    logger.info("Verification email sent to %s", to_email)


async def send_verification_code(to_email: str, code: str) -> None:
    await asyncio.to_thread(send_verification_email, to_email, code)
