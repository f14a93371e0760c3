"""
初始数据脚本

- 确保存储文档存在（DATA_DIR/db.json）
- 配置了 FIRST_ADMIN_EMAIL / FIRST_ADMIN_PASSWORD 时创建第一个管理员账号

管理员身份由 ADMIN_EMAILS 白名单决定，这里只负责创建账号本身；
FIRST_ADMIN_EMAIL 需要同时出现在 ADMIN_EMAILS 中才有管理员权限。

运行方式：
    python -m hairswap.initial_data
"""
import asyncio
import logging

from hairswap import crud
from hairswap.core import security
from hairswap.core.config import settings
from hairswap.core.db import JsonStore, get_store

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def init(store: JsonStore) -> None:
    await store.init()

    email = settings.FIRST_ADMIN_EMAIL
    password = settings.FIRST_ADMIN_PASSWORD
    if not email or not password:
        return
    if await crud.get_user_by_email(store=store, email=email) is not None:
        logger.info("First admin %s already exists", email)
        return
    user = await crud.create_user(
        store=store, email=email, password_hash=security.get_password_hash(password)
    )
    if user.email not in settings.admin_emails:
        logger.warning("%s is not listed in ADMIN_EMAILS and has no admin access", user.email)
    logger.info("First admin %s created", user.email)


def main() -> None:
    logger.info("Creating initial data")
    asyncio.run(init(get_store()))
    logger.info("Initial data created")


if __name__ == "__main__":  # pragma: no cover
    main()
