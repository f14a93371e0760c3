"""
付费发型生成服务

流程：先扣积分，再调用生成接口；调用失败、结果为空或请求被取消时把积分退回。
退款是补偿性的入账（reason=generate_refund），有限次重试，最终失败只记日志，
不会替换掉原始的失败原因。
"""
from __future__ import annotations

import asyncio
import logging

from tenacity import after_log, retry, stop_after_attempt, wait_fixed

from hairswap import crud
from hairswap.api.errors import AppError, insufficient_points
from hairswap.core.config import settings
from hairswap.core.db import JsonStore
from hairswap.integrations.nano_banana import DEFAULT_PROMPT, NanoBananaClient, decode_data_url
from hairswap.models import REASON_GENERATE, REASON_GENERATE_REFUND

logger = logging.getLogger(__name__)

REFUND_MAX_TRIES = 3
REFUND_WAIT_SECONDS = 0.2


@retry(
    stop=stop_after_attempt(REFUND_MAX_TRIES),
    wait=wait_fixed(REFUND_WAIT_SECONDS),
    after=after_log(logger, logging.WARN),
    reraise=True,
)
async def _credit_refund(store: JsonStore, user_id: int, amount: int) -> int:
    return await crud.credit_points(
        store=store, user_id=user_id, amount=amount, reason=REASON_GENERATE_REFUND
    )


async def refund_generation(*, store: JsonStore, user_id: int, amount: int) -> bool:
    """
    退回生成扣除的积分

    Returns:
        bool: 是否退款成功（失败时已记录日志）
    """
    try:
        # 调用方正在被取消时，退款本身仍要跑完
        await asyncio.shield(_credit_refund(store, user_id, amount))
    except Exception:
        logger.warning(
            "Failed to refund %s points to user %s after %s attempts",
            amount,
            user_id,
            REFUND_MAX_TRIES,
            exc_info=True,
        )
        return False
    logger.info("Refunded %s points to user %s", amount, user_id)
    return True


async def generate(
    *,
    store: JsonStore,
    client: NanoBananaClient,
    user_id: int,
    user_image: str,
    hairstyle_image: str,
    prompt: str | None = None,
) -> list[str]:
    """
    生成换发型图片

    Args:
        store: 存储
        client: 生成接口客户端
        user_id: 当前用户
        user_image / hairstyle_image: data URL 格式的图片
        prompt: 提示词，缺省使用默认提示词

    Returns:
        list[str]: 图片引用列表（非空）

    Raises:
        AppError: 未配置（500）、图片格式错误（400）、积分不足（402）、生成失败或结果为空（502）
    """
    # 校验全部在扣费之前完成
    client.ensure_configured()
    user_img = decode_data_url(user_image)
    hairstyle_img = decode_data_url(hairstyle_image)
    cost = settings.GENERATION_COST

    debit = await crud.debit_points(store=store, user_id=user_id, amount=cost, reason=REASON_GENERATE)
    if not debit.ok:
        raise insufficient_points(debit.balance)

    try:
        output = await client.edit_images(
            user_image=user_img, hairstyle_image=hairstyle_img, prompt=prompt or DEFAULT_PROMPT
        )
    except (Exception, asyncio.CancelledError):
        await refund_generation(store=store, user_id=user_id, amount=cost)
        raise

    if not output:
        await refund_generation(store=store, user_id=user_id, amount=cost)
        raise AppError(code=502403, message="No image was generated", status_code=502)

    logger.info("Generated %s image(s) for user %s", len(output), user_id)
    return output
