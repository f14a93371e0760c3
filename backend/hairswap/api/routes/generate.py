"""
发型生成路由模块

每次生成消耗 GENERATION_COST 积分，失败、无结果或客户端断开时自动退回。
生成接口是同步调用，可能耗时较长；期间定期检查客户端是否已断开，
断开则取消上游调用（取消会触发退款）。
"""
from __future__ import annotations

import asyncio
import contextlib
import logging

from fastapi import APIRouter, Request

from hairswap.api.deps import CurrentUser, NanoClientDep, StoreDep
from hairswap.api.errors import AppError, InvalidArgument
from hairswap.api.schemas import ApiEnvelope, GenerateData, GenerateRequest
from hairswap.services import generation_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/generate", tags=["generate"])

DISCONNECT_POLL_SECONDS = 1.0


@router.post("", response_model=ApiEnvelope)
async def generate(
    current_user: CurrentUser,
    store: StoreDep,
    client: NanoClientDep,
    body: GenerateRequest,
    request: Request,
) -> ApiEnvelope:
    """
    生成换发型图片

    请求路径: POST /api/v1/generate
    请求体: {"userImage": "data:...", "hairstyleImage": "data:...", "prompt": "..."}

    - 400: 缺少图片或图片格式错误
    - 402: 积分不足
    - 500: 生成接口未配置
    - 502: 上游失败或未返回结果（已退款）
    """
    if not body.user_image or not body.hairstyle_image:
        raise InvalidArgument(code=400302, message="userImage and hairstyleImage are required")

    task = asyncio.create_task(
        generation_service.generate(
            store=store,
            client=client,
            user_id=current_user.id,
            user_image=body.user_image,
            hairstyle_image=body.hairstyle_image,
            prompt=body.prompt,
        )
    )
    while True:
        done, _ = await asyncio.wait({task}, timeout=DISCONNECT_POLL_SECONDS)
        if done:
            break
        if await request.is_disconnected():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            logger.info("Client disconnected, generation for user %s cancelled", current_user.id)
            raise AppError(code=499001, message="Client closed request", status_code=499)

    return ApiEnvelope(data=GenerateData(output=task.result()))
