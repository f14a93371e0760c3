"""
nano-banana 图像编辑 API 集成模块

封装发型替换所用的 /v1/images/edits 接口：
- 把前端传来的 data URL 图片解码为二进制
- 以 multipart 表单提交（用户照片 + 参考发型图，两个 image 字段）
- 把不同版本的响应格式统一为图片引用列表（URL 或 data URL）

这是同步生成接口：一次请求直接返回结果，没有任务查询。
"""
from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import httpx

from hairswap.api.errors import AppError, InvalidArgument
from hairswap.core.config import Settings, settings

logger = logging.getLogger(__name__)

_EDITS_PATH = "/v1/images/edits"
_DATA_URL_RE = re.compile(r"^data:([^;]+);base64,(.+)$", re.DOTALL)

DEFAULT_PROMPT = (
    "保留人物五官与肤色，完全替换原有发型为参考图发型，去掉原发型痕迹，"
    "不要叠加或残影，只保留一个发型，发际线自然，发丝清晰，保持光线与肤色自然，背景不变"
)


@dataclass(frozen=True)
class DecodedImage:
    """解码后的图片"""
    mime_type: str
    content: bytes


def decode_data_url(data_url: str) -> DecodedImage:
    """
    解码 data:<mime>;base64,<data> 格式的图片

    Raises:
        InvalidArgument: 格式不正确或 base64 无法解码
    """
    match = _DATA_URL_RE.match(data_url or "")
    if not match:
        raise InvalidArgument(code=400301, message="Invalid image data")
    try:
        content = base64.b64decode(match.group(2), validate=True)
    except (binascii.Error, ValueError):
        raise InvalidArgument(code=400301, message="Invalid image data")
    return DecodedImage(mime_type=match.group(1), content=content)


def normalize_output(data: Any) -> list[str]:
    """
    统一响应里的图片结果

    依次尝试：output[] -> data[].url / data[].b64_json -> url -> b64_json。
    b64_json 转为 data:image/png;base64,... 形式。
    """
    if not isinstance(data, dict):
        return []

    if isinstance(data.get("output"), list):
        return [item for item in data["output"] if isinstance(item, str) and item]

    if isinstance(data.get("data"), list):
        images: list[str] = []
        for item in data["data"]:
            if not isinstance(item, dict):
                continue
            if isinstance(item.get("url"), str):
                images.append(item["url"])
            elif isinstance(item.get("b64_json"), str):
                images.append(f"data:image/png;base64,{item['b64_json']}")
        return images

    if isinstance(data.get("url"), str):
        return [data["url"]]

    if isinstance(data.get("b64_json"), str):
        return [f"data:image/png;base64,{data['b64_json']}"]

    return []


class NanoBananaClient:
    """
    nano-banana API 客户端

    配置在构造时从 Settings 读取一次。
    """

    def __init__(self, s: Settings) -> None:
        self._base_url = (s.NANO_API_URL or "").rstrip("/")
        self._api_key = s.NANO_API_KEY
        self._model = s.NANO_MODEL
        self._response_format = s.NANO_RESPONSE_FORMAT
        self._aspect_ratio = s.NANO_ASPECT_RATIO
        self._image_size = s.NANO_IMAGE_SIZE
        self._timeout = s.NANO_TIMEOUT_SECONDS

    @property
    def configured(self) -> bool:
        return bool(self._base_url and self._api_key)

    def ensure_configured(self) -> None:
        """
        Raises:
            AppError: NANO_API_URL 或 NANO_API_KEY 未配置（500401）
        """
        if not self.configured:
            raise AppError(code=500401, message="Image generation is not configured", status_code=500)

    def _headers(self) -> dict[str, str]:
        self.ensure_configured()
        return {"Authorization": f"Bearer {self._api_key}"}

    async def edit_images(
        self, *, user_image: DecodedImage, hairstyle_image: DecodedImage, prompt: str
    ) -> list[str]:
        """
        调用图像编辑接口生成换发型结果

        Args:
            user_image: 用户照片
            hairstyle_image: 参考发型图
            prompt: 提示词

        Returns:
            list[str]: 图片引用列表（可能为空，由调用方决定如何处理）

        Raises:
            AppError: 未配置（500401）、HTTP 调用失败或上游返回错误（502401）、响应无法解析（502402）
        """
        headers = self._headers()
        form: dict[str, str] = {
            "model": self._model,
            "prompt": prompt,
            "response_format": self._response_format,
            "aspect_ratio": self._aspect_ratio,
        }
        if self._image_size:
            form["image_size"] = self._image_size
        files = [
            ("image", ("user-image.png", user_image.content, user_image.mime_type)),
            ("image", ("hairstyle-image.png", hairstyle_image.content, hairstyle_image.mime_type)),
        ]

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    f"{self._base_url}{_EDITS_PATH}", headers=headers, data=form, files=files
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error("nano-banana returned HTTP %s", e.response.status_code)
            raise AppError(code=502401, message="Image generation failed", status_code=502)
        except httpx.HTTPError as e:
            logger.error("nano-banana request failed: %s", e)
            raise AppError(code=502401, message="Image generation failed", status_code=502)

        if response.status_code == 204:
            return []
        try:
            data = response.json()
        except ValueError:
            raise AppError(code=502402, message="Invalid image generation response", status_code=502)
        return normalize_output(data)


@lru_cache
def get_nano_client() -> NanoBananaClient:
    return NanoBananaClient(settings)
