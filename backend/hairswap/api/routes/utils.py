"""
工具路由模块

提供系统工具类的 API 端点，如健康检查等。
"""
from fastapi import APIRouter

from hairswap.api.deps import StoreDep

router = APIRouter(prefix="/utils", tags=["utils"])


@router.get("/health-check/")
async def health_check(store: StoreDep) -> bool:
    """
    健康检查端点

    请求路径: GET /api/v1/utils/health-check/

    同时读取一次存储文档，文档损坏时返回 500。
    """
    await store.read()
    return True
