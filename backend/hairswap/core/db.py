"""
持久化存储模块

整个应用只有一份共享可变状态：DATA_DIR/db.json 文档。所有访问都经过 JsonStore：

- read(): 返回当前文档的快照（不加锁；写入是原子替换，读到的永远是完整文档）
- mutate(fn): 在全局互斥锁内执行“读取 -> fn 修改 -> 写回”

mutate 的保证：
1. fn 拿到的快照包含之前所有已完成的变更
2. 同一时刻只有一个 mutate 在执行（全局锁，而不是按行加锁），按提交顺序（FIFO）排队
3. 写回采用“写临时文件 + rename”，进程中途崩溃不会留下半截文件
4. fn 抛出异常时不写回，磁盘上保持上一次成功写入的状态
5. 已提交的 mutate 即使调用方被取消（如客户端断开），也会执行到写回完成再释放锁

所有领域操作（积分增减、订单结算等）都实现为一次 mutate 调用，彼此之间天然原子。
"""
from __future__ import annotations

import asyncio
import inspect
import json
import logging
import os
import tempfile
from collections.abc import Awaitable, Callable
from functools import lru_cache
from pathlib import Path
from typing import Any, TypeVar

from hairswap.core.config import settings
from hairswap.models import Database

logger = logging.getLogger(__name__)

T = TypeVar("T")

DB_FILENAME = "db.json"


class JsonStore:
    """
    单写者 JSON 文档存储

    Args:
        path: 文档路径，父目录不存在时会在第一次写入时创建
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        # asyncio.Lock 按等待顺序唤醒，保证 FIFO
        self._lock = asyncio.Lock()
        self._inflight: set[asyncio.Future[Any]] = set()

    async def read(self) -> Database:
        """读取文档快照；文档不存在时返回空集合"""
        return await asyncio.to_thread(self._load)

    async def mutate(self, fn: Callable[[Database], T | Awaitable[T]]) -> T:
        """
        在全局锁内执行一次读-改-写

        Args:
            fn: 接收可修改的完整文档，返回值原样返回给调用方；可以是普通函数或协程函数

        Returns:
            fn 的返回值
        """
        task = asyncio.ensure_future(self._serialized(fn))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        # 调用方被取消时，内部任务继续跑完并写盘
        return await asyncio.shield(task)

    async def init(self) -> None:
        """确保文档存在（空文档也会落盘）"""
        await self.mutate(lambda db: None)

    async def _serialized(self, fn: Callable[[Database], T | Awaitable[T]]) -> T:
        async with self._lock:
            db = await asyncio.to_thread(self._load)
            result = fn(db)
            if inspect.isawaitable(result):
                result = await result
            await asyncio.to_thread(self._dump, db)
            return result  # type: ignore[return-value]

    def _load(self) -> Database:
        if not self.path.exists():
            return Database()
        raw = self.path.read_text(encoding="utf-8")
        data = json.loads(raw) if raw.strip() else {}
        if not isinstance(data, dict):
            logger.warning("Store document %s is not an object, treating as empty", self.path)
            data = {}
        return Database.model_validate(data)

    def _dump(self, db: Database) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = db.model_dump(mode="json")
        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            # 临时文件写失败时清理，目标文件保持不变
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise


@lru_cache
def get_store() -> JsonStore:
    """
    获取全局存储实例（单例）

    使用 @lru_cache 保证整个进程只有一个 JsonStore，也就只有一把锁。
    """
    return JsonStore(settings.DATA_DIR / DB_FILENAME)
