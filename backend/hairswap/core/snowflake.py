"""
Snowflake ID 生成器模块

用户与积分流水的主键使用 Snowflake ID：按时间递增、单进程内无需查询存储即可生成。

ID 结构（64 位）：
- 41 位：时间戳（毫秒，从 2024-01-01T00:00:00Z 开始）
- 10 位：节点 ID（0-1023）
- 12 位：同一毫秒内的序列号（0-4095）
"""
from __future__ import annotations

import threading
import time
from functools import lru_cache

from hairswap.core.config import settings

EPOCH_MS = 1704067200000
NODE_BITS = 10
SEQUENCE_BITS = 12
MAX_NODE_ID = (1 << NODE_BITS) - 1
SEQUENCE_MASK = (1 << SEQUENCE_BITS) - 1
MAX_CLOCK_ROLLBACK_MS = 5000


class Snowflake:
    """64 位 Snowflake ID 生成器（线程安全）"""

    def __init__(self, *, node_id: int) -> None:
        if not (0 <= node_id <= MAX_NODE_ID):
            raise ValueError(f"SNOWFLAKE_NODE_ID must be in [0, {MAX_NODE_ID}]")
        self._node_id = node_id
        self._lock = threading.Lock()
        self._last_ts = -1
        self._seq = 0

    @staticmethod
    def _now_ms() -> int:
        return time.time_ns() // 1_000_000

    @classmethod
    def _wait_until(cls, target_ms: int) -> int:
        """自旋等待到 target_ms，返回当时的时间戳"""
        now = cls._now_ms()
        while now < target_ms:
            time.sleep(0.001)
            now = cls._now_ms()
        return now

    def _resolve_timestamp(self) -> int:
        """
        取本次生成使用的时间戳并推进序列号（调用方持有锁）

        Raises:
            RuntimeError: 时钟回拨超过 MAX_CLOCK_ROLLBACK_MS
        """
        now = self._now_ms()
        if now < self._last_ts:
            rollback = self._last_ts - now
            if rollback > MAX_CLOCK_ROLLBACK_MS:
                raise RuntimeError(f"Clock moved backwards by {rollback}ms, refusing to generate ids")
            now = self._wait_until(self._last_ts)

        if now != self._last_ts:
            self._seq = 0
            return now

        self._seq = (self._seq + 1) & SEQUENCE_MASK
        if self._seq == 0:
            # 本毫秒序列号用尽
            return self._wait_until(self._last_ts + 1)
        return now

    def next_id(self) -> int:
        with self._lock:
            ts = self._resolve_timestamp()
            self._last_ts = ts
            return (
                ((ts - EPOCH_MS) << (NODE_BITS + SEQUENCE_BITS))
                | (self._node_id << SEQUENCE_BITS)
                | self._seq
            )


@lru_cache
def get_generator() -> Snowflake:
    return Snowflake(node_id=settings.SNOWFLAKE_NODE_ID)


def generate_id() -> int:
    """生成唯一 ID（进程内单例生成器）"""
    return get_generator().next_id()
