"""会话记忆的后台空闲清理任务。"""

from __future__ import annotations

import asyncio

from relay_core.infrastructure.logging.logger import logger
from relay_core.memory.store import ChatMemoryStore


async def memory_cleanup_loop(
    store: ChatMemoryStore,
    *,
    idle_ttl_seconds: int,
    interval_seconds: float = 60.0,
) -> None:
    """每隔 interval_seconds 调用一次 prune_idle，直到任务被取消。

    单次清理失败只记录日志，循环继续。
    """

    if idle_ttl_seconds <= 0:
        return

    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await store.prune_idle(idle_ttl_seconds)
        except Exception as e:
            logger.warning("memory.cleanup.error", extra={"extra": {"error": str(e)}})
