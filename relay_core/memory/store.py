"""按频道划分、有上限的会话记忆（SQLite）。

同步 SQL 函数（*_sync）只负责单次数据库操作；ChatMemoryStore 在
asyncio 锁内通过 asyncio.to_thread 调用它们。锁按 channel_id 分片：
同一频道的追加/裁剪/读取/清空互斥，prune_idle 与 initialize 按固定顺序
获取全部分片。lock_stripes=1 时退化为整个存储一把锁。
"""

from __future__ import annotations

import asyncio
import sqlite3
import time
from contextlib import AsyncExitStack, asynccontextmanager, closing
from pathlib import Path
from typing import AsyncIterator, Callable

from relay_core.domain.exceptions import ValidationError
from relay_core.domain.models import MEMORY_ROLES, Turn
from relay_core.infrastructure.logging.logger import logger


SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS chat_memory (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        channel_id INTEGER NOT NULL,
        role TEXT NOT NULL,
        content TEXT NOT NULL,
        created_ts REAL NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_chat_memory_channel_id_id ON chat_memory (channel_id, id)",
)


def init_chat_memory_sync(conn: sqlite3.Connection) -> None:
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA synchronous=NORMAL")
    for stmt in SCHEMA_STATEMENTS:
        conn.execute(stmt)
    conn.commit()


def trim_channel_sync(conn: sqlite3.Connection, channel_id: int, max_messages: int) -> int:
    """删除该频道最近 max_messages 条之外的记录，不提交事务。"""

    row = conn.execute(
        """
        SELECT id FROM chat_memory
        WHERE channel_id = ?
        ORDER BY id DESC
        LIMIT 1 OFFSET ?
        """,
        (channel_id, max_messages - 1),
    ).fetchone()
    if row is None:
        return 0
    cur = conn.execute(
        "DELETE FROM chat_memory WHERE channel_id = ? AND id < ?",
        (channel_id, int(row[0])),
    )
    return int(cur.rowcount or 0)


def append_turn_sync(
    conn: sqlite3.Connection,
    channel_id: int,
    role: str,
    content: str,
    created_ts: float,
    max_messages: int,
) -> tuple[int, int]:
    """插入一条记录并在同一事务内裁剪，返回 (新记录 id, 删除条数)。"""

    with conn:
        cur = conn.execute(
            "INSERT INTO chat_memory (channel_id, role, content, created_ts) VALUES (?, ?, ?, ?)",
            (channel_id, role, content, created_ts),
        )
        turn_id = int(cur.lastrowid)
        trimmed = trim_channel_sync(conn, channel_id, max_messages)
    return turn_id, trimmed


def fetch_history_sync(conn: sqlite3.Connection, channel_id: int, limit: int) -> list[Turn]:
    rows = conn.execute(
        """
        SELECT id, role, content, created_ts
        FROM chat_memory
        WHERE channel_id = ?
        ORDER BY id DESC
        LIMIT ?
        """,
        (channel_id, limit),
    ).fetchall()
    turns = [Turn(role=r[1], content=r[2], sequence=int(r[0]), created_ts=float(r[3])) for r in rows]
    turns.reverse()
    return turns


def clear_channel_sync(conn: sqlite3.Connection, channel_id: int) -> int:
    with conn:
        cur = conn.execute("DELETE FROM chat_memory WHERE channel_id = ?", (channel_id,))
    return int(cur.rowcount or 0)


def prune_idle_channels_sync(conn: sqlite3.Connection, cutoff_ts: float) -> int:
    """删除最近一条记录早于 cutoff_ts 的所有频道的全部记录。"""

    with conn:
        cur = conn.execute(
            """
            DELETE FROM chat_memory
            WHERE channel_id IN (
                SELECT channel_id
                FROM chat_memory
                GROUP BY channel_id
                HAVING MAX(created_ts) < ?
            )
            """,
            (cutoff_ts,),
        )
    return int(cur.rowcount or 0)


class ChatMemoryStore:
    """每个频道最多保留 max_history_turns 轮（2 倍条数）的会话记忆。"""

    def __init__(
        self,
        db_path: str | Path,
        max_history_turns: int,
        *,
        lock_stripes: int = 16,
        clock: Callable[[], float] = time.time,
    ):
        self._db_path = Path(db_path)
        self._max_messages = max(2, int(max_history_turns) * 2)
        self._locks = [asyncio.Lock() for _ in range(max(1, int(lock_stripes)))]
        self._clock = clock
        self._initialized = False

    @property
    def max_messages(self) -> int:
        return self._max_messages

    async def initialize(self) -> None:
        """创建表与索引，可重复调用。"""
        async with self._all_locks():
            await self._initialize_locked()

    async def append(self, channel_id: int, role: str, content: str) -> Turn:
        if role not in MEMORY_ROLES:
            raise ValidationError(code="INVALID_ROLE", message=f"Invalid role: {role}")
        await self._ensure_initialized()
        created_ts = float(self._clock())
        async with self._lock_for(channel_id):
            turn_id, trimmed = await asyncio.to_thread(
                self._run, append_turn_sync, int(channel_id), role, content, created_ts, self._max_messages
            )
        if trimmed:
            logger.info(
                "memory.trim",
                extra={"extra": {"channel_id": channel_id, "trimmed": trimmed, "max_messages": self._max_messages}},
            )
        return Turn(role=role, content=content, sequence=turn_id, created_ts=created_ts)

    async def get_history(self, channel_id: int) -> list[Turn]:
        await self._ensure_initialized()
        async with self._lock_for(channel_id):
            return await asyncio.to_thread(self._run, fetch_history_sync, int(channel_id), self._max_messages)

    async def clear(self, channel_id: int) -> int:
        await self._ensure_initialized()
        async with self._lock_for(channel_id):
            deleted = await asyncio.to_thread(self._run, clear_channel_sync, int(channel_id))
        logger.info("memory.clear", extra={"extra": {"channel_id": channel_id, "deleted": deleted}})
        return deleted

    async def prune_idle(self, idle_seconds: int) -> int:
        """清空最近一条记录早于 idle_seconds 秒前的频道；idle_seconds <= 0 时不做任何事。"""

        if idle_seconds <= 0:
            return 0
        await self._ensure_initialized()
        cutoff = float(self._clock()) - idle_seconds
        async with self._all_locks():
            deleted = await asyncio.to_thread(self._run, prune_idle_channels_sync, cutoff)
        if deleted:
            logger.info("memory.prune_idle", extra={"extra": {"deleted": deleted, "idle_seconds": idle_seconds}})
        return deleted

    # ---- 辅助方法 ----

    def _lock_for(self, channel_id: int) -> asyncio.Lock:
        return self._locks[hash(int(channel_id)) % len(self._locks)]

    @asynccontextmanager
    async def _all_locks(self) -> AsyncIterator[None]:
        # 固定按下标顺序获取，避免与其他全局操作互相等待
        async with AsyncExitStack() as stack:
            for lock in self._locks:
                await stack.enter_async_context(lock)
            yield

    async def _ensure_initialized(self) -> None:
        if not self._initialized:
            await self.initialize()

    async def _initialize_locked(self) -> None:
        if self._initialized:
            return
        self._db_path.resolve().parent.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(self._run, init_chat_memory_sync)
        self._initialized = True

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self._db_path, timeout=30.0)

    def _run(self, func, *args):
        with closing(self._connect()) as conn:
            return func(conn, *args)
