"""对外 API 服务模块。

提供简化的函数接口供聊天平台网关调用。
"""

import asyncio
from typing import Any, Dict, Optional, Sequence

from relay_core.config.settings import settings
from relay_core.domain.models import ImageAttachment
from relay_core.infrastructure.logging.logger import logger
from relay_core.memory import ChatMemoryStore, memory_cleanup_loop
from relay_core.providers import create_client
from relay_core.relay.engine import DEFAULT_FALLBACK_PROMPT, ChatRelay


_memory: Optional[ChatMemoryStore] = None
_relay: Optional[ChatRelay] = None


def get_memory_store() -> ChatMemoryStore:
    """获取默认的会话记忆存储（单例）。"""
    global _memory
    if _memory is None:
        _memory = ChatMemoryStore(
            settings.chat_memory_db_path,
            settings.max_history,
            lock_stripes=settings.memory_lock_stripes,
        )
    return _memory


def get_default_relay() -> ChatRelay:
    """获取默认的 ChatRelay 实例（单例）。"""
    global _relay
    if _relay is None:
        _relay = ChatRelay(
            client=create_client(settings),
            memory=get_memory_store(),
            system_prompt=settings.full_system_prompt(),
            max_reply_chars=settings.max_reply_chars,
        )
    return _relay


async def run_chat(
    channel_id: int,
    prompt: str,
    fallback_prompt: str = DEFAULT_FALLBACK_PROMPT,
    images: Sequence[ImageAttachment] = (),
) -> Dict[str, Any]:
    """运行一轮聊天。

    Args:
        channel_id: 频道ID，会话记忆按频道隔离
        prompt: 用户输入内容
        fallback_prompt: prompt 为空时使用的提示
        images: 随消息发送的图片附件

    Returns:
        包含频道ID、完整回复以及按长度切分后的发送片段的字典
    """
    try:
        relay = get_default_relay()
        reply = await relay.run_turn(channel_id, prompt, fallback_prompt=fallback_prompt, images=images)
        return {
            "channel_id": channel_id,
            "reply": reply,
            "chunks": relay.reply_chunks(reply),
        }
    except Exception as e:
        logger.error(f"Chat failed: {e}", extra={"extra": {
            "channel_id": channel_id,
            "error": str(e),
        }})
        raise


async def reset_channel(channel_id: int) -> int:
    """清空频道记忆，返回删除的记录数。"""
    return await get_default_relay().reset(channel_id)


async def approve_label(field_name: str, value: str) -> bool:
    """审核称呼类字段，失败时异常直接抛给调用方。"""
    return await get_default_relay().approve_label(field_name, value)


def start_memory_cleanup() -> "asyncio.Task[None]":
    """在当前事件循环中启动后台空闲清理任务。"""
    return asyncio.create_task(
        memory_cleanup_loop(
            get_memory_store(),
            idle_ttl_seconds=settings.memory_idle_ttl_seconds,
            interval_seconds=settings.memory_cleanup_interval_seconds,
        )
    )
