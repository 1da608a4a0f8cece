"""聊天中继引擎。

把三个核心部件串起来完成一轮对话：

1. 从 ChatMemoryStore 读取该频道的历史窗口。
2. 历史 + 本轮用户消息（含图片）交给 LlmClient.generate。
3. 原始回复经 normalize_model_reply 提取答案并改写 LaTeX。
4. 把本轮 user/assistant 两条记录写回记忆（写入时自动裁剪）。
"""

import logging
import time
from typing import Any, Dict, List, Sequence
from uuid import uuid4

from relay_core.domain.models import ChatMessage, ImageAttachment
from relay_core.infrastructure.logging.logger import logger
from relay_core.memory.store import ChatMemoryStore
from relay_core.providers.client import LlmClient
from relay_core.text import normalize_model_reply, split_reply_chunks


DEFAULT_FALLBACK_PROMPT = "Say hi to the user."


def normalize_prompt(prompt: str, fallback: str) -> str:
    value = (prompt or "").strip()
    return value or fallback


def memory_user_entry(prompt: str, image_count: int) -> str:
    """写入记忆的用户消息；图片内容不入库，只记录数量。"""

    if image_count <= 0:
        return prompt
    return f"{prompt}\n[attached_images={image_count}]"


class ChatRelay:
    def __init__(
        self,
        client: LlmClient,
        memory: ChatMemoryStore,
        system_prompt: str,
        max_reply_chars: int = 1800,
    ):
        self._client = client
        self._memory = memory
        self._system_prompt = system_prompt
        self._max_reply_chars = max_reply_chars

    async def run_turn(
        self,
        channel_id: int,
        prompt: str,
        *,
        fallback_prompt: str = DEFAULT_FALLBACK_PROMPT,
        images: Sequence[ImageAttachment] = (),
    ) -> str:
        """执行一轮对话并返回规整后的回复文本。

        LLM 失败时 generate 已返回兜底文本，这里照常写入记忆；
        记忆读写错误与取消会直接向上传播。
        """

        start_time = time.time()
        log_ctx: Dict[str, Any] = {
            "trace_id": f"tr-{uuid4().hex}",
            "channel_id": channel_id,
            "backend": self._client.backend_name,
        }
        effective_prompt = normalize_prompt(prompt, fallback_prompt)

        history = await self._memory.get_history(channel_id)
        messages: List[ChatMessage] = [ChatMessage(role=t.role, content=t.content) for t in history]
        messages.append(ChatMessage(role="user", content=effective_prompt, images=tuple(images)))
        self._log(logging.INFO, "relay.turn.start", log_ctx, history=len(history), images=len(images))

        raw_reply = await self._client.generate(messages, self._system_prompt)
        reply = normalize_model_reply(raw_reply)

        await self._memory.append(channel_id, "user", memory_user_entry(effective_prompt, len(images)))
        await self._memory.append(channel_id, "assistant", reply)
        self._log(
            logging.INFO,
            "relay.turn.end",
            log_ctx,
            reply_chars=len(reply),
            elapsed_ms=int((time.time() - start_time) * 1000),
        )
        return reply

    def reply_chunks(self, reply: str) -> List[str]:
        return split_reply_chunks(reply, self._max_reply_chars)

    async def reset(self, channel_id: int) -> int:
        return await self._memory.clear(channel_id)

    async def approve_label(self, field_name: str, value: str) -> bool:
        return await self._client.approve_label(field_name, value)

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
