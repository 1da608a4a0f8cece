"""OpenAI 兼容方言。

OpenAI 与 Groq 均使用 chat/completions 端点：
- URL: {base_url}/chat/completions
- 认证: Authorization: Bearer <api_key>

本实现只依赖公共字段：model/temperature/messages，以及响应中的 choices[].message.content。
"""

from typing import Any, Dict, List, Optional, Sequence

from relay_core.domain.exceptions import EmptyResponseError
from relay_core.domain.models import ChatMessage
from relay_core.providers.base import PreparedRequest


class OpenAICompatibleDialect:
    """OpenAI 兼容方言实现。"""

    name = "openai_compatible"

    def __init__(self, base_url: str):
        self._base_url = base_url.rstrip("/")

    def build_request(
        self,
        messages: Sequence[ChatMessage],
        system_prompt: str,
        *,
        model: str,
        api_key: str,
        temperature: float,
    ) -> PreparedRequest:
        msgs: List[Dict[str, Any]] = [{"role": "system", "content": system_prompt}]
        for m in messages:
            entry = self._message_to_payload(m)
            if entry is not None:
                msgs.append(entry)
        return PreparedRequest(
            url=f"{self._base_url}/chat/completions",
            json={
                "model": model,
                "temperature": temperature,
                "messages": msgs,
            },
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
        )

    def parse_reply(self, data: Any) -> str:
        """取 choices 中第一个非空的 message.content。

        content 既可能是字符串，也可能是 parts 数组（拼接其中的 text，换行分隔）。
        """

        choices = data.get("choices") if isinstance(data, dict) else None
        if not isinstance(choices, list) or not choices:
            raise EmptyResponseError(code="EMPTY_RESPONSE", message="Provider returned no choices.")
        for ch in choices:
            if not isinstance(ch, dict):
                continue
            msg = ch.get("message") or {}
            text = self._content_text(msg.get("content") if isinstance(msg, dict) else None)
            if text:
                return text
        raise EmptyResponseError(code="EMPTY_RESPONSE", message="Provider returned an empty response.")

    @staticmethod
    def _content_text(content: Any) -> str:
        if isinstance(content, str):
            return content.strip()
        if isinstance(content, list):
            parts = []
            for part in content:
                if not isinstance(part, dict):
                    continue
                text = part.get("text")
                if isinstance(text, str) and text.strip():
                    parts.append(text.strip())
            return "\n".join(parts)
        return ""

    @staticmethod
    def _message_to_payload(message: ChatMessage) -> Optional[Dict[str, Any]]:
        """带图片的消息序列化为 parts 数组；纯文本为空时整条跳过。"""

        text = message.content.strip()
        if message.images:
            parts: List[Dict[str, Any]] = []
            if text:
                parts.append({"type": "text", "text": text})
            for image in message.images:
                parts.append({"type": "image_url", "image_url": {"url": image.data_uri()}})
            return {"role": message.role, "content": parts}
        if not text:
            return None
        return {"role": message.role, "content": text}
