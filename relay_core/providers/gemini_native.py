"""Gemini 原生方言。

与 OpenAI 兼容方言的主要差异：
- URL: {base_url}/models/{model}:generateContent，API key 通过 query 参数 key 传递。
- assistant 角色映射为 "model"，其余一律为 "user"。
- 系统提示词放在 systemInstruction 字段，而不是普通消息。
- 图片以 inlineData（mimeType + base64）形式内联。
"""

from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

from relay_core.domain.exceptions import EmptyResponseError
from relay_core.domain.models import ChatMessage
from relay_core.providers.base import PreparedRequest


class GeminiDialect:
    """Gemini generateContent 方言实现。"""

    name = "native"

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
        contents: List[Dict[str, Any]] = []
        for m in messages:
            entry = self._message_to_payload(m)
            if entry is not None:
                contents.append(entry)
        return PreparedRequest(
            url=f"{self._base_url}/models/{quote(model, safe='')}:generateContent",
            json={
                "contents": contents,
                "generationConfig": {"temperature": temperature},
                "systemInstruction": {"parts": [{"text": system_prompt}]},
            },
            headers={"Content-Type": "application/json"},
            params={"key": api_key},
        )

    def parse_reply(self, data: Any) -> str:
        """优先取顶层 text；否则取第一个含非空文本的 candidate，多个 part 换行拼接。"""

        if not isinstance(data, dict):
            raise EmptyResponseError(code="EMPTY_RESPONSE", message="Gemini returned an empty response.")

        direct = data.get("text")
        if isinstance(direct, str) and direct.strip():
            return direct.strip()

        candidates = data.get("candidates")
        if not isinstance(candidates, list):
            raise EmptyResponseError(code="EMPTY_RESPONSE", message="Gemini returned an empty response.")

        for cand in candidates:
            content = cand.get("content") if isinstance(cand, dict) else None
            parts = content.get("parts") if isinstance(content, dict) else None
            if not isinstance(parts, list):
                continue
            texts = []
            for part in parts:
                if not isinstance(part, dict):
                    continue
                text = part.get("text")
                if isinstance(text, str) and text.strip():
                    texts.append(text.strip())
            if texts:
                return "\n".join(texts)

        raise EmptyResponseError(code="EMPTY_RESPONSE", message="Gemini returned an empty response.")

    @staticmethod
    def _message_to_payload(message: ChatMessage) -> Optional[Dict[str, Any]]:
        role = "model" if message.role == "assistant" else "user"
        parts: List[Dict[str, Any]] = []
        if message.content.strip():
            parts.append({"text": message.content})
        for image in message.images:
            parts.append({"inlineData": {"mimeType": image.mime_type, "data": image.data_b64}})
        if not parts:
            return None
        return {"role": role, "parts": parts}
