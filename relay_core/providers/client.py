"""LLM 调用客户端。

本模块负责：

1. 在构造时按配置选定后端与方言（之后不再做字符串分支）。
2. 把统一的 ChatMessage 列表交给方言构造 HTTP 请求。
3. 调用 HTTP 接口并把网络/状态码/响应体错误归类为业务异常。
4. generate 对外“永远返回文本”：除取消外的任何失败都转成固定兜底回复，
   失败细节只通过日志暴露。

审核调用 approve_label 固定走 Gemini，与当前聊天后端无关，错误直接抛给调用方。
"""

import logging
from typing import Any, Optional, Sequence

import httpx

from relay_core.domain.exceptions import ApiError, EmptyResponseError, NetworkError, ValidationError
from relay_core.domain.models import ChatMessage, ProviderConfig
from relay_core.infrastructure.logging.logger import logger
from relay_core.providers.base import Dialect, PreparedRequest
from relay_core.providers.gemini_native import GeminiDialect
from relay_core.providers.openai_compat import OpenAICompatibleDialect
from relay_core.providers.registry import APPROVAL_BACKEND, BackendConfig, get_backend


SENTINEL_REPLY = "i overload!"

# 上游错误信息中保留的响应体最大长度
ERROR_SNIPPET_CHARS = 400

APPROVAL_SYSTEM_INSTRUCTION = (
    "You are a moderator for Discord call-names. "
    "Reply with exactly one word: 'yes' or 'no'. "
    "Reply 'no' if the content is insulting, harassing, hateful, sexual, "
    "discriminatory, or generally not appropriate for respectful addressing."
)

_YES_NO_STRIP = "`'\".!?[](){} "


def create_dialect(backend: BackendConfig, base_url: Optional[str] = None) -> Dialect:
    """根据后端登记的方言创建实现。"""

    url = base_url or backend.base_url
    if backend.dialect == "native":
        return GeminiDialect(url)
    return OpenAICompatibleDialect(url)


def normalize_yes_no(value: str) -> Optional[str]:
    """把审核回复规整为 "yes" / "no"；无法识别时返回 None。"""

    cleaned = (value or "").strip().lower().strip(_YES_NO_STRIP)
    if cleaned in ("yes", "y"):
        return "yes"
    if cleaned in ("no", "n"):
        return "no"
    return None


class LlmClient:
    """面向编排层的 LLM 客户端。

    - generate: 聊天回复，失败时返回 SENTINEL_REPLY，仅取消会向上传播。
    - approve_label: 是/否审核，失败直接抛出。
    """

    def __init__(self, config: ProviderConfig):
        self._config = config
        self._backend = get_backend(config.provider)
        self._dialect = create_dialect(self._backend, config.base_urls.get(self._backend.name))
        self._approval_dialect = create_dialect(APPROVAL_BACKEND, config.base_urls.get(APPROVAL_BACKEND.name))

    @property
    def backend_name(self) -> str:
        return self._backend.name

    @property
    def active_model(self) -> str:
        return self._config.models.get(self._backend.name) or self._backend.default_model

    async def generate(self, messages: Sequence[ChatMessage], system_prompt: str) -> str:
        """执行一次聊天调用，永远返回字符串。

        asyncio.CancelledError 不是 Exception 的子类，因此会原样向上传播。
        """

        try:
            return await self._generate(messages, system_prompt)
        except Exception as e:
            self._log(
                logging.WARNING,
                "llm.generate.failed",
                error_code=getattr(e, "code", type(e).__name__),
                http_status=e.http_status if isinstance(e, ApiError) else None,
                error=str(e),
            )
            return SENTINEL_REPLY

    async def approve_label(self, field_name: str, value: str) -> bool:
        """让固定的审核模型判断 value 是否适合作为称呼。

        只有规整后恰好为 yes/y 才返回 True；无法识别的回复按 False 处理，
        但与明确的 no 分别记录日志。
        """

        raw = await self._request_approval(field_name, value)
        verdict = normalize_yes_no(raw)
        if verdict is None:
            self._log(
                logging.WARNING,
                "llm.approval.unparseable",
                backend=APPROVAL_BACKEND.name,
                field=field_name,
                reply=raw[:64],
            )
            return False
        if verdict == "no":
            self._log(logging.INFO, "llm.approval.rejected", backend=APPROVAL_BACKEND.name, field=field_name)
            return False
        self._log(logging.INFO, "llm.approval.accepted", backend=APPROVAL_BACKEND.name, field=field_name)
        return True

    # ---- 辅助方法 ----

    async def _generate(self, messages: Sequence[ChatMessage], system_prompt: str) -> str:
        api_key = self._config.api_keys.get(self._backend.name)
        if not api_key or not api_key.strip():
            raise ValidationError(
                code="MISSING_API_KEY",
                message=f"Missing {self._backend.name.upper()}_API_KEY",
            )
        req = self._dialect.build_request(
            messages,
            system_prompt,
            model=self.active_model,
            api_key=api_key,
            temperature=self._config.temperature,
        )
        data = await self._post_json(req)
        reply = self._dialect.parse_reply(data)
        self._log(logging.INFO, "llm.generate.ok", messages=len(messages), reply_chars=len(reply))
        return reply

    async def _request_approval(self, field_name: str, value: str) -> str:
        api_key = self._config.approval_api_key
        if not api_key or not api_key.strip():
            raise ValidationError(
                code="MISSING_API_KEY",
                message="Missing APPROVAL_GEMINI_API_KEY (or GEMINI_API_KEY fallback)",
            )
        req = self._approval_dialect.build_request(
            [ChatMessage(role="user", content=f"Call-name field: {field_name}\nContent: {value}")],
            APPROVAL_SYSTEM_INSTRUCTION,
            model=self._config.approval_model,
            api_key=api_key,
            temperature=0,
        )
        data = await self._post_json(req)
        return self._approval_dialect.parse_reply(data)

    async def _post_json(self, req: PreparedRequest) -> Any:
        try:
            async with httpx.AsyncClient(timeout=self._config.http_timeout, trust_env=False) as client:
                resp = await client.post(req.url, json=req.json, headers=req.headers, params=req.params)
        except httpx.RequestError as e:
            # 网络错误：DNS 失败、连接超时等
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        if not 200 <= resp.status_code < 300:
            snippet = (resp.text or "")[:ERROR_SNIPPET_CHARS]
            raise ApiError(
                code="API_ERROR",
                message=f"Upstream HTTP {resp.status_code}: {snippet}",
                http_status=resp.status_code,
            )
        try:
            return resp.json()
        except ValueError as e:
            raise EmptyResponseError(code="MALFORMED_RESPONSE", message=f"Invalid JSON from upstream: {e}")

    def _log(self, level: int, message: str, **fields: Any) -> None:
        payload: dict = {"backend": self._backend.name}
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
