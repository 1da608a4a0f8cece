"""Provider 方言抽象接口。

LlmClient 不直接拼装各厂商的 JSON，而是依赖此协议：

- 每种线协议实现一个 Dialect（OpenAI 兼容 / Gemini 原生）。
- 负责：把 ChatMessage 列表转成 HTTP 请求，并把响应 JSON 解析为回复文本。

方言在配置阶段选定一次，调用路径上不再出现字符串分支。
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, Sequence

from relay_core.domain.models import ChatMessage


@dataclass
class PreparedRequest:
    """一次待发送的 HTTP POST。"""

    url: str
    json: Dict[str, Any]
    headers: Dict[str, str] = field(default_factory=dict)
    params: Optional[Dict[str, str]] = None


class Dialect(Protocol):
    """线协议方言。

    实现者需要提供：
    - name: 方言名称，用于日志。
    - build_request: 构造请求。
    - parse_reply: 从响应 JSON 中提取回复文本；没有可用文本时抛出 EmptyResponseError。
    """

    name: str

    def build_request(
        self,
        messages: Sequence[ChatMessage],
        system_prompt: str,
        *,
        model: str,
        api_key: str,
        temperature: float,
    ) -> PreparedRequest:
        ...

    def parse_reply(self, data: Any) -> str:
        ...
