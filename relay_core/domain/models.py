"""统一的对话数据模型。

本模块定义了中继层在不同 Provider 之间共享的标准数据结构：

- ImageAttachment: 随消息发送的内联图片（base64）。
- ChatMessage: 发给 Provider 的一条消息（system/user/assistant）。
- Turn: 会话记忆中持久化的一条历史消息。

所有 Provider 方言（OpenAI 兼容 / Gemini 原生）都只依赖这些模型，
并负责在各自的 API JSON 和这些模型之间做转换。
"""

from dataclasses import dataclass, field
from typing import Literal, Mapping, Optional, Tuple


# LLM 消息角色类型
Role = Literal["system", "user", "assistant"]

# 会话记忆只保存 user/assistant 两种角色
MEMORY_ROLES = ("user", "assistant")


@dataclass(frozen=True)
class ImageAttachment:
    """内联图片附件。

    - mime_type: 例如 "image/png"。
    - data_b64: base64 编码后的图片字节。
    """

    mime_type: str
    data_b64: str

    def data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.data_b64}"


@dataclass(frozen=True)
class ChatMessage:
    """一条对话消息，构造后不可变。

    images 按顺序保存，发送给支持多模态输入的 Provider。
    """

    role: Role
    content: str
    images: Tuple[ImageAttachment, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Turn:
    """会话记忆中的一条记录。

    - sequence: 单调递增的存储 id，决定先后顺序。
    - created_ts: 写入时间（epoch 秒），用于空闲淘汰。
    """

    role: str
    content: str
    sequence: int
    created_ts: float


@dataclass(frozen=True)
class ProviderConfig:
    """一次性选定的 Provider 配置（不可变）。

    - provider: 当前聊天后端名称（gemini / groq / openai）。
    - models / api_keys / base_urls: 按后端名称索引，base_urls 只放需要覆盖的项。
    - approval_model / approval_api_key: 审核调用专用，后端固定为 gemini，
      不跟随 provider 变化。
    """

    provider: str
    models: Mapping[str, str] = field(default_factory=dict)
    api_keys: Mapping[str, Optional[str]] = field(default_factory=dict)
    temperature: float = 0.7
    approval_model: str = "gemini-3-flash"
    approval_api_key: Optional[str] = None
    base_urls: Mapping[str, str] = field(default_factory=dict)
    http_timeout: float = 90.0
