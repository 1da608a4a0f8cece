"""后端与方言配置。

本模块把“后端名称”与“线协议方言”解耦：

- 后端（backend）：用户在配置里选择的服务，例如 "groq"。
- 方言（dialect）：该后端实际使用的请求/响应 JSON 结构。

OpenAI 与 Groq 共用 OpenAI 兼容方言，Gemini 使用原生方言。
新增后端时只需在这里登记，不必改动调用方。"""

from dataclasses import dataclass
from typing import Literal, Mapping

from relay_core.domain.exceptions import ValidationError


DialectName = Literal["openai_compatible", "native"]


@dataclass(frozen=True)
class BackendConfig:
    """单个后端的静态配置。"""

    name: str
    dialect: DialectName
    base_url: str
    default_model: str


OPENAI_BACKEND = BackendConfig(
    name="openai",
    dialect="openai_compatible",
    base_url="https://api.openai.com/v1",
    default_model="gpt-4o-mini",
)

GROQ_BACKEND = BackendConfig(
    name="groq",
    dialect="openai_compatible",
    base_url="https://api.groq.com/openai/v1",
    default_model="llama-3.3-70b-versatile",
)

GEMINI_BACKEND = BackendConfig(
    name="gemini",
    dialect="native",
    base_url="https://generativelanguage.googleapis.com/v1beta",
    default_model="gemini-3-flash",
)

# 审核调用固定使用的后端
APPROVAL_BACKEND = GEMINI_BACKEND


BACKEND_REGISTRY: Mapping[str, BackendConfig] = {
    "openai": OPENAI_BACKEND,
    "groq": GROQ_BACKEND,
    "gemini": GEMINI_BACKEND,
}


def get_backend(name: str) -> BackendConfig:
    """根据名称获取 BackendConfig，名称不区分大小写。"""

    key = (name or "").strip().lower()
    if key == "chatgpt":
        key = "openai"
    cfg = BACKEND_REGISTRY.get(key)
    if cfg is None:
        raise ValidationError(code="UNKNOWN_PROVIDER", message=f"Unsupported provider: {name!r}")
    return cfg
