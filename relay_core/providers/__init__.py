"""LLM Provider 集成层。

该包下的模块负责：
- 定义方言抽象接口 (base)。
- 维护后端与方言配置 (registry)。
- 提供两种方言的具体实现 (openai_compat、gemini_native)。
- 对外的调用客户端 (client)。
"""

from relay_core.config.settings import settings
from relay_core.providers.client import SENTINEL_REPLY, LlmClient


def create_client(cfg=None) -> LlmClient:
    """根据配置创建 LlmClient，默认取全局 settings。"""

    return LlmClient((cfg or settings).provider_config())


__all__ = ["LlmClient", "SENTINEL_REPLY", "create_client"]
