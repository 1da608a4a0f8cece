"""Relay Core 顶层包。

该包提供聊天中继层的核心实现：把不同 LLM 后端返回的格式各异的文本
规整为一条可直接展示的回复，并为每个频道维护有界的会话记忆。
包括配置加载、领域模型、Provider 方言适配、文本规整与持久化存储等能力。
"""

from relay_core.relay import ChatRelay

__all__ = ["ChatRelay"]
