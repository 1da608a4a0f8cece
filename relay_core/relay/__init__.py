"""聊天中继编排：读取记忆 -> 调用 LLM -> 规整回复 -> 写回记忆。"""

from relay_core.relay.engine import ChatRelay

__all__ = ["ChatRelay"]
