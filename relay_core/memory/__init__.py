"""按频道划分的有界会话记忆及其后台清理任务。"""

from relay_core.memory.cleanup import memory_cleanup_loop
from relay_core.memory.store import ChatMemoryStore

__all__ = ["ChatMemoryStore", "memory_cleanup_loop"]
