"""纯文本处理：提及清理、结构化答案提取、LaTeX 改写。无状态、无 I/O。"""

from relay_core.text.extraction import extract_answer
from relay_core.text.latex import latex_to_plain_math
from relay_core.text.normalizer import normalize_model_reply, sanitize_mentions, split_reply_chunks

__all__ = [
    "extract_answer",
    "latex_to_plain_math",
    "normalize_model_reply",
    "sanitize_mentions",
    "split_reply_chunks",
]
