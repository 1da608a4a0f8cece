"""模型回复的规整与发送前处理。"""

import re
from typing import List

from relay_core.text.extraction import extract_answer
from relay_core.text.latex import latex_to_plain_math


# 平台单条消息的硬上限（留出余量）
PLATFORM_MESSAGE_LIMIT = 1900

EMPTY_REPLY_PLACEHOLDER = "(no content)"

_EVERYONE_RE = re.compile("@everyone", re.IGNORECASE)
_HERE_RE = re.compile("@here", re.IGNORECASE)


def sanitize_mentions(text: str) -> str:
    """在 @everyone / @here 中插入零宽空格，避免触发全员提醒。"""

    sanitized = _EVERYONE_RE.sub("@\u200beveryone", text)
    return _HERE_RE.sub("@\u200bhere", sanitized)


def normalize_model_reply(text: str) -> str:
    """先提取结构化答案（没有则用原文），再做 LaTeX 改写。"""

    answer = extract_answer(text)
    return latex_to_plain_math(answer if answer is not None else text)


def split_reply_chunks(text: str, max_reply_chars: int) -> List[str]:
    """清理提及后按固定长度切分回复；空文本返回占位符。"""

    safe_text = sanitize_mentions(text or "")
    max_len = max(1, min(PLATFORM_MESSAGE_LIMIT, max_reply_chars))
    chunks = [safe_text[i:i + max_len] for i in range(0, len(safe_text), max_len)]
    return chunks or [EMPTY_REPLY_PLACEHOLDER]
