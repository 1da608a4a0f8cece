"""结构化输出中的答案提取。

模型在遵守 response_form 规则时，常返回带外壳的回答：代码块包裹的 JSON、
语法不完整的 JSON，或 "answer: ..." 形式的键值块。本模块按固定优先级
依次尝试以下策略，第一个成功的结果即为最终答案：

1. 若整段文本是单个 Markdown 代码块（可带 json 标记），取其内容继续处理。
2. 把中英文弯引号统一替换为 ASCII 引号。
3. 逐个 "{" 位置尝试解析完整 JSON，取第一个含非空字符串 answer 的对象。
4. 宽松匹配 "answer": "..."，即使整体不是合法 JSON。
5. 键值块：至少出现 style / answer / confidence 之一时，收集 answer 的值及后续行。

都不命中时返回 None，调用方使用原文。
"""

import json
import re
from typing import Any, Iterator, List, Optional


# 逐个 "{" 尝试解析的最大起点数量，防止恶意输入造成平方级开销
MAX_JSON_SCAN_STARTS = 256

STRUCTURAL_KEYS = frozenset({"style", "answer", "confidence"})

_FENCE_RE = re.compile(r"\A```(?:json)?[ \t]*\r?\n(.*?)\r?\n?[ \t]*```\Z", re.DOTALL | re.IGNORECASE)
_LOOSE_ANSWER_RE = re.compile(r'"answer"\s*:\s*"((?:\\.|[^"\\])*)"', re.DOTALL)
_KEY_LINE_RE = re.compile(r"^\s*([A-Za-z0-9_-]+)\s*:\s*(.*)$")

_SMART_QUOTES = str.maketrans({
    "“": '"',
    "”": '"',
    "„": '"',
    "‟": '"',
    "″": '"',
    "‘": "'",
    "’": "'",
    "‚": "'",
    "‛": "'",
    "′": "'",
})

_decoder = json.JSONDecoder()


def unwrap_code_fence(text: str) -> str:
    """整段文本是单个代码块时返回块内内容，否则原样返回。"""

    m = _FENCE_RE.match(text)
    if not m or "```" in m.group(1):
        return text
    return m.group(1).strip()


def normalize_quotes(text: str) -> str:
    return text.translate(_SMART_QUOTES)


def iter_json_objects(text: str, max_starts: int = MAX_JSON_SCAN_STARTS) -> Iterator[dict]:
    """从每个 "{" 位置尝试解析一个完整 JSON 值，按扫描顺序产出其中的对象。

    某个位置解析失败（非法或被截断）时忽略并继续下一个 "{"；
    嵌套对象内部的 "{" 同样会被单独尝试。
    """

    pos = text.find("{")
    starts = 0
    while pos != -1 and starts < max_starts:
        starts += 1
        try:
            value, _end = _decoder.raw_decode(text, pos)
        except (json.JSONDecodeError, RecursionError):
            # 嵌套过深时按非法起点处理
            value = None
        if isinstance(value, dict):
            yield value
        pos = text.find("{", pos + 1)


def _answer_from_json(text: str) -> Optional[str]:
    for obj in iter_json_objects(text):
        answer = obj.get("answer")
        if isinstance(answer, str) and answer.strip():
            return answer.strip()
    return None


def _manual_unescape(raw: str) -> str:
    return raw.replace("\\n", "\n").replace("\\r", "\r").replace("\\t", "\t").replace('\\"', '"')


def _answer_from_loose_property(text: str) -> Optional[str]:
    m = _LOOSE_ANSWER_RE.search(text)
    if not m:
        return None
    raw = m.group(1)
    try:
        decoded = json.loads(f'"{raw}"')
    except json.JSONDecodeError:
        decoded = _manual_unescape(raw)
    if not isinstance(decoded, str) or not decoded.strip():
        return None
    return decoded.strip()


def _answer_from_key_value_block(text: str) -> Optional[str]:
    lines = text.splitlines()
    parsed: List[Any] = []
    for line in lines:
        m = _KEY_LINE_RE.match(line)
        parsed.append((m.group(1).lower(), m.group(2)) if m else None)

    if not any(p and p[0] in STRUCTURAL_KEYS for p in parsed):
        return None

    collected: List[str] = []
    in_answer = False
    for line, p in zip(lines, parsed):
        if not in_answer:
            if p and p[0] == "answer":
                in_answer = True
                if p[1].strip():
                    collected.append(p[1].strip())
            continue
        if p and p[0] in STRUCTURAL_KEYS:
            if p[0] != "answer":
                break
            # 重复的 answer 行视为续行，只取其值
            if p[1].strip():
                collected.append(p[1].strip())
            continue
        if line.strip():
            collected.append(line.strip())

    result = "\n".join(collected).strip()
    return result or None


def extract_answer(text: str) -> Optional[str]:
    """从模型原始输出中提取答案；未检测到结构化外壳时返回 None。"""

    candidate = (text or "").strip()
    if not candidate:
        return None
    candidate = unwrap_code_fence(candidate)
    candidate = normalize_quotes(candidate)

    for strategy in (_answer_from_json, _answer_from_loose_property, _answer_from_key_value_block):
        answer = strategy(candidate)
        if answer is not None:
            return answer
    return None
