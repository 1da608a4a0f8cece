"""系统提示词组装工具。

基础提示词来自配置；若存在规则 JSON 文件，则把其内容以固定前言
附加在基础提示词之后，要求模型严格遵守（例如 response_form）。
"""

import json
from pathlib import Path

from relay_core.domain.exceptions import ValidationError


RULES_PREAMBLE = (
    "You must follow these extra system rules loaded from JSON.\n"
    "If response_form exists, obey it exactly.\n"
)


def load_system_rules_prompt(path_value: str) -> str:
    """读取规则 JSON 并生成附加提示词。

    - 文件不存在：返回空字符串。
    - JSON 非法 / 无法读取 / 顶层不是对象：抛出 ValidationError。
    - "enabled": false：返回空字符串。
    """

    path = Path(path_value).resolve()
    if not path.exists():
        return ""
    try:
        root = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValidationError(code="INVALID_SYSTEM_RULES", message=f"Invalid JSON in system rules file: {path}: {e}")
    except OSError as e:
        raise ValidationError(code="INVALID_SYSTEM_RULES", message=f"Cannot read system rules file: {path}: {e}")

    if not isinstance(root, dict):
        raise ValidationError(code="INVALID_SYSTEM_RULES", message=f"System rules JSON must be an object: {path}")
    if root.get("enabled") is False:
        return ""

    pretty = json.dumps(root, ensure_ascii=False, indent=2)
    return f"{RULES_PREAMBLE}Rules source: {path}\nRules JSON:\n{pretty}"


def build_system_prompt(base_prompt: str, rules_path: str) -> str:
    rules = load_system_rules_prompt(rules_path)
    if not rules.strip():
        return base_prompt
    return f"{base_prompt}\n\n{rules}"
