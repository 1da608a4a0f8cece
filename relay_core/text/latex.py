"""LaTeX 转纯文本数学表达式。

聊天界面不渲染 LaTeX，这里把常见写法改写成可读的纯文本。
\\frac 与 \\sqrt 的改写每条规则最多执行 MAX_REWRITE_PASSES 轮，
某一轮没有变化即提前结束；嵌套更深的部分保持原样。
"""

import re


MAX_REWRITE_PASSES = 5

_HAS_LATEX_RE = re.compile(r"(?:\$\$|\$|\\\(|\\\)|\\\[|\\\]|\\[a-zA-Z]+)")
_FRAC_RE = re.compile(r"\\frac\s*\{([^{}]+)\}\s*\{([^{}]+)\}")
_SQRT_RE = re.compile(r"\\sqrt\s*\{([^{}]+)\}")
_TEXT_RE = re.compile(r"\\text\s*\{([^{}]+)\}")
_SPACING_RE = re.compile(r"\\(?:quad|qquad|,|;|!)(?![a-zA-Z])")
_MULTI_SPACE_RE = re.compile(r"\s{2,}")

# 顺序有意义：先去掉 \left / \right
_LITERAL_REPLACEMENTS = (
    ("\\left", ""),
    ("\\right", ""),
    ("\\times", "*"),
    ("\\cdot", "*"),
    ("\\div", "/"),
    ("\\pm", "+/-"),
    ("\\neq", "!="),
    ("\\leq", "<="),
    ("\\geq", ">="),
    ("\\approx", "~="),
    ("\\pi", "pi"),
)

_DELIMITERS = ("\\(", "\\)", "\\[", "\\]", "$$", "$")


def has_latex(text: str) -> bool:
    return bool(_HAS_LATEX_RE.search(text))


def _rewrite_bounded(pattern: re.Pattern, repl: str, text: str) -> str:
    for _ in range(MAX_REWRITE_PASSES):
        updated = pattern.sub(repl, text)
        if updated == text:
            break
        text = updated
    return text


def latex_to_plain_math(text: str) -> str:
    if not text or not text.strip():
        return text
    if not has_latex(text):
        return text

    output = text
    for old, new in _LITERAL_REPLACEMENTS:
        output = output.replace(old, new)

    output = _rewrite_bounded(_FRAC_RE, r"(\1)/(\2)", output)
    output = _rewrite_bounded(_SQRT_RE, r"sqrt(\1)", output)

    output = _TEXT_RE.sub(r"\1", output)
    output = _SPACING_RE.sub(" ", output)
    for token in _DELIMITERS:
        output = output.replace(token, "")
    output = _MULTI_SPACE_RE.sub(" ", output)
    return output.strip()
