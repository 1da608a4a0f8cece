"""JSON 行日志。

每条记录写成一行 JSON，通过 extra={"extra": {...}} 传入的字段合并进同一行。
开启 log_redact_content 时，消息文本截断，携带上游/模型内容的字段只保留长度。
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

from relay_core.config.settings import settings


# 可能包含用户输入、模型回复或上游响应体的字段
CONTENT_KEYS = frozenset({"error", "reply", "prompt", "content"})

REDACTED_MSG_CHARS = 64


def redact_value(value: Any) -> str:
    return f"[redacted {len(str(value))} chars]"


class JsonFormatter(logging.Formatter):
    def __init__(self, redact_content: bool = False):
        super().__init__()
        self.redact_content = redact_content

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        if self.redact_content:
            msg = (msg or "")[:REDACTED_MSG_CHARS]
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "name": record.name,
            "msg": msg,
        }
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            for key, value in extra.items():
                if self.redact_content and key in CONTENT_KEYS and value is not None:
                    value = redact_value(value)
                payload[key] = value
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logger() -> logging.Logger:
    logger = logging.getLogger("relay_core")
    logger.setLevel(logging.INFO)
    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    fh = logging.FileHandler(log_dir / "relay.log", encoding="utf-8")
    fh.setLevel(logging.INFO)
    fh.setFormatter(JsonFormatter(redact_content=settings.log_redact_content))
    logger.addHandler(fh)
    return logger


logger = setup_logger()
