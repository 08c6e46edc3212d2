import json
import logging
from pathlib import Path
from datetime import datetime, timezone
from chat_core.config.settings import settings


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        if settings.log_redact_content:
            msg = (msg or "")[:64]
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "name": record.name,
            "msg": msg,
        }
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            if settings.log_redact_content and "content" in extra:
                extra = {**extra, "content": str(extra["content"])[:64]}
            payload.update(extra)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logger() -> logging.Logger:
    logger = logging.getLogger("chat_core")
    level = logging.DEBUG if settings.show_debug else logging.INFO
    logger.setLevel(level)
    if logger.handlers:
        return logger
    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    fh = logging.FileHandler(log_dir / "chat_core.log", encoding="utf-8")
    fh.setLevel(level)
    fh.setFormatter(JsonFormatter())
    logger.addHandler(fh)
    return logger


logger = setup_logger()
