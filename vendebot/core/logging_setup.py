from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone

from vendebot.core.config import LOG_LEVEL
from vendebot.core.request_context import CONTEXT_FIELDS, get_request_context

# clave=valor o clave: valor, también dentro de JSON serializado
_SECRET_KEYS = r"(?:access_token|auth_token|api_key|token|secret|password)"
_SENSITIVE_PATTERNS = [
    re.compile(r"(authorization\s*[:=]\s*bearer\s+)([^\s\"]+)", re.IGNORECASE),
    re.compile(r"(\"?" + _SECRET_KEYS + r"\"?\s*[:=]\s*\"?)([^\s\",}]+)", re.IGNORECASE),
    # tokens de acceso de MercadoPago
    re.compile(r"(APP_USR-)([\w-]+)"),
]

# campos que los módulos pasan por ``extra=`` y sólo se emiten si tienen valor
_EXTRA_FIELDS = ("endpoint", "method", "status_code", "duration_ms", "tool", "rounds", "outcome")


def mask_secrets(value: str) -> str:
    for pattern in _SENSITIVE_PATTERNS:
        value = pattern.sub(r"\1***", value)
    return value


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        context = get_request_context()
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "module": record.name,
            "message": mask_secrets(record.getMessage()),
        }
        for field in CONTEXT_FIELDS:
            payload[field] = getattr(record, field, None) or context.get(field)
        for field in _EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value
        if record.exc_info:
            payload["exception"] = mask_secrets(self.formatException(record.exc_info))
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(level: str | None = None) -> None:
    level = (level or LOG_LEVEL).upper()
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for logger_name in ("uvicorn", "uvicorn.error"):
        logging.getLogger(logger_name).setLevel(level)
    # ObservabilityMiddleware ya deja una línea por request
    logging.getLogger("uvicorn.access").setLevel("WARNING")
    logging.getLogger("httpx").setLevel("WARNING")
