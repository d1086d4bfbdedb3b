from __future__ import annotations

from contextvars import ContextVar
from typing import Any

CONTEXT_FIELDS = ("request_id", "tenant_id", "conversation_id")

# un snapshot inmutable por tarea; cada set crea un dict nuevo
_CONTEXT: ContextVar[dict[str, str]] = ContextVar("vendebot_request_context", default={})


def set_request_context(
    *,
    request_id: str | None = None,
    tenant_id: str | int | None = None,
    conversation_id: str | int | None = None,
) -> None:
    updates = {
        "request_id": request_id,
        "tenant_id": tenant_id,
        "conversation_id": conversation_id,
    }
    current = dict(_CONTEXT.get())
    current.update({key: str(value) for key, value in updates.items() if value is not None})
    _CONTEXT.set(current)


def get_request_context() -> dict[str, Any]:
    current = _CONTEXT.get()
    return {field: current.get(field) for field in CONTEXT_FIELDS}


def clear_request_context() -> None:
    _CONTEXT.set({})
