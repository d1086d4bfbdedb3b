from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable

from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session

from vendebot.payments.base import PaymentGateway
from vendebot.whatsapp.base import WhatsAppProvider

logger = logging.getLogger(__name__)

TOOL_FAILURE_MESSAGE = "No se pudo completar la operación. Intentá de nuevo más tarde."


@dataclass(frozen=True)
class ToolContext:
    tenant_id: int
    whatsapp_number: str
    conversation_id: int | None = None


@dataclass(frozen=True)
class ToolDependencies:
    payment_gateway: PaymentGateway | None = None
    whatsapp: WhatsAppProvider | None = None


ToolHandler = Callable[[Session, Any, ToolContext, ToolDependencies], Awaitable[dict[str, Any]]]


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    parameters: dict[str, Any]
    args_model: type[BaseModel]
    handler: ToolHandler

    def schema(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


def parse_arguments(raw_arguments: str | dict[str, Any] | None) -> dict[str, Any]:
    if raw_arguments is None or raw_arguments == "":
        return {}
    if isinstance(raw_arguments, dict):
        return raw_arguments
    payload = json.loads(raw_arguments)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValueError("los argumentos deben ser un objeto JSON")
    return payload


def _describe_validation_error(exc: ValidationError) -> str:
    fields = sorted({".".join(str(part) for part in error["loc"]) or "argumentos" for error in exc.errors()})
    return ", ".join(fields)


class ToolDispatcher:
    """Traduce una llamada de herramienta (nombre + JSON) en la operación concreta.

    El registro se arma con un ``ToolSpec`` por cada miembro del enum de
    herramientas; si falta o sobra alguno la construcción falla. Un nombre
    desconocido en tiempo de ejecución devuelve ``{"error": ...}`` en vez de
    lanzar, al igual que los argumentos inválidos o una falla del handler.
    """

    def __init__(
        self,
        specs: Iterable[ToolSpec],
        *,
        tool_names: type[Enum],
        dependencies: ToolDependencies | None = None,
        unknown_label: str = "Unknown tool",
    ) -> None:
        self._registry = {spec.name: spec for spec in specs}
        expected = {member.value for member in tool_names}
        missing = expected - set(self._registry)
        extra = set(self._registry) - expected
        if missing or extra:
            raise ValueError(f"Registro de herramientas inconsistente missing={sorted(missing)} extra={sorted(extra)}")
        self.dependencies = dependencies or ToolDependencies()
        self.unknown_label = unknown_label

    @property
    def tool_names(self) -> list[str]:
        return list(self._registry)

    def schemas(self) -> list[dict[str, Any]]:
        return [spec.schema() for spec in self._registry.values()]

    async def dispatch(
        self,
        db: Session,
        name: str,
        raw_arguments: str | dict[str, Any] | None,
        ctx: ToolContext,
    ) -> dict[str, Any]:
        spec = self._registry.get(name)
        if spec is None:
            logger.warning("Herramienta desconocida solicitada por el modelo", extra={"tool": name})
            return {"error": f"{self.unknown_label}: {name}"}

        try:
            payload = parse_arguments(raw_arguments)
        except ValueError as exc:
            logger.warning("Argumentos mal formados", extra={"tool": name})
            return {"error": f"Argumentos inválidos para {name}: {exc}"}

        try:
            args = spec.args_model.model_validate(payload)
        except ValidationError as exc:
            logger.warning("Argumentos inválidos", extra={"tool": name})
            return {"error": f"Argumentos inválidos para {name}: {_describe_validation_error(exc)}"}

        logger.info("Ejecutando herramienta %s args=%s", name, payload, extra={"tool": name})
        try:
            return await spec.handler(db, args, ctx, self.dependencies)
        except Exception:
            db.rollback()
            logger.exception("Error ejecutando herramienta %s", name, extra={"tool": name})
            return {"error": TOOL_FAILURE_MESSAGE}
