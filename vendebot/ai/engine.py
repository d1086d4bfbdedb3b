from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Iterable

from sqlalchemy.orm import Session

from vendebot.ai.base import LLMClient
from vendebot.ai.dispatcher import ToolContext, ToolDispatcher
from vendebot.ai.prompts import GROUNDING_CORRECTION, build_system_prompt
from vendebot.ai.schema import Continue, RoundOutcome, Terminal, ToolTraceEntry, TurnResult, TurnState
from vendebot.ai.tools import PRICE_SOURCES
from vendebot.core.config import AI_GROUNDING_GUARD, AI_MAX_CONTEXT_MESSAGES, AI_MAX_TOOL_ROUNDS
from vendebot.core.request_context import set_request_context
from vendebot.models.ai_turn_log import AITurnLog
from vendebot.models.tenant import Tenant
from vendebot.services.conversations import load_history

logger = logging.getLogger(__name__)

TENANT_MISSING_TEXT = "Lo siento, hay un problema con la configuración. Intentá más tarde."
MODEL_ERROR_TEXT = "Disculpá, no pude procesar tu mensaje. ¿Podés repetirlo?"
ROUNDS_EXHAUSTED_TEXT = "Disculpá, tardé demasiado procesando. ¿Podés simplificar tu consulta?"
EMPTY_REPLY_TEXT = "🤔"

OUTCOME_TEXT = "text"
OUTCOME_MODEL_ERROR = "model_error"
OUTCOME_ROUNDS_EXHAUSTED = "round_budget_exhausted"
OUTCOME_TENANT_MISSING = "tenant_missing"
OUTCOME_STORAGE_ERROR = "storage_error"

PRICE_PATTERN = re.compile(r"\$\s?\d|\bars\s?\d|\b\d[\d.,]*\s?(?:pesos|ars)\b", re.IGNORECASE)


def mentions_price(text: str | None) -> bool:
    return bool(text) and PRICE_PATTERN.search(text) is not None


def _tool_message(call_id: str, result: dict[str, Any]) -> dict[str, Any]:
    return {
        "role": "tool",
        "tool_call_id": call_id,
        "content": json.dumps(result, ensure_ascii=False, default=str),
    }


class ConversationEngine:
    """Bucle de rondas modelo → herramientas para un turno de conversación.

    Cada ronda es un ``step`` que devuelve ``Terminal`` (respuesta final o
    error del modelo) o ``Continue`` con los mensajes acumulados. El
    presupuesto de rondas es la única forma de cortar un turno: después de
    ``max_rounds`` llamadas al modelo se responde con el texto de respaldo.
    """

    def __init__(
        self,
        client: LLMClient,
        dispatcher: ToolDispatcher,
        *,
        prompt_builder: Callable[[Tenant], str] = build_system_prompt,
        channel: str = "customer",
        max_rounds: int = AI_MAX_TOOL_ROUNDS,
        max_context_messages: int = AI_MAX_CONTEXT_MESSAGES,
        grounding_guard: bool = AI_GROUNDING_GUARD,
        price_sources: Iterable[str] = PRICE_SOURCES,
    ) -> None:
        self.client = client
        self.dispatcher = dispatcher
        self.prompt_builder = prompt_builder
        self.channel = channel
        self.max_rounds = max(1, max_rounds)
        self.max_context_messages = max_context_messages
        self.grounding_guard = grounding_guard
        self.price_sources = frozenset(price_sources)

    def _grounded(self, tool_trace: Iterable[ToolTraceEntry]) -> bool:
        return any(entry.ok and entry.name in self.price_sources for entry in tool_trace)

    async def step(self, db: Session, state: TurnState, ctx: ToolContext) -> RoundOutcome:
        rounds = state.rounds + 1
        try:
            turn = await self.client.complete(list(state.messages), self.dispatcher.schemas())
        except Exception:
            logger.exception(
                "Falló la llamada al modelo provider=%s",
                getattr(self.client, "name", "unknown"),
                extra={"rounds": rounds, "outcome": OUTCOME_MODEL_ERROR},
            )
            return Terminal(
                text=MODEL_ERROR_TEXT,
                outcome=OUTCOME_MODEL_ERROR,
                state=TurnState(state.messages, rounds, state.tool_trace),
            )

        if not turn.tool_calls:
            text = (turn.content or "").strip()
            if self.grounding_guard and mentions_price(text) and not self._grounded(state.tool_trace):
                logger.warning(
                    "Respuesta con precio sin consultar herramientas; se pide corrección",
                    extra={"rounds": rounds},
                )
                messages = state.messages + (
                    {"role": "assistant", "content": text},
                    {"role": "system", "content": GROUNDING_CORRECTION},
                )
                return Continue(TurnState(messages, rounds, state.tool_trace))
            text = text or EMPTY_REPLY_TEXT
            messages = state.messages + ({"role": "assistant", "content": text},)
            return Terminal(text=text, outcome=OUTCOME_TEXT, state=TurnState(messages, rounds, state.tool_trace))

        messages = state.messages + (turn.to_message(),)
        trace = state.tool_trace
        for call in turn.tool_calls:
            result = await self.dispatcher.dispatch(db, call.name, call.arguments, ctx)
            ok = not (isinstance(result, dict) and "error" in result)
            if not ok:
                logger.info("Herramienta devolvió error %s: %s", call.name, result.get("error"), extra={"tool": call.name})
            trace = trace + (ToolTraceEntry(name=call.name, arguments=call.arguments, ok=ok),)
            messages = messages + (_tool_message(call.id, result),)
        return Continue(TurnState(messages, rounds, trace))

    def _initial_messages(self, db: Session, tenant: Tenant, conversation_id: int | None, user_message: str) -> tuple[dict[str, Any], ...]:
        messages: list[dict[str, Any]] = [{"role": "system", "content": self.prompt_builder(tenant)}]
        history = load_history(db, conversation_id, self.max_context_messages) if conversation_id is not None else []
        messages.extend({"role": message.role, "content": message.content} for message in history)

        last = history[-1] if history else None
        if last is None or last.role != "user" or last.content != user_message:
            messages.append({"role": "user", "content": user_message})
        return tuple(messages)

    async def run_turn(
        self,
        db: Session,
        *,
        tenant_id: int,
        conversation_id: int | None,
        whatsapp_number: str,
        user_message: str,
    ) -> TurnResult:
        set_request_context(tenant_id=tenant_id, conversation_id=conversation_id)
        try:
            tenant = db.query(Tenant).filter(Tenant.id == tenant_id).first()
            if tenant is None:
                logger.error("Tenant inexistente tenant_id=%s", tenant_id)
                return TurnResult(text=TENANT_MISSING_TEXT, outcome=OUTCOME_TENANT_MISSING, rounds=0)
            messages = self._initial_messages(db, tenant, conversation_id, user_message)
        except Exception:
            db.rollback()
            logger.exception(
                "No se pudo cargar el contexto del turno",
                extra={"rounds": 0, "outcome": OUTCOME_STORAGE_ERROR},
            )
            return TurnResult(text=MODEL_ERROR_TEXT, outcome=OUTCOME_STORAGE_ERROR, rounds=0)

        ctx = ToolContext(tenant_id=tenant_id, whatsapp_number=whatsapp_number, conversation_id=conversation_id)
        state = TurnState(messages=messages)

        outcome: RoundOutcome = Continue(state)
        while isinstance(outcome, Continue) and outcome.state.rounds < self.max_rounds:
            outcome = await self.step(db, outcome.state, ctx)

        if isinstance(outcome, Terminal):
            result = TurnResult(
                text=outcome.text,
                outcome=outcome.outcome,
                rounds=outcome.state.rounds,
                tool_trace=outcome.state.tool_trace,
            )
        else:
            logger.warning(
                "Se agotaron las rondas de herramientas",
                extra={"rounds": outcome.state.rounds, "outcome": OUTCOME_ROUNDS_EXHAUSTED},
            )
            result = TurnResult(
                text=ROUNDS_EXHAUSTED_TEXT,
                outcome=OUTCOME_ROUNDS_EXHAUSTED,
                rounds=outcome.state.rounds,
                tool_trace=outcome.state.tool_trace,
            )

        logger.info(
            "Turno completado channel=%s tools=%s",
            self.channel,
            [entry.name for entry in result.tool_trace],
            extra={"rounds": result.rounds, "outcome": result.outcome},
        )
        self._record_turn(db, tenant_id, conversation_id, result)
        return result

    def _record_turn(self, db: Session, tenant_id: int, conversation_id: int | None, result: TurnResult) -> None:
        try:
            db.add(
                AITurnLog(
                    tenant_id=tenant_id,
                    conversation_id=conversation_id,
                    channel=self.channel,
                    provider=getattr(self.client, "name", "unknown"),
                    rounds=result.rounds,
                    outcome=result.outcome,
                    tool_trace=[entry.to_dict() for entry in result.tool_trace],
                    error=None if result.outcome == OUTCOME_TEXT else result.outcome,
                )
            )
            db.commit()
        except Exception:
            db.rollback()
            logger.exception("No se pudo registrar el turno de IA")

    async def process_message(
        self,
        db: Session,
        *,
        tenant_id: int,
        conversation_id: int | None,
        whatsapp_number: str,
        user_message: str,
    ) -> str:
        result = await self.run_turn(
            db,
            tenant_id=tenant_id,
            conversation_id=conversation_id,
            whatsapp_number=whatsapp_number,
            user_message=user_message,
        )
        return result.text
