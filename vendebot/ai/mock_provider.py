from __future__ import annotations

import json
import re
import unicodedata
from typing import Any

from vendebot.ai.schema import AssistantTurn, ToolCall

ESCALATION_KEYWORDS = ("persona", "humano", "dueño", "encargado", "hablar con alguien", "reclamo")
BUSINESS_KEYWORDS = ("horario", "abren", "cierran", "direccion", "donde estan", "envio", "envian", "zona")
STOPWORDS = {
    "hola", "buenas", "buen", "dia", "tardes", "noches", "tenes", "tienen", "hay", "quiero", "queria",
    "necesito", "busco", "precio", "precios", "cuanto", "sale", "salen", "cuesta", "de", "del", "la",
    "el", "los", "las", "un", "una", "unos", "unas", "me", "por", "favor", "que", "para", "con", "y",
    "a", "en", "vende", "venden", "vendes", "algo",
}


def _plain(text: str) -> str:
    text = unicodedata.normalize("NFKD", (text or "").lower())
    return "".join(char for char in text if not unicodedata.combining(char))


def _search_terms(text: str) -> str:
    words = re.findall(r"[a-z0-9]+", _plain(text))
    terms = [word for word in words if word not in STOPWORDS and len(word) > 2]
    return terms[0] if terms else ""


def _last_user_text(messages: list[dict[str, Any]]) -> str:
    for message in reversed(messages):
        if message.get("role") == "user":
            return message.get("content") or ""
    return ""


def _pending_tool_results(messages: list[dict[str, Any]]) -> list[tuple[str, dict[str, Any]]]:
    """Resultados de la última ronda de herramientas, si el último mensaje es una respuesta de herramienta."""
    if not messages or messages[-1].get("role") != "tool":
        return []
    results: list[dict[str, Any]] = []
    index = len(messages) - 1
    while index >= 0 and messages[index].get("role") == "tool":
        results.insert(0, messages[index])
        index -= 1
    if index < 0:
        return []
    names = {
        call["id"]: call["function"]["name"]
        for call in messages[index].get("tool_calls") or []
    }
    pairs = []
    for message in results:
        try:
            payload = json.loads(message.get("content") or "{}")
        except ValueError:
            payload = {}
        pairs.append((names.get(message.get("tool_call_id"), ""), payload if isinstance(payload, dict) else {}))
    return pairs


class MockLLMClient:
    """Cliente de reglas fijas para desarrollo local sin clave de IA.

    Entiende lo básico del canal de clientes: derivar a una persona, datos del
    negocio y búsqueda de productos seguida de ``get_product``. Sólo menciona
    precios que vinieron de una herramienta.
    """

    name = "mock"

    def __init__(self) -> None:
        self.calls: list[list[dict[str, Any]]] = []
        self._counter = 0

    def _call(self, name: str, arguments: dict[str, Any]) -> AssistantTurn:
        self._counter += 1
        return AssistantTurn(
            tool_calls=[ToolCall(id=f"mock_{self._counter}", name=name, arguments=json.dumps(arguments))]
        )

    async def complete(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> AssistantTurn:
        self.calls.append(list(messages))
        tool_names = {tool["function"]["name"] for tool in tools}
        if "search_products" not in tool_names:
            return AssistantTurn(
                content="Recibido 👍 Para gestionar el negocio por WhatsApp hace falta configurar un modelo de IA."
            )

        if messages and messages[-1].get("role") == "system":
            return AssistantTurn(content="¿Querés que te pase el detalle de algún producto?")

        pending = _pending_tool_results(messages)
        if pending:
            return self._answer(pending)

        text = _plain(_last_user_text(messages))
        if any(keyword in text for keyword in ESCALATION_KEYWORDS):
            return self._call("escalate_to_human", {"reason": "El cliente pidió hablar con una persona"})
        if any(keyword in text for keyword in BUSINESS_KEYWORDS):
            return self._call("get_business_info", {})

        query = _search_terms(text)
        if not query:
            return AssistantTurn(content="¡Hola! ¿Qué estás buscando? Contame y te paso info.")
        return self._call("search_products", {"query": query})

    def _answer(self, pending: list[tuple[str, dict[str, Any]]]) -> AssistantTurn:
        name, payload = pending[-1]
        if "error" in payload:
            return AssistantTurn(content="No encontré eso en el catálogo. ¿Querés buscar otra cosa?")

        if name == "search_products":
            results = payload.get("results") or []
            if not results:
                return AssistantTurn(content="No tenemos ese producto disponible. ¿Querés buscar otra cosa?")
            return self._call("get_product", {"id": results[0]["id"]})

        if name == "calculate_price":
            return AssistantTurn(content=f"{payload.get('product')}: {payload.get('breakdown')}. Total {payload.get('total_formatted')}")

        if name == "get_product":
            product = payload.get("name") or "El producto"
            price = payload.get("price")
            unit = payload.get("unit") or "unidad"
            availability = "" if payload.get("available", True) else " (ahora sin stock)"
            return AssistantTurn(content=f"{product}{availability}: {price} por {unit}. ¿Cuánto necesitás?")

        if name == "get_business_info":
            return AssistantTurn(
                content=(
                    f"📍 {payload.get('address')}\n"
                    f"🕒 {payload.get('hours')}"
                )
            )

        return AssistantTurn(content=payload.get("message") or "Listo 👍")
