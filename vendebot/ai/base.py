from __future__ import annotations

from typing import Any, Protocol

from vendebot.ai.schema import AssistantTurn


class LLMError(RuntimeError):
    pass


class LLMClient(Protocol):
    name: str

    async def complete(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> AssistantTurn:
        ...
