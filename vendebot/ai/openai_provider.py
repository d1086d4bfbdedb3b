from __future__ import annotations

import logging
from typing import Any

from openai import AsyncOpenAI

from vendebot.ai.base import LLMError
from vendebot.ai.schema import AssistantTurn, ToolCall

logger = logging.getLogger(__name__)


class OpenAIChatClient:
    """Chat completions con herramientas; sirve también para Gemini vía su endpoint compatible."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        base_url: str | None = None,
        temperature: float | None = None,
        name: str = "openai",
        client: AsyncOpenAI | None = None,
    ) -> None:
        self.name = name
        self.model = model
        self.temperature = temperature
        self.client = client or AsyncOpenAI(api_key=api_key, base_url=base_url)

    async def complete(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> AssistantTurn:
        kwargs: dict[str, Any] = {"model": self.model, "messages": messages}
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"
        if self.temperature is not None:
            kwargs["temperature"] = self.temperature

        response = await self.client.chat.completions.create(**kwargs)
        if not response.choices:
            raise LLMError("respuesta del modelo sin choices")

        message = response.choices[0].message
        if message is None:
            raise LLMError("respuesta del modelo sin mensaje")

        tool_calls = []
        for index, call in enumerate(message.tool_calls or []):
            function = getattr(call, "function", None)
            if function is None or not function.name:
                continue
            tool_calls.append(
                ToolCall(
                    # algunos endpoints compatibles devuelven ids vacíos
                    id=call.id or f"call_{index}",
                    name=function.name,
                    arguments=function.arguments or "{}",
                )
            )

        logger.debug(
            "Respuesta del modelo provider=%s tool_calls=%s",
            self.name,
            [call.name for call in tool_calls],
        )
        return AssistantTurn(content=message.content, tool_calls=tool_calls)
