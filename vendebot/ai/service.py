from __future__ import annotations

import logging

from vendebot.ai.base import LLMClient
from vendebot.ai.mock_provider import MockLLMClient
from vendebot.ai.openai_provider import OpenAIChatClient
from vendebot.core.config import (
    AI_MODEL,
    AI_PROVIDER,
    AI_TEMPERATURE,
    GEMINI_OPENAI_BASE_URL,
    GOOGLE_AI_API_KEY,
    OPENAI_API_KEY,
)

logger = logging.getLogger(__name__)


def build_llm_client(provider: str | None = None) -> LLMClient:
    selected = (provider or AI_PROVIDER or "mock").strip().lower()
    if selected == "openai" and OPENAI_API_KEY:
        return OpenAIChatClient(api_key=OPENAI_API_KEY, model=AI_MODEL, temperature=AI_TEMPERATURE)
    if selected == "gemini" and GOOGLE_AI_API_KEY:
        return OpenAIChatClient(
            api_key=GOOGLE_AI_API_KEY,
            model=AI_MODEL,
            base_url=GEMINI_OPENAI_BASE_URL,
            temperature=AI_TEMPERATURE,
            name="gemini",
        )
    if selected != "mock":
        logger.warning("AI_PROVIDER=%s sin clave configurada, usando mock", selected)
    return MockLLMClient()
