from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional, Union

from pydantic import BaseModel, Field


class ToolCall(BaseModel):
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    # JSON tal cual lo devolvió el modelo; se valida recién en el dispatcher
    arguments: str = "{}"


class AssistantTurn(BaseModel):
    content: Optional[str] = None
    tool_calls: List[ToolCall] = Field(default_factory=list)

    def to_message(self) -> dict[str, Any]:
        message: dict[str, Any] = {"role": "assistant", "content": self.content}
        if self.tool_calls:
            message["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": call.arguments},
                }
                for call in self.tool_calls
            ]
        return message


@dataclass(frozen=True)
class ToolTraceEntry:
    name: str
    arguments: str
    ok: bool

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "arguments": self.arguments, "ok": self.ok}


@dataclass(frozen=True)
class TurnState:
    messages: tuple[dict[str, Any], ...]
    rounds: int = 0
    tool_trace: tuple[ToolTraceEntry, ...] = ()


@dataclass(frozen=True)
class Terminal:
    text: str
    outcome: str
    state: TurnState


@dataclass(frozen=True)
class Continue:
    state: TurnState


RoundOutcome = Union[Terminal, Continue]


@dataclass(frozen=True)
class TurnResult:
    text: str
    outcome: str
    rounds: int
    tool_trace: tuple[ToolTraceEntry, ...] = field(default_factory=tuple)

    def called(self, *names: str) -> bool:
        return any(entry.name in names for entry in self.tool_trace)
