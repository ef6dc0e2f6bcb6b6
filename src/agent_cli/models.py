"""Pydantic models for the agent backend's request/response payloads."""

from __future__ import annotations

import math
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class MessageKind(str, Enum):
    """Closed set of message kinds the CLI distinguishes.

    Any wire type outside this set (``thought``, ``update``, ``answer``, ...)
    resolves to ``AGENT``.
    """

    QUESTION = "question"
    ERROR = "error"
    COMPLETE = "complete"
    IDLE = "idle"
    REQUEST_INPUT = "request_input"
    AGENT = "agent"

    @classmethod
    def _missing_(cls, value: object) -> MessageKind:
        if isinstance(value, str):
            normalized = value.strip().lower()
            for member in cls:
                if member.value == normalized:
                    return member
        return cls.AGENT


class StreamEnd(str, Enum):
    """Reason a streaming call stopped before the stream was exhausted."""

    INPUT = "input"
    DONE = "done"


class AgentMessage(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    type: MessageKind = MessageKind.AGENT
    raw_type: str = ""
    message: str = ""
    timestamp: int = 0

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        wire_type = data.get("type")
        if not isinstance(wire_type, MessageKind):
            data.setdefault("raw_type", "" if wire_type is None else str(wire_type))
            data["type"] = MessageKind(data["raw_type"])
        else:
            data.setdefault("raw_type", wire_type.value)
        # Structured payloads are shown as text; only text is displayable.
        msg = data.get("message")
        if msg is None:
            data["message"] = ""
        elif not isinstance(msg, str):
            data["message"] = str(msg)
        ts = data.get("timestamp")
        if ts is None:
            data["timestamp"] = 0
        elif isinstance(ts, float):
            data["timestamp"] = int(ts) if math.isfinite(ts) else 0
        return data


class RunHandle(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    run_id: str = Field(alias="runId")
    workflow_id: str = Field(alias="workflowId")


class ConversationRequest(BaseModel):
    type: str = "conversation"
    interaction: str
    prompt_data: dict[str, Any] = Field(default_factory=dict)
    interactive: bool = False

    @classmethod
    def for_task(cls, task: str, agent: str, interactive: bool = False) -> ConversationRequest:
        return cls(interaction=agent, prompt_data={"task": task}, interactive=interactive)
