from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)


class Message(BaseModel):
    """One conversation message as submitted by the client.

    Messages are read-only history: the server never mutates or reorders them.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    role: Literal["user", "assistant", "system", "tool"]
    content: str
    tool_call_id: str | None = Field(default=None, alias="toolCallId")
    name: str | None = None


class ToolDeclaration(BaseModel):
    name: str
    description: str
    parameters: Any | None = None


class ContextItem(BaseModel):
    value: str
    description: str


class RunRequest(BaseModel):
    """A validated AG-UI run request: one conversational turn."""

    model_config = ConfigDict(populate_by_name=True)

    thread_id: str = Field(..., alias="threadId", description="Groups the turns of one conversation")
    run_id: str = Field(..., alias="runId", description="Unique per turn; namespaces step and message ids")
    messages: list[Message]
    tools: list[ToolDeclaration] | None = None
    context: list[ContextItem] | None = None
    forwarded_props: dict[str, Any] | None = Field(default=None, alias="forwardedProps")
    state: dict[str, Any] | None = None

    def latest_user_text(self, default: str = "empty message") -> str:
        for message in reversed(self.messages):
            if message.role == "user":
                return message.content
        return default


@dataclass(slots=True)
class RunRejection:
    """Structured reason a raw payload could not become a RunRequest."""

    error: str
    details: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.error, "details": self.details}


def accept(raw: Any) -> RunRequest | RunRejection:
    """Validate a decoded JSON payload into a RunRequest, or describe why not."""

    try:
        return RunRequest.model_validate(raw)
    except ValidationError as exc:
        details = json.loads(exc.json(include_url=False))
        logger.error("Invalid AG-UI payload: %s", details)
        return RunRejection(error="Invalid AG-UI payload", details=details)


class HealthResponse(BaseModel):
    status: str = "ok"
