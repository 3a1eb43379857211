"""Typed AG-UI events emitted by a run.

Every event is a discriminated record with a ``type`` tag. Field names are
snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class EventType(str, Enum):
    RUN_STARTED = "RUN_STARTED"
    STEP_STARTED = "STEP_STARTED"
    STEP_FINISHED = "STEP_FINISHED"
    TOOL_CALL_START = "TOOL_CALL_START"
    TOOL_CALL_ARGS = "TOOL_CALL_ARGS"
    TOOL_CALL_END = "TOOL_CALL_END"
    TEXT_MESSAGE_START = "TEXT_MESSAGE_START"
    TEXT_MESSAGE_CONTENT = "TEXT_MESSAGE_CONTENT"
    TEXT_MESSAGE_END = "TEXT_MESSAGE_END"
    UI_COMPONENT = "UI_COMPONENT"
    RUN_FINISHED = "RUN_FINISHED"


class _Event(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, use_enum_values=True)


class PendingToolCall(_Event):
    """A client-executed tool call the server is waiting on."""

    tool_call_id: str = Field(..., alias="toolCallId")
    tool_call_name: str = Field(..., alias="toolCallName")
    args: dict[str, Any] = Field(default_factory=dict)
    reason: str


class RunStartedEvent(_Event):
    type: Literal[EventType.RUN_STARTED] = EventType.RUN_STARTED
    thread_id: str = Field(..., alias="threadId")
    run_id: str = Field(..., alias="runId")


class StepStartedEvent(_Event):
    type: Literal[EventType.STEP_STARTED] = EventType.STEP_STARTED
    step_id: str = Field(..., alias="stepId")
    title: str


class StepFinishedEvent(_Event):
    type: Literal[EventType.STEP_FINISHED] = EventType.STEP_FINISHED
    step_id: str = Field(..., alias="stepId")


class ToolCallStartEvent(_Event):
    type: Literal[EventType.TOOL_CALL_START] = EventType.TOOL_CALL_START
    tool_call_id: str = Field(..., alias="toolCallId")
    tool_call_name: str = Field(..., alias="toolCallName")


class ToolCallArgsEvent(_Event):
    type: Literal[EventType.TOOL_CALL_ARGS] = EventType.TOOL_CALL_ARGS
    tool_call_id: str = Field(..., alias="toolCallId")
    delta: str


class ToolCallEndEvent(_Event):
    type: Literal[EventType.TOOL_CALL_END] = EventType.TOOL_CALL_END
    tool_call_id: str = Field(..., alias="toolCallId")


class TextMessageStartEvent(_Event):
    type: Literal[EventType.TEXT_MESSAGE_START] = EventType.TEXT_MESSAGE_START
    message_id: str = Field(..., alias="messageId")
    role: Literal["assistant"] = "assistant"


class TextMessageContentEvent(_Event):
    type: Literal[EventType.TEXT_MESSAGE_CONTENT] = EventType.TEXT_MESSAGE_CONTENT
    message_id: str = Field(..., alias="messageId")
    delta: str


class TextMessageEndEvent(_Event):
    type: Literal[EventType.TEXT_MESSAGE_END] = EventType.TEXT_MESSAGE_END
    message_id: str = Field(..., alias="messageId")


class UIComponentEvent(_Event):
    type: Literal[EventType.UI_COMPONENT] = EventType.UI_COMPONENT
    message_id: str = Field(..., alias="messageId")
    component: str
    props: dict[str, Any]


class RunFinishedEvent(_Event):
    type: Literal[EventType.RUN_FINISHED] = EventType.RUN_FINISHED
    thread_id: str = Field(..., alias="threadId")
    run_id: str = Field(..., alias="runId")
    pending_tool_call: PendingToolCall | None = Field(default=None, alias="pendingToolCall")


Event = Union[
    RunStartedEvent,
    StepStartedEvent,
    StepFinishedEvent,
    ToolCallStartEvent,
    ToolCallArgsEvent,
    ToolCallEndEvent,
    TextMessageStartEvent,
    TextMessageContentEvent,
    TextMessageEndEvent,
    UIComponentEvent,
    RunFinishedEvent,
]


__all__ = [
    "Event",
    "EventType",
    "PendingToolCall",
    "RunFinishedEvent",
    "RunStartedEvent",
    "StepFinishedEvent",
    "StepStartedEvent",
    "TextMessageContentEvent",
    "TextMessageEndEvent",
    "TextMessageStartEvent",
    "ToolCallArgsEvent",
    "ToolCallEndEvent",
    "ToolCallStartEvent",
    "UIComponentEvent",
]
