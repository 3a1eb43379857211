"""Round trip to client-executed tools.

The server never stores a pending call. A run that needs a client value ends
with a ``pendingToolCall``; the client executes the tool and submits a new run
whose history carries a ``tool`` message with the result after the question.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from .events import PendingToolCall
from .intent import ClientValueKind
from .schemas import Message


@dataclass(frozen=True, slots=True)
class ClientToolSpec:
    kind: ClientValueKind
    tool_name: str
    reason: str
    answer_template: str
    args: dict[str, Any] = field(default_factory=dict)

    def tool_call_id(self, thread_id: str) -> str:
        # Stable per thread so a retry before the client answers reuses the id.
        return f"client-{self.kind.value}-{thread_id}"

    def serialized_args(self) -> str:
        return json.dumps(self.args, ensure_ascii=False, separators=(",", ":"))


CLIENT_TOOLS: dict[ClientValueKind, ClientToolSpec] = {
    ClientValueKind.TIME: ClientToolSpec(
        kind=ClientValueKind.TIME,
        tool_name="getClientTime",
        reason="user asked about local time",
        answer_template="Your local time is: {value}",
        args={"format": "iso"},
    ),
}


def get_client_tool(kind: ClientValueKind) -> ClientToolSpec:
    try:
        return CLIENT_TOOLS[kind]
    except KeyError as exc:
        raise ValueError(f"No client tool registered for '{kind}'.") from exc


def find_resolution(messages: Sequence[Message], kind: ClientValueKind) -> Message | None:
    """Return the client's answer to the current question, if it already arrived.

    Only tool messages after the most recent user message count; results from
    earlier turns are never reused. The most recent match wins.
    """

    tool_name = get_client_tool(kind).tool_name
    last_user_idx = -1
    for idx in range(len(messages) - 1, -1, -1):
        if messages[idx].role == "user":
            last_user_idx = idx
            break

    for message in reversed(messages[last_user_idx + 1 :]):
        if message.role == "tool" and message.name == tool_name:
            return message
    return None


def build_pending_call(thread_id: str, kind: ClientValueKind) -> PendingToolCall:
    client_tool = get_client_tool(kind)
    return PendingToolCall(
        tool_call_id=client_tool.tool_call_id(thread_id),
        tool_call_name=client_tool.tool_name,
        args=dict(client_tool.args),
        reason=client_tool.reason,
    )


def render_answer(kind: ClientValueKind, value: str) -> str:
    return get_client_tool(kind).answer_template.format(value=value)


__all__ = [
    "CLIENT_TOOLS",
    "ClientToolSpec",
    "build_pending_call",
    "find_resolution",
    "get_client_tool",
    "render_answer",
]
