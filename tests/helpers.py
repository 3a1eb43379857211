"""Shared test helpers (request builders, fake agent, recording sink)."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

from agui_server.agent import AgentMessage, AgentReply
from agui_server.encoder import SinkClosedError
from agui_server.events import EventType
from agui_server.schemas import Message, RunRequest


def user(content: str, id: str = "u1") -> Message:
    return Message(id=id, role="user", content=content)


def assistant(content: str, id: str = "a1") -> Message:
    return Message(id=id, role="assistant", content=content)


def tool_result(content: str, name: str = "getClientTime", tool_call_id: str = "client-time-thread-1", id: str = "t1") -> Message:
    return Message(id=id, role="tool", content=content, name=name, tool_call_id=tool_call_id)


def make_request(*messages: Message, thread_id: str = "thread-1", run_id: str = "run-1") -> RunRequest:
    return RunRequest(thread_id=thread_id, run_id=run_id, messages=list(messages))


class RecordingSink:
    """In-memory sink; optionally closes itself after ``close_after`` writes."""

    def __init__(self, close_after: int | None = None) -> None:
        self.events: list = []
        self.close_after = close_after
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def write(self, event) -> None:
        if self._closed:
            raise SinkClosedError("closed")
        self.events.append(event)
        if self.close_after is not None and len(self.events) >= self.close_after:
            self._closed = True


class FakeAgent:
    """GenerativeAgent double recording every call."""

    def __init__(self, text: str = "", error: Exception | None = None, delay: float = 0) -> None:
        self.text = text
        self.error = error
        self.delay = delay
        self.calls: list[list[AgentMessage]] = []

    async def generate(self, messages: Sequence[AgentMessage]) -> AgentReply:
        self.calls.append(list(messages))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return AgentReply(text=self.text)


def event_types(events) -> list[str]:
    return [EventType(event.type).value for event in events]


def streamed_text(events) -> str:
    return "".join(event.delta for event in events if event.type == EventType.TEXT_MESSAGE_CONTENT)


def assert_steps_well_formed(events) -> None:
    """Every STEP_STARTED is closed by its STEP_FINISHED before the next starts."""
    open_step = None
    for event in events:
        if event.type == EventType.STEP_STARTED:
            assert open_step is None, f"{event.step_id} started while {open_step} still open"
            open_step = event.step_id
        elif event.type == EventType.STEP_FINISHED:
            assert event.step_id == open_step
            open_step = None
    assert open_step is None


def weather_block(location: str, temperature_c: float = 12, status: str = "Cloudy", humidity_pct: float = 70, wind_ms: float = 5.2) -> str:
    return (
        "```weather\n"
        f'{{"location":"{location}","temperatureC":{temperature_c},"status":"{status}",'
        f'"humidityPct":{humidity_pct},"windMs":{wind_ms}}}\n'
        "```"
    )
