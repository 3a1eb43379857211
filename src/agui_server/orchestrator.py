"""Run orchestrator: one conversational turn in, one ordered event stream out.

States::

    STARTED -> CLASSIFY -> AWAITING_CLIENT_TOOL
                        -> RUNNING_STEPS -> STREAMING_TEXT -> EMITTING_COMPONENTS -> FINISHED

Canonical event order for a run:

1. RUN_STARTED
2. STEP_STARTED / STEP_FINISHED pairs, never overlapping
3. TEXT_MESSAGE_START
4. TEXT_MESSAGE_CONTENT chunks; joined in order they equal the clean text
5. TEXT_MESSAGE_END
6. UI_COMPONENT per card-shaped block, in extraction order
7. RUN_FINISHED, exactly once and always last

When the client must supply a value that has not arrived yet, the run goes
straight from RUN_STARTED to a TOOL_CALL_START/ARGS/END triple and a
RUN_FINISHED carrying ``pendingToolCall``.

Agent failures and malformed blocks never abort a run. A closed sink does:
nothing more is written and the run ends in ABORTED. Any other unexpected error
is logged and the run is still closed with RUN_FINISHED.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum

from .agent import AgentMessage, AgentOutputError, GenerativeAgent
from .blocks import ClientAction, StepList, WeatherCard, extract
from .client_tools import build_pending_call, find_resolution, get_client_tool, render_answer
from .config import Settings
from .encoder import EventSink, SinkClosedError
from .events import (
    Event,
    RunFinishedEvent,
    RunStartedEvent,
    StepFinishedEvent,
    StepStartedEvent,
    TextMessageContentEvent,
    TextMessageEndEvent,
    TextMessageStartEvent,
    ToolCallArgsEvent,
    ToolCallEndEvent,
    ToolCallStartEvent,
    UIComponentEvent,
)
from .intent import ClientValueKind, RequiresClientValue, classify
from .narration import (
    INTERPRET_REQUEST,
    MODEL_STEP_DELAY_MS,
    RESOLVED_STEPS,
    RUN_AGENT,
    model_step_id,
    model_step_title,
    narration_step_id,
)
from .schemas import Message, RunRequest

logger = logging.getLogger(__name__)

WEATHER_CARD_COMPONENT = "weather-card"
CLIENT_ACTION_COMPONENT = "client-action"


class RunPhase(str, Enum):
    STARTED = "STARTED"
    CLASSIFY = "CLASSIFY"
    AWAITING_CLIENT_TOOL = "AWAITING_CLIENT_TOOL"
    RUNNING_STEPS = "RUNNING_STEPS"
    STREAMING_TEXT = "STREAMING_TEXT"
    EMITTING_COMPONENTS = "EMITTING_COMPONENTS"
    FINISHED = "FINISHED"
    ABORTED = "ABORTED"


class RunProtocolError(RuntimeError):
    """The orchestrator tried to break the event protocol."""


@dataclass
class RunState:
    thread_id: str
    run_id: str
    message_id: str
    phase: RunPhase = RunPhase.STARTED
    events: list[Event] = field(default_factory=list)

    @classmethod
    def for_request(cls, request: RunRequest) -> "RunState":
        return cls(
            thread_id=request.thread_id,
            run_id=request.run_id,
            message_id=f"assistant-{request.run_id}",
        )

    @property
    def run_finished(self) -> bool:
        return bool(self.events) and isinstance(self.events[-1], RunFinishedEvent)


def build_agent_messages(messages: Sequence[Message], fallback_text: str) -> list[AgentMessage]:
    """Fold the run history into messages the agent understands.

    Tool results become system annotations; blank messages are dropped.
    """

    folded: list[AgentMessage] = []
    for message in messages:
        if not message.content.strip():
            continue
        if message.role == "tool":
            folded.append(
                AgentMessage(
                    role="system",
                    content=(
                        f"Tool result ({message.name or 'tool'} / {message.tool_call_id or 'unknown'}): "
                        f"{message.content}"
                    ),
                )
            )
        else:
            folded.append(AgentMessage(role=message.role, content=message.content))
    if not folded:
        folded.append(AgentMessage(role="user", content=fallback_text or "hi"))
    return folded


def chunk_text(text: str, size: int) -> list[str]:
    return [text[i : i + size] for i in range(0, len(text), size)]


class RunOrchestrator:
    """Drives a single run end-to-end against an event sink."""

    def __init__(
        self,
        agent: GenerativeAgent | None,
        settings: Settings,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self._agent = agent
        self._settings = settings
        self._sleep = sleep

    async def run(self, request: RunRequest, sink: EventSink) -> RunState:
        state = RunState.for_request(request)
        logger.info("[RUN] start thread_id=%s run_id=%s messages=%d", state.thread_id, state.run_id, len(request.messages))
        try:
            await self._emit(state, sink, RunStartedEvent(thread_id=state.thread_id, run_id=state.run_id))

            state.phase = RunPhase.CLASSIFY
            user_text = request.latest_user_text()
            intent = classify(user_text)
            if isinstance(intent, RequiresClientValue):
                logger.info("[RUN] run_id=%s needs client value: %s", state.run_id, intent.kind.value)
                await self._run_client_value(state, sink, request, intent.kind)
            else:
                await self._run_generative(state, sink, request, user_text)
        except SinkClosedError:
            state.phase = RunPhase.ABORTED
            logger.info("[RUN] run_id=%s aborted: output sink closed", state.run_id)
            return state
        except Exception:
            logger.exception("[RUN] run_id=%s failed in phase %s", state.run_id, state.phase.value)
            if not state.run_finished:
                await self._close_failed_run(state, sink)
            return state

        logger.info("[RUN] end run_id=%s phase=%s events=%d", state.run_id, state.phase.value, len(state.events))
        return state

    # -- client-executed tool path -------------------------------------------

    async def _run_client_value(
        self, state: RunState, sink: EventSink, request: RunRequest, kind: ClientValueKind
    ) -> None:
        resolution = find_resolution(request.messages, kind)
        if resolution is None:
            client_tool = get_client_tool(kind)
            pending = build_pending_call(state.thread_id, kind)
            await self._emit(
                state,
                sink,
                ToolCallStartEvent(tool_call_id=pending.tool_call_id, tool_call_name=pending.tool_call_name),
            )
            await self._emit(
                state, sink, ToolCallArgsEvent(tool_call_id=pending.tool_call_id, delta=client_tool.serialized_args())
            )
            await self._emit(state, sink, ToolCallEndEvent(tool_call_id=pending.tool_call_id))
            await self._emit(
                state,
                sink,
                RunFinishedEvent(thread_id=state.thread_id, run_id=state.run_id, pending_tool_call=pending),
            )
            state.phase = RunPhase.AWAITING_CLIENT_TOOL
            return

        state.phase = RunPhase.RUNNING_STEPS
        for n, step in enumerate(RESOLVED_STEPS[kind], start=1):
            await self._run_step(state, sink, narration_step_id(state.run_id, n), step.title, step.delay_ms)

        answer = render_answer(kind, resolution.content)
        await self._stream_text(state, sink, answer, self._settings.answer_chunk_delay_ms)
        await self._finish(state, sink)

    # -- generative path -----------------------------------------------------

    async def _run_generative(self, state: RunState, sink: EventSink, request: RunRequest, user_text: str) -> None:
        state.phase = RunPhase.RUNNING_STEPS
        await self._run_step(
            state, sink, narration_step_id(state.run_id, 1), INTERPRET_REQUEST.title, INTERPRET_REQUEST.delay_ms
        )

        if self._agent is None:
            reply_text = f'Weather agent is not configured. Pseudo-response to: "{user_text}"'
        else:
            agent_step = narration_step_id(state.run_id, 2)
            await self._emit(state, sink, StepStartedEvent(step_id=agent_step, title=RUN_AGENT.title))
            reply_text = await self._generate(request, user_text)
            await self._emit(state, sink, StepFinishedEvent(step_id=agent_step))

        extraction = extract(reply_text)
        if extraction.warnings:
            logger.warning("[RUN] run_id=%s dropped %d block(s)", state.run_id, len(extraction.warnings))

        step_list = extraction.step_list
        if step_list is not None:
            for n, step in enumerate(step_list.steps, start=1):
                await self._run_step(
                    state, sink, model_step_id(state.run_id, n), model_step_title(step.title, n), MODEL_STEP_DELAY_MS
                )

        await self._stream_text(state, sink, extraction.clean_text, self._settings.text_chunk_delay_ms)

        state.phase = RunPhase.EMITTING_COMPONENTS
        for block in extraction.blocks:
            if isinstance(block, WeatherCard):
                component = WEATHER_CARD_COMPONENT
            elif isinstance(block, ClientAction):
                component = CLIENT_ACTION_COMPONENT
            elif isinstance(block, StepList):
                continue
            else:  # pragma: no cover - ExtractedBlock is closed
                raise RunProtocolError(f"Unhandled block type: {type(block).__name__}")
            await self._emit(
                state,
                sink,
                UIComponentEvent(message_id=state.message_id, component=component, props=block.to_props()),
            )

        await self._finish(state, sink)

    async def _generate(self, request: RunRequest, user_text: str) -> str:
        """Single agent attempt; any failure becomes a visible apology."""

        messages = build_agent_messages(request.messages, user_text)
        try:
            call = self._agent.generate(messages)  # type: ignore[union-attr]
            timeout = self._settings.agent_timeout_seconds
            reply = await (asyncio.wait_for(call, timeout) if timeout else call)
            text = getattr(reply, "text", None)
            if not isinstance(text, str):
                raise AgentOutputError(f"Agent reply text is {type(text).__name__}, expected str")
        except Exception as exc:
            logger.exception("[AGENT] generate failed for run")
            return f"Sorry, I couldn't get the weather. Details: {str(exc) or type(exc).__name__}"
        return text

    # -- emission primitives -------------------------------------------------

    async def _emit(self, state: RunState, sink: EventSink, event: Event) -> None:
        if state.run_finished:
            raise RunProtocolError(f"{type(event).__name__} emitted after RUN_FINISHED")
        await sink.write(event)
        state.events.append(event)

    async def _pause(self, delay_ms: float) -> None:
        if delay_ms > 0:
            await self._sleep(delay_ms / 1000)

    async def _run_step(self, state: RunState, sink: EventSink, step_id: str, title: str, delay_ms: int) -> None:
        await self._emit(state, sink, StepStartedEvent(step_id=step_id, title=title))
        await self._pause(delay_ms * self._settings.step_delay_scale)
        await self._emit(state, sink, StepFinishedEvent(step_id=step_id))

    async def _stream_text(self, state: RunState, sink: EventSink, text: str, delay_ms: int) -> None:
        state.phase = RunPhase.STREAMING_TEXT
        await self._emit(state, sink, TextMessageStartEvent(message_id=state.message_id))
        chunks = chunk_text(text, self._settings.text_chunk_size)
        for idx, chunk in enumerate(chunks):
            await self._emit(state, sink, TextMessageContentEvent(message_id=state.message_id, delta=chunk))
            if idx < len(chunks) - 1:
                await self._pause(delay_ms)
        await self._emit(state, sink, TextMessageEndEvent(message_id=state.message_id))

    async def _finish(self, state: RunState, sink: EventSink) -> None:
        await self._emit(state, sink, RunFinishedEvent(thread_id=state.thread_id, run_id=state.run_id))
        state.phase = RunPhase.FINISHED

    async def _close_failed_run(self, state: RunState, sink: EventSink) -> None:
        """Terminate a run that failed unexpectedly with its RUN_FINISHED."""
        try:
            await self._finish(state, sink)
        except SinkClosedError:
            state.phase = RunPhase.ABORTED


__all__ = [
    "RunOrchestrator",
    "RunPhase",
    "RunProtocolError",
    "RunState",
    "build_agent_messages",
    "chunk_text",
]
