"""Tests for the run orchestrator event protocol."""

from __future__ import annotations

import pytest

from agui_server.agent import AgentMessage
from agui_server.events import EventType, TextMessageEndEvent
from agui_server.orchestrator import RunOrchestrator, RunPhase, RunProtocolError, build_agent_messages, chunk_text
from tests.helpers import (
    FakeAgent,
    RecordingSink,
    assert_steps_well_formed,
    assistant,
    event_types,
    make_request,
    streamed_text,
    tool_result,
    user,
    weather_block,
)


def _of_type(events, event_type):
    return [event for event in events if event.type == event_type]


def _assert_framed(events):
    types = event_types(events)
    assert types[0] == "RUN_STARTED"
    assert types[-1] == "RUN_FINISHED"
    assert types.count("RUN_STARTED") == 1
    assert types.count("RUN_FINISHED") == 1


class TestGenerativePath:
    """Tests for runs answered by the weather agent."""

    @pytest.mark.asyncio
    async def test_two_cities_emit_two_cards_in_order(self, settings, sink):
        """Should emit one weather card per city, in reply order."""
        agent = FakeAgent(
            text=f"Paris is mild, Rome is warm.\n{weather_block('Paris', 18)}\n{weather_block('Rome', 24)}"
        )
        request = make_request(user("weather in Paris and Rome"))

        state = await RunOrchestrator(agent, settings).run(request, sink)

        _assert_framed(sink.events)
        cards = _of_type(sink.events, EventType.UI_COMPONENT)
        assert [card.props["location"] for card in cards] == ["Paris", "Rome"]
        assert all(card.component == "weather-card" for card in cards)
        assert cards[0].props["temperature"] == "18°C"
        assert streamed_text(sink.events) == "Paris is mild, Rome is warm."
        assert state.phase == RunPhase.FINISHED
        assert state.events == sink.events

    @pytest.mark.asyncio
    async def test_canonical_order(self, settings, sink):
        """Should emit steps, then text, then components, then RUN_FINISHED."""
        agent = FakeAgent(text=f'```steps\n["Look up Paris"]\n```\nMild.\n{weather_block("Paris")}')

        await RunOrchestrator(agent, settings).run(make_request(user("weather in Paris")), sink)

        assert event_types(sink.events) == [
            "RUN_STARTED",
            "STEP_STARTED",
            "STEP_FINISHED",
            "STEP_STARTED",
            "STEP_FINISHED",
            "STEP_STARTED",
            "STEP_FINISHED",
            "TEXT_MESSAGE_START",
            "TEXT_MESSAGE_CONTENT",
            "TEXT_MESSAGE_END",
            "UI_COMPONENT",
            "RUN_FINISHED",
        ]
        assert_steps_well_formed(sink.events)

    @pytest.mark.asyncio
    async def test_step_ids_and_titles(self, settings, sink):
        """Should namespace step ids by run id and number blank model steps."""
        agent = FakeAgent(text='```steps\n[{"title":"Look up Paris"},{"title":"  "}]\n```\nOk.')

        await RunOrchestrator(agent, settings).run(make_request(user("weather in Paris"), run_id="r7"), sink)

        started = _of_type(sink.events, EventType.STEP_STARTED)
        assert [(s.step_id, s.title) for s in started] == [
            ("step-r7-1", "Interpreting the user's weather request"),
            ("step-r7-2", "Running the weather agent"),
            ("model-step-r7-1", "Look up Paris"),
            ("model-step-r7-2", "Step 2"),
        ]
        assert_steps_well_formed(sink.events)

    @pytest.mark.asyncio
    async def test_long_text_is_chunked_losslessly(self, settings, sink):
        """Should split long replies into bounded chunks that rejoin exactly."""
        text = "Ветер 5 м/с. " * 13 + "Enjoy the sunshine in Zürich!"
        agent = FakeAgent(text=text)

        await RunOrchestrator(agent, settings).run(make_request(user("weather in Zürich")), sink)

        deltas = _of_type(sink.events, EventType.TEXT_MESSAGE_CONTENT)
        assert all(len(d.delta) <= settings.text_chunk_size for d in deltas)
        assert streamed_text(sink.events) == text.strip()
        assert {d.message_id for d in deltas} == {"assistant-run-1"}

    @pytest.mark.asyncio
    async def test_empty_reply_still_frames_message(self, settings, sink):
        """Should open and close the text message even with no content."""
        await RunOrchestrator(FakeAgent(text=""), settings).run(make_request(user("hello")), sink)

        types = event_types(sink.events)
        assert "TEXT_MESSAGE_START" in types
        assert "TEXT_MESSAGE_END" in types
        assert "TEXT_MESSAGE_CONTENT" not in types
        _assert_framed(sink.events)

    @pytest.mark.asyncio
    async def test_malformed_weather_block(self, settings, sink):
        """Should drop a broken weather block and still finish the run."""
        agent = FakeAgent(text="It is sunny.\n```weather\n{oops\n```")

        state = await RunOrchestrator(agent, settings).run(make_request(user("weather in Lisbon")), sink)

        assert _of_type(sink.events, EventType.UI_COMPONENT) == []
        assert streamed_text(sink.events) == "It is sunny."
        assert state.phase == RunPhase.FINISHED
        _assert_framed(sink.events)

    @pytest.mark.asyncio
    async def test_client_action_component(self, settings, sink):
        """Should forward a client action as a client-action component."""
        agent = FakeAgent(
            text='Opening it.\n```clientTool\n{"name":"openWeatherTab","location":"Stuttgart","url":"https://x"}\n```'
        )

        await RunOrchestrator(agent, settings).run(make_request(user("open the weather of Stuttgart")), sink)

        (component,) = _of_type(sink.events, EventType.UI_COMPONENT)
        assert component.component == "client-action"
        assert component.props == {"name": "openWeatherTab", "location": "Stuttgart", "url": "https://x"}

    @pytest.mark.asyncio
    async def test_agent_failure_degrades_to_apology(self, settings, sink):
        """Should stream an apology with the error details when the agent raises."""
        agent = FakeAgent(error=RuntimeError("quota exceeded"))

        state = await RunOrchestrator(agent, settings).run(make_request(user("weather in Oslo")), sink)

        assert streamed_text(sink.events) == "Sorry, I couldn't get the weather. Details: quota exceeded"
        assert state.phase == RunPhase.FINISHED
        assert len(agent.calls) == 1
        _assert_framed(sink.events)

    @pytest.mark.asyncio
    async def test_unusable_reply_degrades_to_apology(self, settings, sink):
        """Should treat a reply without string text as an agent failure."""
        agent = FakeAgent(text=None)  # type: ignore[arg-type]

        state = await RunOrchestrator(agent, settings).run(make_request(user("weather in Oslo")), sink)

        assert streamed_text(sink.events).startswith("Sorry, I couldn't get the weather. Details: ")
        assert "NoneType" in streamed_text(sink.events)
        assert state.phase == RunPhase.FINISHED
        _assert_framed(sink.events)

    @pytest.mark.asyncio
    async def test_agent_timeout_is_a_failure(self, settings, sink):
        """Should apologise when the agent exceeds the configured timeout."""
        settings.agent_timeout_seconds = 0.01
        agent = FakeAgent(text="late", delay=1)

        await RunOrchestrator(agent, settings).run(make_request(user("weather in Oslo")), sink)

        assert streamed_text(sink.events).startswith("Sorry, I couldn't get the weather.")
        _assert_framed(sink.events)

    @pytest.mark.asyncio
    async def test_missing_agent_gives_pseudo_response(self, settings, sink):
        """Should answer with a pseudo-response when no agent is configured."""
        await RunOrchestrator(None, settings).run(make_request(user("weather in Oslo")), sink)

        assert streamed_text(sink.events) == 'Weather agent is not configured. Pseudo-response to: "weather in Oslo"'
        started = _of_type(sink.events, EventType.STEP_STARTED)
        assert [s.step_id for s in started] == ["step-run-1-1"]

    @pytest.mark.asyncio
    async def test_agent_sees_folded_history(self, settings, sink):
        """Should pass tool results to the agent as system annotations."""
        agent = FakeAgent(text="ok")
        request = make_request(
            user("what time is it?", id="u1"),
            tool_result("2024-01-01T10:00:00Z"),
            assistant("Your local time is: 2024-01-01T10:00:00Z"),
            user("and the weather in Berlin?", id="u2"),
        )

        await RunOrchestrator(agent, settings).run(request, sink)

        (messages,) = agent.calls
        assert [m.role for m in messages] == ["user", "system", "assistant", "user"]
        assert messages[1].content == (
            "Tool result (getClientTime / client-time-thread-1): 2024-01-01T10:00:00Z"
        )


class TestClientTimePath:
    """Tests for runs that need the browser's local time."""

    @pytest.mark.asyncio
    async def test_awaiting_client(self, settings, sink):
        """Should request getClientTime and finish with a pending tool call."""
        agent = FakeAgent(text="should not be called")

        state = await RunOrchestrator(agent, settings).run(make_request(user("what time is it?")), sink)

        assert event_types(sink.events) == [
            "RUN_STARTED",
            "TOOL_CALL_START",
            "TOOL_CALL_ARGS",
            "TOOL_CALL_END",
            "RUN_FINISHED",
        ]
        start, args, end, finished = sink.events[1:]
        assert start.tool_call_id == args.tool_call_id == end.tool_call_id == "client-time-thread-1"
        assert start.tool_call_name == "getClientTime"
        assert args.delta == '{"format":"iso"}'
        assert finished.pending_tool_call.tool_call_name == "getClientTime"
        assert finished.pending_tool_call.tool_call_id == "client-time-thread-1"
        assert state.phase == RunPhase.AWAITING_CLIENT_TOOL
        assert agent.calls == []

    @pytest.mark.asyncio
    async def test_retry_reuses_tool_call_id(self, settings):
        """Should issue the same pending call for repeated runs of a thread."""
        first, second = RecordingSink(), RecordingSink()
        orchestrator = RunOrchestrator(None, settings)

        await orchestrator.run(make_request(user("what time is it?"), run_id="r1"), first)
        await orchestrator.run(make_request(user("what time is it?"), run_id="r2"), second)

        assert first.events[-1].pending_tool_call == second.events[-1].pending_tool_call

    @pytest.mark.asyncio
    async def test_resolved_from_history(self, settings, sink):
        """Should answer from the returned tool value without calling the agent."""
        agent = FakeAgent(text="should not be called")
        request = make_request(user("what time is it?"), tool_result("2024-01-01T10:00:00Z"))

        state = await RunOrchestrator(agent, settings).run(request, sink)

        assert streamed_text(sink.events) == "Your local time is: 2024-01-01T10:00:00Z"
        assert sink.events[-1].pending_tool_call is None
        assert _of_type(sink.events, EventType.TOOL_CALL_START) == []
        assert [s.title for s in _of_type(sink.events, EventType.STEP_STARTED)] == [
            "Reading the time returned by the browser tool",
            "Replying with the user's local time",
        ]
        assert_steps_well_formed(sink.events)
        assert state.phase == RunPhase.FINISHED
        assert agent.calls == []


class TestSinkAndPacing:
    """Tests for sink closure and delay handling."""

    @pytest.mark.asyncio
    async def test_closed_sink_aborts_run(self, settings):
        """Should stop writing and end ABORTED once the sink closes."""
        sink = RecordingSink(close_after=3)
        agent = FakeAgent(text="x" * 200)

        state = await RunOrchestrator(agent, settings).run(make_request(user("weather in Paris")), sink)

        assert state.phase == RunPhase.ABORTED
        assert len(sink.events) == 3
        assert "RUN_FINISHED" not in event_types(sink.events)

    @pytest.mark.asyncio
    async def test_pacing_between_chunks(self, settings, sink):
        """Should pause between text chunks but not after the last one."""
        settings.text_chunk_delay_ms = 30
        pauses: list[float] = []

        async def record_sleep(seconds: float) -> None:
            pauses.append(seconds)

        agent = FakeAgent(text="a" * 45)
        await RunOrchestrator(agent, settings, sleep=record_sleep).run(make_request(user("weather")), sink)

        assert len(_of_type(sink.events, EventType.TEXT_MESSAGE_CONTENT)) == 3
        assert pauses == [0.03, 0.03]

    @pytest.mark.asyncio
    async def test_step_delays_scale(self, settings, sink):
        """Should multiply narration delays by the configured scale."""
        settings.step_delay_scale = 0.5
        pauses: list[float] = []

        async def record_sleep(seconds: float) -> None:
            pauses.append(seconds)

        request = make_request(user("what time is it?"), tool_result("now"))
        await RunOrchestrator(None, settings, sleep=record_sleep).run(request, sink)

        assert pauses == [0.225, 0.15]


class TestProtocolGuard:
    """Tests for RUN_FINISHED being terminal and always present."""

    @pytest.mark.asyncio
    async def test_no_event_after_run_finished(self, settings, sink):
        """Should refuse to emit anything after RUN_FINISHED."""
        orchestrator = RunOrchestrator(FakeAgent(text="ok"), settings)
        state = await orchestrator.run(make_request(user("weather")), sink)

        with pytest.raises(RunProtocolError):
            await orchestrator._emit(state, sink, TextMessageEndEvent(message_id=state.message_id))

        assert event_types(sink.events)[-1] == "RUN_FINISHED"

    @pytest.mark.asyncio
    async def test_unexpected_error_still_finishes_run(self, settings, sink, monkeypatch):
        """Should close the stream with RUN_FINISHED when a run step blows up."""

        def broken_extract(text):
            raise KeyError("boom")

        monkeypatch.setattr("agui_server.orchestrator.extract", broken_extract)

        state = await RunOrchestrator(FakeAgent(text="ok"), settings).run(make_request(user("weather")), sink)

        _assert_framed(sink.events)
        assert state.phase == RunPhase.FINISHED
        assert_steps_well_formed(sink.events)


class TestHelpers:
    """Tests for history folding and chunking helpers."""

    def test_build_agent_messages_drops_blank_and_falls_back(self):
        """Should fall back to the user text when every message is blank."""
        messages = build_agent_messages([user("   ")], "hi there")

        assert messages == [AgentMessage(role="user", content="hi there")]

    def test_build_agent_messages_unknown_tool_call(self):
        """Should label tool results lacking name and id with placeholders."""
        folded = build_agent_messages([tool_result("v", name=None, tool_call_id=None)], "x")

        assert folded[0].content == "Tool result (tool / unknown): v"

    def test_chunk_text(self):
        """Should split text into fixed-size chunks."""
        assert chunk_text("", 20) == []
        assert chunk_text("abcde", 2) == ["ab", "cd", "e"]
