"""Shared test fixtures and configuration."""

from __future__ import annotations

import pytest

from agui_server.config import Settings
from tests.helpers import RecordingSink


@pytest.fixture
def settings():
    """Settings with every narration and pacing delay disabled."""
    return Settings(
        google_api_key=None,
        text_chunk_size=20,
        text_chunk_delay_ms=0,
        answer_chunk_delay_ms=0,
        step_delay_scale=0,
        agent_timeout_seconds=None,
    )


@pytest.fixture
def sink():
    return RecordingSink()
