"""Tool registry for the weather agent."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Dict

from langchain_core.tools import BaseTool

from .weather_tool import get_weather


def get_registered_tools() -> Sequence[BaseTool]:
    """Return all server-side tools available to the agent."""

    return (get_weather,)


def get_tools_by_name() -> Dict[str, BaseTool]:
    """Convenience mapping for tool lookup by name."""

    return {tool.name: tool for tool in get_registered_tools()}


__all__ = [
    "get_registered_tools",
    "get_tools_by_name",
]
