"""Modular system prompt for the weather agent.

Prompt sections are stored as separate .txt files and composed in order. Set
SYSTEM_PROMPT in env to override them with a single custom prompt.
"""

from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

# Order of prompt sections (filenames without .txt)
PROMPT_SECTION_ORDER = (
    "base",
    "reasoning_steps",
    "multi_city",
    "weather_cards",
    "client_tool",
)


def _prompts_dir() -> Path:
    """Directory containing prompt .txt files (next to this __init__.py)."""
    return Path(__file__).resolve().parent


def _load_section(name: str) -> str:
    """Load a single prompt section by name (without .txt)."""
    path = _prompts_dir() / f"{name}.txt"
    if not path.exists():
        logger.warning("Prompt section not found: %s", path)
        return ""
    return path.read_text(encoding="utf-8").strip()


def build_system_prompt(
    *,
    section_order: tuple[str, ...] | None = None,
    separator: str = "\n\n",
) -> str:
    """Build the full system prompt by joining prompt sections in order."""
    order = section_order or PROMPT_SECTION_ORDER
    parts = [content for content in (_load_section(name) for name in order) if content]
    return separator.join(parts)


def get_system_prompt(override: str | None = None) -> str:
    """Return ``override`` when set, else the composed modular prompt."""
    if override and override.strip():
        return override.strip()
    return build_system_prompt()


__all__ = [
    "PROMPT_SECTION_ORDER",
    "build_system_prompt",
    "get_system_prompt",
]
