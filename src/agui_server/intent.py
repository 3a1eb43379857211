"""Decide whether a turn needs a value only the client can supply.

Each client-value kind has a fixed bilingual (Russian + English) phrase table
and a few regex fallbacks for inflected forms. Adding a kind means adding a
``ClientValueKind`` member and a ``_PhraseTable`` entry; the rest of the
pipeline is kind-agnostic.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum


class ClientValueKind(str, Enum):
    TIME = "time"


@dataclass(frozen=True, slots=True)
class RequiresClientValue:
    kind: ClientValueKind


@dataclass(frozen=True, slots=True)
class Generative:
    pass


Intent = RequiresClientValue | Generative

GENERATIVE = Generative()


@dataclass(frozen=True, slots=True)
class _PhraseTable:
    phrases: tuple[str, ...]
    patterns: tuple[re.Pattern[str], ...]

    def matches(self, text: str) -> bool:
        if any(phrase in text for phrase in self.phrases):
            return True
        return any(pattern.search(text) for pattern in self.patterns)


_PHRASE_TABLES: dict[ClientValueKind, _PhraseTable] = {
    ClientValueKind.TIME: _PhraseTable(
        phrases=(
            # ru
            "который час",
            "который сейчас час",
            "сколько времени",
            "сколько сейчас времени",
            "текущее время",
            "время сейчас",
            "какое сейчас время",
            # en
            "what time is it",
            "current time",
            "local time",
            "time now",
            "clock",
        ),
        patterns=(
            re.compile(r"котор(ый|ая|ое)\s+.*час", re.IGNORECASE),
            re.compile(r"сколько\s+.*времен", re.IGNORECASE),
        ),
    ),
}


def classify(latest_user_text: str) -> Intent:
    """Classify the latest user utterance."""

    text = (latest_user_text or "").lower().strip()
    for kind, table in _PHRASE_TABLES.items():
        if table.matches(text):
            return RequiresClientValue(kind)
    return GENERATIVE


__all__ = [
    "ClientValueKind",
    "GENERATIVE",
    "Generative",
    "Intent",
    "RequiresClientValue",
    "classify",
]
