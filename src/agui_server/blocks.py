"""Extract fenced structured blocks from a model reply.

The weather agent is instructed to append JSON payloads in fenced regions
tagged with a kind label, for example::

    Sunny and mild in Berlin today.

    ```weather
    {"location":"Berlin","temperatureC":12,"status":"Cloudy","humidityPct":70,"windMs":5.2}
    ```

``extract`` returns the prose with every recognized fence removed plus the
parsed payloads. Weather fences may repeat (one per city); ``steps`` and
``clientTool`` fences are single-only and the first one wins.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

STEPS_LABEL = "steps"
CLIENT_ACTION_LABEL = "clientTool"
WEATHER_LABEL = "weather"


def _fence(label: str) -> re.Pattern[str]:
    return re.compile(rf"```{label}\b(.*?)```", re.IGNORECASE | re.DOTALL)


_STEPS_RE = _fence(STEPS_LABEL)
_CLIENT_ACTION_RE = _fence(CLIENT_ACTION_LABEL)
_WEATHER_RE = _fence(WEATHER_LABEL)


class WeatherCard(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    location: str
    temperature_c: float = Field(..., alias="temperatureC")
    status: str
    humidity_pct: float = Field(..., alias="humidityPct")
    wind_ms: float = Field(..., alias="windMs")

    def to_props(self) -> dict[str, str]:
        return {
            "location": self.location,
            "temperature": f"{_format_number(self.temperature_c)}°C",
            "status": self.status,
            "humidity": f"{_format_number(self.humidity_pct)}%",
            "wind": f"{_format_number(self.wind_ms)} m/s",
        }


class ClientAction(BaseModel):
    """A directive for the browser, e.g. ``openWeatherTab``."""

    model_config = ConfigDict(extra="allow")

    name: str

    @property
    def args(self) -> dict[str, Any]:
        return dict(self.model_extra or {})

    def to_props(self) -> dict[str, Any]:
        return {"name": self.name, **self.args}


class Step(BaseModel):
    title: str | None = None


class StepList(BaseModel):
    steps: list[Step]

    @field_validator("steps", mode="before")
    @classmethod
    def _coerce_plain_titles(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [{"title": item} if isinstance(item, str) else item for item in value]
        return value


ExtractedBlock = Union[WeatherCard, ClientAction, StepList]


@dataclass(slots=True)
class Extraction:
    clean_text: str
    blocks: list[ExtractedBlock] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def weather_cards(self) -> list[WeatherCard]:
        return [block for block in self.blocks if isinstance(block, WeatherCard)]

    @property
    def step_list(self) -> StepList | None:
        return next((block for block in self.blocks if isinstance(block, StepList)), None)

    @property
    def client_action(self) -> ClientAction | None:
        return next((block for block in self.blocks if isinstance(block, ClientAction)), None)


def _format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def _parse_json(label: str, body: str, warnings: list[str]) -> Any | None:
    raw = body.strip()
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        message = f"Failed to parse {label} JSON: {exc.msg}"
        logger.warning("%s: %s", message, raw[:200])
        warnings.append(message)
        return None


def _validate(model: type[BaseModel], label: str, payload: Any, warnings: list[str]) -> BaseModel | None:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        message = f"Dropped {label} block: {exc.error_count()} validation error(s)"
        logger.warning("%s: %s", message, exc.errors(include_url=False))
        warnings.append(message)
        return None


def _take_first(pattern: re.Pattern[str], text: str) -> tuple[str | None, str]:
    match = pattern.search(text)
    if not match:
        return None, text
    return match.group(1), text[: match.start()] + text[match.end() :]


def _parse_step_list(body: str, warnings: list[str]) -> StepList | None:
    payload = _parse_json(STEPS_LABEL, body, warnings)
    if payload is None:
        return None
    if isinstance(payload, list):
        payload = {"steps": payload}
    return _validate(StepList, STEPS_LABEL, payload, warnings)  # type: ignore[return-value]


def extract(raw_text: str) -> Extraction:
    """Split a model reply into clean prose and structured blocks.

    Step list first (from the raw text), then the client action, then every
    weather card in order of appearance. Malformed blocks are dropped with a
    warning but are still removed from the text.
    """

    text = raw_text or ""
    blocks: list[ExtractedBlock] = []
    warnings: list[str] = []

    steps_body, text = _take_first(_STEPS_RE, text)
    if steps_body is not None:
        step_list = _parse_step_list(steps_body, warnings)
        if step_list is not None:
            blocks.append(step_list)

    action_body, text = _take_first(_CLIENT_ACTION_RE, text)
    if action_body is not None:
        payload = _parse_json(CLIENT_ACTION_LABEL, action_body, warnings)
        if payload is not None:
            action = _validate(ClientAction, CLIENT_ACTION_LABEL, payload, warnings)
            if action is not None:
                blocks.append(action)  # type: ignore[arg-type]

    for match in _WEATHER_RE.finditer(text):
        payload = _parse_json(WEATHER_LABEL, match.group(1), warnings)
        if payload is None:
            continue
        card = _validate(WeatherCard, WEATHER_LABEL, payload, warnings)
        if card is not None:
            blocks.append(card)  # type: ignore[arg-type]
    text = _WEATHER_RE.sub("", text)

    return Extraction(clean_text=text.strip(), blocks=blocks, warnings=warnings)


__all__ = [
    "ClientAction",
    "ExtractedBlock",
    "Extraction",
    "Step",
    "StepList",
    "WeatherCard",
    "extract",
]
