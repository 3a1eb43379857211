"""Fixed progress-narration steps (Interpreting…, Reading the time…).

Each step is a title plus the simulated thinking delay shown to the client
between STEP_STARTED and STEP_FINISHED. Delays scale with
``Settings.step_delay_scale`` (0 disables them).
"""

from __future__ import annotations

from dataclasses import dataclass

from .intent import ClientValueKind


@dataclass(frozen=True, slots=True)
class NarrationStep:
    title: str
    delay_ms: int


# Generative path; the agent-call step stays open for the duration of the call.
INTERPRET_REQUEST = NarrationStep("Interpreting the user's weather request", 1000)
RUN_AGENT = NarrationStep("Running the weather agent", 0)
MODEL_STEP_DELAY_MS = 350

# Client-value path, once the client has answered.
RESOLVED_STEPS: dict[ClientValueKind, tuple[NarrationStep, ...]] = {
    ClientValueKind.TIME: (
        NarrationStep("Reading the time returned by the browser tool", 450),
        NarrationStep("Replying with the user's local time", 300),
    ),
}


def narration_step_id(run_id: str, n: int) -> str:
    return f"step-{run_id}-{n}"


def model_step_id(run_id: str, n: int) -> str:
    return f"model-step-{run_id}-{n}"


def model_step_title(title: str | None, n: int) -> str:
    """Model-provided step title, or ``Step N`` when blank."""
    if title and title.strip():
        return title
    return f"Step {n}"
