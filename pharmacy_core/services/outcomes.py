from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Handled:
    detail: str | None = None


@dataclass(frozen=True)
class Failed:
    reason: str


StepOutcome = Handled | Failed


def is_handled(outcome: StepOutcome) -> bool:
    return isinstance(outcome, Handled)
