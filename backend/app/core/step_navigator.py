"""
Onboarding step navigator.

Integer state machine over steps 1..N. Moves are ±1 only and clamp at the
ends; the terminal step swaps the "Next" action for "Submit". Field
validation is the caller's business (see KYBDraft.next_step).
"""
from __future__ import annotations

from typing import Any

from app.core.kyb_schema import FORM_STEPS, TOTAL_STEPS, FormStep

ACTION_NEXT = "Next"
ACTION_SUBMIT = "Submit"


class StepNavigator:

    def __init__(self, total: int = TOTAL_STEPS, current_step: int = 1):
        if total < 1:
            raise ValueError("total must be at least 1")
        self._total = total
        self._current = max(1, min(current_step, total))

    @property
    def current_step(self) -> int:
        return self._current

    @property
    def total(self) -> int:
        return self._total

    @property
    def is_first(self) -> bool:
        return self._current == 1

    @property
    def is_last(self) -> bool:
        return self._current == self._total

    @property
    def action_label(self) -> str:
        return ACTION_SUBMIT if self.is_last else ACTION_NEXT

    @property
    def current(self) -> FormStep:
        return FORM_STEPS[self._current - 1]

    def advance(self) -> int:
        self._current = min(self._current + 1, self._total)
        return self._current

    def retreat(self) -> int:
        self._current = max(self._current - 1, 1)
        return self._current

    def progress(self) -> list[dict[str, Any]]:
        """Per-step flags for a progress bar: reached, done, current."""
        return [
            {
                "id": step.id,
                "title": step.title,
                "reached": self._current >= step.id,
                "completed": self._current > step.id,
                "current": self._current == step.id,
            }
            for step in FORM_STEPS[: self._total]
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_step": self._current,
            "total_steps": self._total,
            "title": self.current.title,
            "description": self.current.description,
            "action": self.action_label,
            "can_go_back": not self.is_first,
        }

    def __repr__(self) -> str:
        return f"StepNavigator(current_step={self._current}, total={self._total})"
