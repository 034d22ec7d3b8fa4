from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

STATUS_EMPTY = "empty"
STATUS_STARTED = "started"
STATUS_HALFWAY = "halfway"
STATUS_ALMOST = "almost"
STATUS_COMPLETE = "complete"

OPTIONAL_BONUS_POINTS = 10


@dataclass(frozen=True)
class CompletionResult:
    percentage: int
    completed_fields: int
    total_required_fields: int
    missing_required_fields: list[str] = field(default_factory=list)
    status: str = STATUS_EMPTY
    message: str = ""


def get_nested_value(values: Any, path: str) -> Any:
    """Resolve a dot path such as ``address.line1`` or ``applicants.0.email``."""
    current = values
    for segment in path.split("."):
        if current is None:
            return None
        if isinstance(current, Mapping):
            current = current.get(segment)
        elif isinstance(current, Sequence) and not isinstance(current, (str, bytes)):
            if not segment.isdigit():
                return None
            try:
                current = current[int(segment)]
            except (ValueError, IndexError):
                return None
        else:
            return None
    return current


def is_field_complete(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return len(value.strip()) > 0
    if isinstance(value, bool):
        return True
    if isinstance(value, (list, tuple)):
        return len(value) > 0
    if isinstance(value, Mapping):
        return any(is_field_complete(item) for item in value.values())
    return bool(value)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _classify(total: float, missing_count: int) -> tuple[str, str]:
    if total == 0:
        return STATUS_EMPTY, "Let's get started!"
    if total < 30:
        return STATUS_STARTED, "Great start! Keep going."
    if total < 70:
        return STATUS_HALFWAY, f"You're {_round_half_up(total)}% done! Making good progress."
    if total < 95:
        return STATUS_ALMOST, f"Almost there! Just {missing_count} more fields to go."
    return STATUS_COMPLETE, "Perfect! All required fields completed."


def evaluate_completion(
    values: Mapping[str, Any] | None,
    required_fields: Sequence[str],
    optional_fields: Sequence[str] = (),
) -> CompletionResult:
    """Score how much of a form is filled in.

    Required fields drive the percentage; completed optional fields add up to
    ten bonus points. The total is capped at 100 and classified against fixed
    breakpoints (0, <30, <70, <95, >=95) before rounding.
    """
    form = values or {}
    completed_required = [path for path in required_fields if is_field_complete(get_nested_value(form, path))]
    missing_required = [path for path in required_fields if not is_field_complete(get_nested_value(form, path))]
    completed_optional = [path for path in optional_fields if is_field_complete(get_nested_value(form, path))]

    required_pct = (len(completed_required) * 100 / len(required_fields)) if required_fields else 0.0
    optional_bonus = (
        len(completed_optional) * OPTIONAL_BONUS_POINTS / len(optional_fields) if optional_fields else 0.0
    )
    total = min(100.0, required_pct + optional_bonus)
    status, message = _classify(total, len(missing_required))

    return CompletionResult(
        percentage=_round_half_up(total),
        completed_fields=len(completed_required),
        total_required_fields=len(required_fields),
        missing_required_fields=missing_required,
        status=status,
        message=message,
    )
