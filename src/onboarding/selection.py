"""
Selection helpers for choice questions.

toggle_selection() is the prevention layer for multiple choice: it refuses
to add an option past max_selections. validate_answer() is the separate
rejection layer that judges whatever list ends up held.
"""

from collections.abc import Callable
from typing import Any


def ensure_array(value: Any) -> list:
    """Coerce an answer into a list. None and scalars become [] / [value]."""
    if value is None:
        return []
    if isinstance(value, list):
        return list(value)
    if isinstance(value, tuple):
        return list(value)
    return [value]


def safe_includes(value: Any, item: Any) -> bool:
    """Membership test that tolerates non-list answers."""
    return item in ensure_array(value)


def safe_filter(value: Any, predicate: Callable[[Any], bool]) -> list:
    """Filter an answer as a list, tolerating non-list answers."""
    return [v for v in ensure_array(value) if predicate(v)]


def toggle_selection(
    current: Any,
    option_id: str,
    max_selections: int | None = None,
) -> list[str]:
    """
    Toggle an option in a multiple-choice answer.

    Deselecting always works. Selecting is refused (the current list comes
    back unchanged) when it would exceed max_selections.
    """
    selected = ensure_array(current)

    if option_id in selected:
        return [s for s in selected if s != option_id]

    if max_selections is not None and len(selected) + 1 > max_selections:
        return selected

    return selected + [option_id]
