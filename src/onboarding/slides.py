"""
Slide filtering.

Decides which slides are visible for the current answers. Safe to call
again after every answer change: conditional slides further along may
appear or disappear, and reconcile_index() keeps the cursor on a sensible
slide when that happens.
"""

import logging
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from .models import Slide
from .state import UserData

logger = logging.getLogger(__name__)


def _answers_snapshot(user_data: UserData | Mapping[str, Any] | None) -> Mapping[str, Any]:
    """Read-only view of the answers handed to skip predicates."""
    if isinstance(user_data, UserData):
        answers = user_data.answers
    elif isinstance(user_data, Mapping):
        answers = user_data
    else:
        answers = {}
    return MappingProxyType(dict(answers))


def _should_skip(slide: Slide, answers: Mapping[str, Any]) -> bool:
    predicates = [("slide", slide.skip_if)]
    if slide.question is not None:
        predicates.append(("question", slide.question.skip_if))

    for kind, predicate in predicates:
        if predicate is None:
            continue
        try:
            if predicate(answers):
                return True
        except Exception as e:
            # A broken predicate must not hide the slide
            logger.warning(f"skip_if on {kind} of slide '{slide.id}' raised: {e}")
    return False


def filter_slides(slides: Any, user_data: UserData | Mapping[str, Any] | None = None) -> list[Slide]:
    """
    Return the ordered subset of slides visible for the given answers.

    Args:
        slides: Full slide list supplied by the host. Anything that is not
            a list/tuple yields [] instead of an error.
        user_data: UserData or a plain answers mapping.

    Returns:
        Slides whose skip predicates (slide-level or question-level) do not
        fire, in original order.
    """
    if not isinstance(slides, (list, tuple)) or not slides:
        return []

    answers = _answers_snapshot(user_data)
    visible = []
    for slide in slides:
        if not isinstance(slide, Slide):
            logger.warning(f"Ignoring malformed slide entry: {slide!r}")
            continue
        if not _should_skip(slide, answers):
            visible.append(slide)
    return visible


def get_slide_at_index(slides: list[Slide] | None, index: int) -> Slide | None:
    """Bounds-checked lookup. Never raises."""
    if not slides or not isinstance(index, int):
        return None
    if 0 <= index < len(slides):
        return slides[index]
    return None


def reconcile_index(previous: list[Slide], current_index: int, current: list[Slide]) -> int:
    """
    Map the cursor from the previous visible list onto the new one.

    The slide that was current keeps the cursor if it is still visible.
    Otherwise the old index is clamped into range.
    """
    if not current:
        return 0

    anchor = get_slide_at_index(previous, current_index)
    if anchor is not None:
        for i, slide in enumerate(current):
            if slide.id == anchor.id:
                return i

    return max(0, min(current_index, len(current) - 1))


class SlideManager:
    """Static facade over the slide helpers."""

    filter_slides = staticmethod(filter_slides)
    get_slide_at_index = staticmethod(get_slide_at_index)
    reconcile_index = staticmethod(reconcile_index)
