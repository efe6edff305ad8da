"""
Onboarding Session.

Coordinates one run of the onboarding flow for one user/device:

    slides -> filter_slides -> NavigationController -> validate_answer
                                      |
                                  AnswerStore (persist, then move)

A session is an explicit object owned by whoever hosts the flow (a screen,
a CLI loop, an HTTP session registry). Any number of sessions can coexist.

User actions:
- set_answer / toggle_option: change the held answer (memory only)
- next: validate, persist, re-filter, then advance or complete
- back: retreat and reload the held answer
- skip: persist skip, then notify the host
- reset: wipe persisted progress and start over
"""

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Union

from pydantic import BaseModel, ConfigDict

from .config import DEFAULT_COMPLETION_KEY
from .models import AnswerValue, QuestionType, Slide
from .navigation import NavigationController
from .selection import toggle_selection
from .slides import filter_slides, get_slide_at_index, reconcile_index
from .state import FlowStatus
from .storage import KeyValueStorage
from .store import AnswerStore
from .validation import validate_answer

logger = logging.getLogger(__name__)

HostCallback = Callable[[], Union[Awaitable[None], None]]


class OnboardingOptions(BaseModel):
    """Host configuration for a session."""

    model_config = ConfigDict(frozen=True)

    storage_key: str = DEFAULT_COMPLETION_KEY
    on_complete: HostCallback | None = None
    on_skip: HostCallback | None = None

    # Finish as soon as the last slide is reached instead of waiting for "next"
    auto_complete: bool = False

    # Presentation hints passed straight through to the view
    show_skip_button: bool = True
    show_back_button: bool = True
    show_progress_bar: bool = True
    skip_button_text: str = "Skip"
    next_button_text: str = "Next"
    get_started_button_text: str = "Get Started"


@dataclass
class SessionView:
    """Everything the presentation layer needs to draw the current step."""
    visible_slides: list[Slide] = field(default_factory=list)
    current_index: int = 0
    current_slide: Slide | None = None
    is_first: bool = True
    is_last: bool = False
    current_answer: AnswerValue = None
    is_answer_valid: bool = True
    status: FlowStatus = FlowStatus.ACTIVE
    is_busy: bool = False
    is_onboarding_complete: bool = False
    error: str | None = None
    show_skip_button: bool = True
    show_back_button: bool = False
    show_progress_bar: bool = True
    next_button_label: str = "Next"
    skip_button_label: str = "Skip"

    @property
    def total_count(self) -> int:
        return len(self.visible_slides)

    @property
    def progress(self) -> float:
        """Fraction of visible slides reached, 0.0 - 1.0."""
        if not self.visible_slides:
            return 0.0
        return (self.current_index + 1) / len(self.visible_slides)

    @property
    def can_go_next(self) -> bool:
        return (
            self.status == FlowStatus.ACTIVE
            and not self.is_busy
            and self.current_slide is not None
            and self.is_answer_valid
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "visible_slides": [s.to_public_dict() for s in self.visible_slides],
            "current_index": self.current_index,
            "total_count": self.total_count,
            "current_slide": self.current_slide.to_public_dict() if self.current_slide else None,
            "is_first": self.is_first,
            "is_last": self.is_last,
            "current_answer": self.current_answer,
            "is_answer_valid": self.is_answer_valid,
            "can_go_next": self.can_go_next,
            "status": self.status.value,
            "is_busy": self.is_busy,
            "is_onboarding_complete": self.is_onboarding_complete,
            "error": self.error,
            "progress": self.progress,
            "show_skip_button": self.show_skip_button,
            "show_back_button": self.show_back_button,
            "show_progress_bar": self.show_progress_bar,
            "next_button_label": self.next_button_label,
            "skip_button_label": self.skip_button_label,
        }


async def _call_host(callback: HostCallback | None) -> None:
    if callback is None:
        return
    result = callback()
    if inspect.isawaitable(result):
        await result


class OnboardingSession:
    """
    One onboarding run.

    Args:
        slides: Full slide list from the host. Never mutated.
        storage: Durable key-value backend.
        options: Host callbacks and presentation hints.
    """

    def __init__(
        self,
        slides: list[Slide] | None,
        storage: KeyValueStorage,
        options: OnboardingOptions | None = None,
    ):
        self.slides = list(slides) if isinstance(slides, (list, tuple)) else []
        self.options = options or OnboardingOptions()
        self.store = AnswerStore(storage, completion_key=self.options.storage_key)
        self.visible_slides: list[Slide] = []
        self.navigation = NavigationController(
            0,
            on_complete=self._persist_complete,
            on_skip=self._persist_skip,
        )
        self.current_answer: AnswerValue = None
        self.started = False
        # Set while next/skip/reset awaits storage
        self._busy = False

    # =========================================================================
    # Derived state
    # =========================================================================

    @property
    def current_slide(self) -> Slide | None:
        return get_slide_at_index(self.visible_slides, self.navigation.current_index)

    @property
    def status(self) -> FlowStatus:
        return self.navigation.status

    @property
    def error(self) -> str | None:
        return self.store.error

    @property
    def is_busy(self) -> bool:
        return self._busy or self.navigation.is_busy

    @property
    def is_answer_valid(self) -> bool:
        slide = self.current_slide
        if slide is None or slide.question is None:
            return True
        return validate_answer(slide.question, self.current_answer)

    @property
    def view(self) -> SessionView:
        nav = self.navigation
        is_last = nav.is_last and nav.total_count > 0
        return SessionView(
            visible_slides=list(self.visible_slides),
            current_index=nav.current_index,
            current_slide=self.current_slide,
            is_first=nav.is_first,
            is_last=is_last,
            current_answer=self.current_answer,
            is_answer_valid=self.is_answer_valid,
            status=nav.status,
            is_busy=self.is_busy,
            is_onboarding_complete=self.store.is_onboarding_complete,
            error=self.error,
            show_skip_button=self.options.show_skip_button and nav.is_active,
            show_back_button=self.options.show_back_button and not nav.is_first,
            show_progress_bar=self.options.show_progress_bar,
            next_button_label=self.options.get_started_button_text if is_last else self.options.next_button_text,
            skip_button_label=self.options.skip_button_text,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> SessionView:
        """Rehydrate from storage and position on the first visible slide."""
        await self.store.initialize(self.options.storage_key)
        self.visible_slides = filter_slides(self.slides, self.store.user_data)
        self.navigation.reset()
        self.navigation.set_total_count(len(self.visible_slides), index=0)
        self.store.set_error(None)
        self.started = True
        self._load_answer()
        logger.info(
            f"Onboarding session started: {len(self.visible_slides)}/{len(self.slides)} slides visible, "
            f"complete={self.store.is_onboarding_complete}"
        )
        return self.view

    # =========================================================================
    # User actions
    # =========================================================================

    def set_answer(self, value: AnswerValue) -> SessionView:
        """Replace the held answer for the current slide."""
        if self.navigation.is_active and not self.is_busy:
            self.current_answer = value
        return self.view

    def toggle_option(self, option_id: str) -> SessionView:
        """Select/deselect an option on a multiple-choice question."""
        slide = self.current_slide
        if slide is None or slide.question is None or not self.navigation.is_active or self.is_busy:
            return self.view

        question = slide.question
        if question.type == QuestionType.MULTIPLE_CHOICE:
            max_selections = question.validation.max_selections if question.validation else None
            self.current_answer = toggle_selection(self.current_answer, option_id, max_selections)
        else:
            self.current_answer = option_id
        return self.view

    async def next(self) -> bool:
        """
        Save the held answer and move forward (or complete on the last slide).

        Returns:
            True if navigation moved or the flow completed, False if blocked.

        Raises:
            StorageWriteError: Persisting the answer or the completion failed.
                Navigation has not moved.
        """
        slide = self.current_slide
        if slide is None or not self.navigation.is_active or self.is_busy:
            return False

        if not self.is_answer_valid:
            return False

        self._busy = True
        try:
            return await self._save_and_advance(slide)
        finally:
            self._busy = False

    def back(self) -> bool:
        """Move back one slide."""
        if self.is_busy:
            return False
        moved = self.navigation.retreat()
        if moved:
            self._load_answer()
        return moved

    async def skip(self) -> bool:
        """
        Skip the rest of onboarding.

        Returns:
            False while another action is still persisting.

        Raises:
            StorageWriteError: Persisting the skip failed. Still active.
        """
        if self.is_busy:
            return False
        self._busy = True
        try:
            return await self._guarded(self.navigation.skip())
        finally:
            self._busy = False

    async def reset(self) -> SessionView:
        """Wipe persisted progress and return to the first slide."""
        if self.is_busy:
            return self.view
        self._busy = True
        try:
            await self._guarded(self.store.reset(self.options.storage_key))
        finally:
            self._busy = False
        self.visible_slides = filter_slides(self.slides, self.store.user_data)
        self.navigation.reset()
        self.navigation.set_total_count(len(self.visible_slides), index=0)
        self._load_answer()
        return self.view

    # =========================================================================
    # Internals
    # =========================================================================

    async def _save_and_advance(self, slide: Slide) -> bool:
        nav = self.navigation
        if slide.question is not None and self.current_answer is not None:
            previous_index = nav.current_index
            await self._guarded(self.store.save_answer(slide.question.storage_key, self.current_answer))
            self._refilter()

            # The answered slide hid itself; its successor already holds the cursor
            if self.current_slide is None or self.current_slide.id != slide.id:
                if previous_index >= len(self.visible_slides):
                    return await self._guarded(nav.complete())
                self._load_answer()
                return True

        moved = await self._guarded(nav.advance())
        if moved and nav.is_active:
            self._load_answer()
            if self.options.auto_complete and nav.is_last:
                await self._guarded(nav.complete())
        return moved

    async def _persist_complete(self) -> None:
        await self.store.complete(self.options.storage_key)
        await _call_host(self.options.on_complete)

    async def _persist_skip(self) -> None:
        await self.store.skip(self.options.storage_key)
        await _call_host(self.options.on_skip)

    async def _guarded(self, awaitable: Awaitable[Any]) -> Any:
        """Await a storage-backed step; the store keeps the failure message for the view."""
        result = await awaitable
        self.store.set_error(None)
        return result

    def _refilter(self) -> None:
        """Recompute visible slides after answers changed and keep the cursor anchored."""
        previous = self.visible_slides
        current = filter_slides(self.slides, self.store.user_data)
        index = reconcile_index(previous, self.navigation.current_index, current)
        self.visible_slides = current
        self.navigation.set_total_count(len(current), index=index)

    def _load_answer(self) -> None:
        """Held answer for the current slide: saved answer, else question default."""
        slide = self.current_slide
        if slide is None or slide.question is None:
            self.current_answer = None
            return
        saved = self.store.get_answer(slide.question.storage_key)
        self.current_answer = saved if saved is not None else slide.question.default_value
        self.store.set_current_step(self.navigation.current_index)
