"""
Navigation state machine.

    AtSlide(0) -> AtSlide(1) -> ... -> Completed | Skipped

AtSlide(0) is the only initial state. Completed and Skipped are terminal.
Terminal transitions await a callback (persistence + host notification)
and are guarded against re-entry: a second advance/skip issued while the
first is still awaiting returns immediately without firing anything.
"""

import logging
from collections.abc import Awaitable, Callable

from .state import FlowStatus, NavigationState

logger = logging.getLogger(__name__)

TerminalCallback = Callable[[], Awaitable[None]]


class NavigationController:
    """
    Sequential cursor over the filtered slide list.

    Args:
        total_count: Number of visible slides.
        on_complete: Awaited when advancing past the last slide.
        on_skip: Awaited when the user skips the flow.
    """

    def __init__(
        self,
        total_count: int,
        on_complete: TerminalCallback | None = None,
        on_skip: TerminalCallback | None = None,
    ):
        self.total_count = max(0, total_count)
        self.current_index = 0
        self.status = FlowStatus.ACTIVE
        self._on_complete = on_complete
        self._on_skip = on_skip
        self._in_flight = False

    # -------------------------------------------------------------------------
    # Derived state
    # -------------------------------------------------------------------------

    @property
    def is_first(self) -> bool:
        return self.current_index == 0

    @property
    def is_last(self) -> bool:
        return self.current_index == self.total_count - 1

    @property
    def is_active(self) -> bool:
        return self.status == FlowStatus.ACTIVE

    @property
    def is_busy(self) -> bool:
        """True while a terminal transition is awaiting its callback."""
        return self._in_flight

    @property
    def state(self) -> NavigationState:
        return NavigationState(current_index=self.current_index, total_count=self.total_count)

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    async def advance(self) -> bool:
        """
        Move forward one slide, or complete the flow from the last slide.

        Returns:
            True if the state changed.
        """
        if not self.is_active or self._in_flight or self.total_count == 0:
            return False

        if self.is_last:
            return await self._terminate(self._on_complete, FlowStatus.COMPLETED)

        self.current_index += 1
        return True

    def retreat(self) -> bool:
        """Move back one slide. No-op on the first slide."""
        if not self.is_active or self._in_flight or self.current_index == 0:
            return False
        self.current_index -= 1
        return True

    async def complete(self) -> bool:
        """Complete from any slide."""
        if not self.is_active or self._in_flight:
            return False
        return await self._terminate(self._on_complete, FlowStatus.COMPLETED)

    async def skip(self) -> bool:
        """Skip the rest of the flow from any slide."""
        if not self.is_active or self._in_flight:
            return False
        return await self._terminate(self._on_skip, FlowStatus.SKIPPED)

    def go_to(self, index: int) -> bool:
        """Jump to a visible slide. Out-of-range indices are ignored."""
        if not self.is_active or self._in_flight:
            return False
        if not 0 <= index < self.total_count:
            return False
        self.current_index = index
        return True

    def reset(self) -> None:
        """Back to AtSlide(0)."""
        self.current_index = 0
        self.status = FlowStatus.ACTIVE
        self._in_flight = False

    def set_total_count(self, total_count: int, index: int | None = None) -> None:
        """
        Resize after a re-filter.

        The cursor moves to `index` when given, and is clamped into
        [0, total_count - 1] either way.
        """
        self.total_count = max(0, total_count)
        if index is not None:
            self.current_index = index
        if self.total_count == 0:
            self.current_index = 0
        else:
            self.current_index = max(0, min(self.current_index, self.total_count - 1))

    async def _terminate(self, callback: TerminalCallback | None, final: FlowStatus) -> bool:
        self._in_flight = True
        try:
            if callback is not None:
                await callback()
        except Exception:
            logger.error(f"Terminal transition to '{final.value}' failed; staying at slide {self.current_index}")
            raise
        else:
            self.status = final
            return True
        finally:
            self._in_flight = False
