"""
Answer Store.

Loads, merges and saves onboarding progress through a KeyValueStorage.

Two keys are used:
- the completion flag ("true"/"false" string), default key
  "@onboarding:completed", overridable per session
- the UserData blob under the fixed key "@onboarding:user_data"

Reads fail open: a missing or corrupt store must never block startup, so
initialize() falls back to the empty, not-completed state.

Writes are pessimistic: memory is only updated after storage confirms.
A failed write raises StorageWriteError and leaves memory untouched.
"""

import logging
from dataclasses import dataclass

from .config import DEFAULT_COMPLETION_KEY, USER_DATA_KEY, get_settings
from .errors import StorageWriteError
from .models import AnswerValue
from .state import StoreState, UserData
from .storage import KeyValueStorage, StorageResult

logger = logging.getLogger(__name__)

_TRUE = "true"
_FALSE = "false"


@dataclass
class StoreSnapshot:
    """Result of initialize()."""
    is_complete: bool
    user_data: UserData


class AnswerStore:
    """
    Persistence adapter for one onboarding session.

    Args:
        storage: Backend implementing KeyValueStorage.
        completion_key: Default key for the completion flag.
    """

    def __init__(self, storage: KeyValueStorage, completion_key: str = DEFAULT_COMPLETION_KEY):
        self.storage = storage
        self.completion_key = completion_key
        self.state = StoreState()

    # =========================================================================
    # Selectors
    # =========================================================================

    @property
    def is_onboarding_complete(self) -> bool:
        return self.state.is_onboarding_complete

    @property
    def user_data(self) -> UserData:
        return self.state.user_data

    @property
    def error(self) -> str | None:
        return self.state.error

    def get_answer(self, key: str) -> AnswerValue:
        return self.state.user_data.answers.get(key)

    def get_user_data(self) -> UserData:
        return self.state.user_data

    # =========================================================================
    # Simple setters
    # =========================================================================

    def set_current_step(self, step: int) -> None:
        self.state.current_step = step

    def set_loading(self, loading: bool) -> None:
        self.state.loading = loading

    def set_error(self, error: str | None) -> None:
        self.state.error = error

    # =========================================================================
    # Async actions
    # =========================================================================

    async def initialize(self, storage_key: str | None = None) -> StoreSnapshot:
        """
        Rehydrate from storage.

        Never raises for storage problems; falls back to defaults.
        """
        key = storage_key or self.completion_key
        self.set_loading(True)

        is_complete = False
        user_data = UserData()

        flag = await self.storage.get_string(key, _FALSE)
        if flag.success:
            is_complete = flag.value == _TRUE
        else:
            self._log_read_failure(key, flag)

        blob = await self.storage.get_item(USER_DATA_KEY, {"answers": {}})
        if blob.success:
            if isinstance(blob.value, dict):
                user_data = UserData.from_dict(blob.value)
            else:
                self._log_read_failure(USER_DATA_KEY, StorageResult.fail("stored user data is not an object"))
        else:
            self._log_read_failure(USER_DATA_KEY, blob)

        self.state = StoreState(
            is_onboarding_complete=is_complete,
            current_step=0,
            loading=False,
            error=None,
            user_data=user_data,
        )
        return StoreSnapshot(is_complete=is_complete, user_data=user_data)

    async def save_answer(self, question_key: str, value: AnswerValue) -> UserData:
        """
        Merge one answer and persist the whole UserData blob.

        Returns:
            The UserData now held in memory.
        """
        updated = self.state.user_data.with_answer(question_key, value)
        await self._write(USER_DATA_KEY, updated.to_dict(), action=f"save answer '{question_key}'")
        self.state.user_data = updated
        self.set_error(None)
        return updated

    async def set_user_data(self, user_data: UserData) -> UserData:
        """Replace and persist the whole UserData blob."""
        await self._write(USER_DATA_KEY, user_data.to_dict(), action="save user data")
        self.state.user_data = user_data
        self.set_error(None)
        return user_data

    async def complete(self, storage_key: str | None = None) -> UserData:
        """Mark onboarding finished."""
        return await self._finish(storage_key, skipped=False)

    async def skip(self, storage_key: str | None = None) -> UserData:
        """Mark onboarding finished by skipping. Counts as complete."""
        return await self._finish(storage_key, skipped=True)

    async def reset(self, storage_key: str | None = None) -> None:
        """
        Wipe the completion flag and all answers.

        Memory is cleared only once both deletions succeeded.
        """
        key = storage_key or self.completion_key
        await self._remove(key)
        await self._remove(USER_DATA_KEY)
        self.state = StoreState(loading=False)
        logger.info("Onboarding progress reset")

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _finish(self, storage_key: str | None, skipped: bool) -> UserData:
        key = storage_key or self.completion_key
        action = "skip onboarding" if skipped else "complete onboarding"

        # Blob first: the flag is what marks the flow finished after a restart
        stamped = self.state.user_data.stamped(skipped=skipped)
        await self._write(USER_DATA_KEY, stamped.to_dict(), action=action)
        await self._write_string(key, _TRUE, action=action)

        self.state.user_data = stamped
        self.state.is_onboarding_complete = True
        self.set_error(None)
        logger.info(f"Onboarding {'skipped' if skipped else 'completed'} at {stamped.completed_at}")
        return stamped

    async def _write(self, key: str, value: dict, action: str) -> None:
        result = await self.storage.set_item(key, value)
        if not result.success:
            self._raise_write_failure(key, result, action)

    async def _write_string(self, key: str, value: str, action: str) -> None:
        result = await self.storage.set_string(key, value)
        if not result.success:
            self._raise_write_failure(key, result, action)

    async def _remove(self, key: str) -> None:
        result = await self.storage.remove_item(key)
        if not result.success:
            self._raise_write_failure(key, result, "reset onboarding")

    def _raise_write_failure(self, key: str, result: StorageResult, action: str) -> None:
        message = f"Failed to {action}: {result.error or 'unknown storage error'}"
        logger.error(f"{message} (key={key})")
        self.set_error(message)
        raise StorageWriteError(message, key=key)

    def _log_read_failure(self, key: str, result: StorageResult) -> None:
        if get_settings().is_development:
            logger.warning(f"Failed to read '{key}', using defaults: {result.error}")
