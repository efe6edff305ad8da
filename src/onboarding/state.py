"""
Onboarding State.

UserData is the unit of persistence: every answer plus completion/skip
metadata. It is created empty on first run, rewritten in full on every
successful answer save, stamped on completion or skip, and wiped by reset.

NavigationState and StoreState are in-memory only. After a restart
everything is rehydrated from the persisted UserData.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
import json

from .models import AnswerValue


class FlowStatus(str, Enum):
    """Lifecycle of a navigation run."""
    ACTIVE = "active"
    COMPLETED = "completed"  # Terminal
    SKIPPED = "skipped"      # Terminal, still counts as "onboarding complete"


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601."""
    return datetime.now(timezone.utc).isoformat()


@dataclass
class UserData:
    """
    Everything the onboarding flow persists about a user.

    Persisted under a single key as one JSON blob (never partially).
    """
    answers: dict[str, AnswerValue] = field(default_factory=dict)
    completed_at: str | None = None
    skipped: bool | None = None

    def with_answer(self, key: str, value: AnswerValue) -> "UserData":
        """Return a copy with `key` set to `value`."""
        return UserData(
            answers={**self.answers, key: value},
            completed_at=self.completed_at,
            skipped=self.skipped,
        )

    def stamped(self, skipped: bool = False) -> "UserData":
        """Return a copy marked finished now."""
        return UserData(
            answers=dict(self.answers),
            completed_at=utc_now_iso(),
            skipped=True if skipped else self.skipped,
        )

    def to_dict(self) -> dict:
        """Serialize for storage. Optional fields are omitted when unset."""
        data: dict[str, Any] = {"answers": dict(self.answers)}
        if self.completed_at is not None:
            data["completed_at"] = self.completed_at
        if self.skipped is not None:
            data["skipped"] = self.skipped
        return data

    @classmethod
    def from_dict(cls, data: dict | None) -> "UserData":
        """
        Deserialize from storage.

        Tolerates missing fields; a non-dict answers value is dropped.
        """
        if not isinstance(data, dict):
            return cls()
        answers = data.get("answers")
        skipped = data.get("skipped")
        return cls(
            answers=dict(answers) if isinstance(answers, dict) else {},
            completed_at=data.get("completed_at"),
            skipped=bool(skipped) if skipped is not None else None,
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, json_str: str) -> "UserData":
        return cls.from_dict(json.loads(json_str))


@dataclass
class NavigationState:
    """Position within the filtered slide list."""
    current_index: int = 0
    total_count: int = 0

    @property
    def is_first(self) -> bool:
        return self.current_index == 0

    @property
    def is_last(self) -> bool:
        return self.current_index == self.total_count - 1

    def to_dict(self) -> dict:
        return {
            "current_index": self.current_index,
            "total_count": self.total_count,
            "is_first": self.is_first,
            "is_last": self.is_last,
        }


@dataclass
class StoreState:
    """In-memory mirror kept by the AnswerStore."""
    is_onboarding_complete: bool = False
    current_step: int = 0
    loading: bool = True
    error: str | None = None
    user_data: UserData = field(default_factory=UserData)
