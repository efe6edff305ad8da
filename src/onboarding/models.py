"""
Onboarding Flow Definitions.

Host-supplied, render-agnostic descriptions of the interview:
slides, the questions they carry, and the rules answers must satisfy.

These are immutable once handed to the engine. Skip predicates and custom
validators are plain callables over an answer snapshot; they must not do
I/O or mutate shared state.
"""

from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

# A single answer as held in UserData.answers
AnswerValue = Union[str, list[str], int, float, None]

# answers snapshot -> True to omit the slide/question
SkipPredicate = Callable[[Mapping[str, Any]], bool]

# answer -> True when valid. Any other return (including a string) is invalid.
CustomValidator = Callable[[Any], Union[bool, str]]


class SlideType(str, Enum):
    """Kinds of onboarding slides."""
    INFO = "info"
    QUESTION = "question"
    WELCOME = "welcome"
    COMPLETION = "completion"


class QuestionType(str, Enum):
    """Input methods a question can use."""
    SINGLE_CHOICE = "single_choice"      # Radio buttons
    MULTIPLE_CHOICE = "multiple_choice"  # Checkboxes
    TEXT_INPUT = "text_input"
    RATING = "rating"
    DATE = "date"
    IMAGE_PICKER = "image_picker"


class QuestionOption(BaseModel):
    """Option for single/multiple choice questions."""

    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    icon: str | None = None
    image: str | None = None
    value: str | None = None  # Only when different from label
    icon_type: Literal["emoji", "icon"] = "icon"


class ValidationRule(BaseModel):
    """
    Validation rules for a question.

    Which fields apply depends on the question type:
    - min / max: rating
    - min_length / max_length: text_input
    - min_selections / max_selections: multiple_choice
    - required / custom_validator: any type
    """

    model_config = ConfigDict(frozen=True)

    required: bool = False
    min: float | None = None
    max: float | None = None
    min_length: int | None = Field(default=None, ge=0)
    max_length: int | None = Field(default=None, ge=0)
    min_selections: int | None = Field(default=None, ge=0)
    max_selections: int | None = Field(default=None, ge=0)
    custom_validator: CustomValidator | None = None


class Question(BaseModel):
    """
    A personalization question shown on a slide.

    Answers are stored under `storage_key`, which falls back to `id`
    when the host does not set one.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    type: QuestionType
    question: str = ""
    subtitle: str | None = None
    placeholder: str | None = None
    options: list[QuestionOption] = Field(default_factory=list)
    validation: ValidationRule | None = None
    default_value: AnswerValue = None
    storage_key: str
    icon: str | None = None
    skip_if: SkipPredicate | None = None

    @model_validator(mode="before")
    @classmethod
    def default_storage_key(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("storage_key") and data.get("id"):
            data = {**data, "storage_key": data["id"]}
        return data

    def option_ids(self) -> list[str]:
        return [o.id for o in self.options]


class Slide(BaseModel):
    """One step of the onboarding interview."""

    model_config = ConfigDict(frozen=True)

    id: str
    type: SlideType = SlideType.INFO
    title: str = ""
    description: str = ""
    icon: str | None = None
    question: Question | None = None
    skip_if: SkipPredicate | None = None

    @property
    def has_question(self) -> bool:
        return self.question is not None

    def to_public_dict(self) -> dict:
        """JSON-safe dict for the presentation layer (callables dropped)."""
        return self.model_dump(mode="json", exclude=_CALLABLE_FIELDS)


_CALLABLE_FIELDS = {
    "skip_if": True,
    "question": {
        "skip_if": True,
        "validation": {"custom_validator": True},
    },
}
