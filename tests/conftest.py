"""
Pytest configuration and fixtures for onboarding engine tests.
"""

import os
from unittest.mock import MagicMock

import pytest

# Set test environment before importing onboarding modules
os.environ["ONBOARDING_ENV"] = "development"
os.environ["ONBOARDING_STORAGE_BACKEND"] = "memory"

from onboarding.config import get_settings
from onboarding.models import Question, QuestionOption, QuestionType, Slide, SlideType, ValidationRule
from onboarding.storage import InMemoryStorage, StorageResult


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Settings are cached; clear between tests so env patches take effect."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class FailingStorage(InMemoryStorage):
    """Reads work, every write/delete reports failure."""

    def __init__(self, initial=None, fail_reads: bool = False):
        super().__init__(initial)
        self.fail_reads = fail_reads
        self.write_attempts: list[str] = []

    async def get_string(self, key, default):
        if self.fail_reads:
            return StorageResult.fail("disk unavailable")
        return await super().get_string(key, default)

    async def get_item(self, key, default):
        if self.fail_reads:
            return StorageResult.fail("disk unavailable")
        return await super().get_item(key, default)

    async def set_string(self, key, value):
        self.write_attempts.append(key)
        return StorageResult.fail("disk full")

    async def set_item(self, key, value):
        self.write_attempts.append(key)
        return StorageResult.fail("disk full")

    async def remove_item(self, key):
        self.write_attempts.append(key)
        return StorageResult.fail("disk full")


@pytest.fixture
def storage():
    """Empty in-memory storage."""
    return InMemoryStorage()


@pytest.fixture
def failing_storage():
    """Storage whose writes always fail."""
    return FailingStorage()


@pytest.fixture
def mock_supabase():
    """Mock Supabase client for unit tests."""
    mock_client = MagicMock()

    # Mock table operations
    mock_table = MagicMock()
    mock_table.select.return_value = mock_table
    mock_table.upsert.return_value = mock_table
    mock_table.delete.return_value = mock_table
    mock_table.eq.return_value = mock_table
    mock_table.limit.return_value = mock_table
    mock_table.execute.return_value = MagicMock(data=[])

    mock_client.table.return_value = mock_table

    return mock_client


@pytest.fixture
def pet_slides():
    """
    Welcome, a required yes/no question, a conditional follow-up,
    and a closing slide.
    """
    return [
        Slide(id="welcome", type=SlideType.WELCOME, title="Welcome"),
        Slide(
            id="pets",
            type=SlideType.QUESTION,
            title="Pets",
            question=Question(
                id="has_pets",
                type=QuestionType.SINGLE_CHOICE,
                question="Do you have pets?",
                options=[
                    QuestionOption(id="yes", label="Yes"),
                    QuestionOption(id="no", label="No"),
                ],
                validation=ValidationRule(required=True),
            ),
        ),
        Slide(
            id="pet_names",
            type=SlideType.QUESTION,
            title="Pet names",
            skip_if=lambda answers: answers.get("has_pets") == "no",
            question=Question(
                id="pet_names",
                type=QuestionType.TEXT_INPUT,
                validation=ValidationRule(min_length=2),
            ),
        ),
        Slide(id="done", type=SlideType.COMPLETION, title="All set"),
    ]


@pytest.fixture
def goals_question():
    """Multiple choice with 1-2 selections."""
    return Question(
        id="goals",
        type=QuestionType.MULTIPLE_CHOICE,
        options=[
            QuestionOption(id="a", label="A"),
            QuestionOption(id="b", label="B"),
            QuestionOption(id="c", label="C"),
        ],
        validation=ValidationRule(min_selections=1, max_selections=2),
    )


@pytest.fixture
def flow_yaml(tmp_path):
    """Flow file on disk matching pet_slides."""
    path = tmp_path / "flow.yaml"
    path.write_text(
        """
options:
  next_button_text: Continue
slides:
  - id: welcome
    type: welcome
    title: Welcome
  - id: pets
    type: question
    title: Pets
    question:
      id: has_pets
      type: single_choice
      question: Do you have pets?
      options:
        - {id: "yes", label: "Yes"}
        - {id: "no", label: "No"}
      validation: {required: true}
  - id: pet_names
    type: question
    title: Pet names
    skip_if: {question: has_pets, equals: "no"}
    question:
      id: pet_names
      type: text_input
      validation: {min_length: 2}
  - id: done
    type: completion
    title: All set
""",
        encoding="utf-8",
    )
    return path


@pytest.fixture
def unreadable_storage():
    """Storage whose reads and writes always fail."""
    return FailingStorage(fail_reads=True)
