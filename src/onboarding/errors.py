"""
Onboarding engine exceptions.

Storage backends never raise for I/O problems; they hand back a failed
StorageResult. The AnswerStore turns failed writes into StorageWriteError
so callers see exactly one convention at the engine boundary.

Validation rejection is NOT an exception. validate_answer() returns False.
"""


class OnboardingError(Exception):
    """Base class for all onboarding engine errors."""


class StorageError(OnboardingError):
    """A key-value storage operation failed."""

    def __init__(self, message: str, key: str | None = None):
        super().__init__(message)
        self.key = key
        self.message = message


class StorageWriteError(StorageError):
    """Writing to or deleting from storage failed."""


class FlowDefinitionError(OnboardingError):
    """A declarative flow (YAML / dict) could not be turned into slides."""
