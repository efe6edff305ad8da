"""
Onboarding Flow Engine.

Walks a user through a configurable sequence of slides, collects validated
answers, persists them across restarts, and reports completion or skip to
the host application.

Pieces:
1. Flow definitions - Slide / Question / ValidationRule (models.py)
2. Filtering & validation - filter_slides, validate_answer
3. Navigation - NavigationController state machine
4. Persistence - AnswerStore over a KeyValueStorage backend
5. Coordination - OnboardingSession (what a screen / CLI / HTTP app drives)

Flows can be declared in Python or loaded from YAML (loader.py).
"""

__version__ = "0.1.0"

from .errors import FlowDefinitionError, OnboardingError, StorageError, StorageWriteError
from .loader import FlowDefinition, load_flow, parse_flow
from .models import (
    AnswerValue,
    Question,
    QuestionOption,
    QuestionType,
    Slide,
    SlideType,
    ValidationRule,
)
from .navigation import NavigationController
from .selection import ensure_array, safe_filter, safe_includes, toggle_selection
from .session import OnboardingOptions, OnboardingSession, SessionView
from .slides import SlideManager, filter_slides, get_slide_at_index
from .state import FlowStatus, NavigationState, StoreState, UserData
from .storage import InMemoryStorage, JsonFileStorage, KeyValueStorage, StorageResult, SupabaseStorage
from .store import AnswerStore
from .validation import ValidationManager, validate_answer

__all__ = [
    "__version__",
    # Models
    "AnswerValue",
    "Question",
    "QuestionOption",
    "QuestionType",
    "Slide",
    "SlideType",
    "ValidationRule",
    # State
    "FlowStatus",
    "NavigationState",
    "StoreState",
    "UserData",
    # Engine
    "SlideManager",
    "filter_slides",
    "get_slide_at_index",
    "ValidationManager",
    "validate_answer",
    "ensure_array",
    "safe_filter",
    "safe_includes",
    "toggle_selection",
    "NavigationController",
    "AnswerStore",
    "OnboardingOptions",
    "OnboardingSession",
    "SessionView",
    # Storage
    "KeyValueStorage",
    "StorageResult",
    "InMemoryStorage",
    "JsonFileStorage",
    "SupabaseStorage",
    # Flow files
    "FlowDefinition",
    "load_flow",
    "parse_flow",
    # Errors
    "OnboardingError",
    "StorageError",
    "StorageWriteError",
    "FlowDefinitionError",
]
