"""
Answer Validation.

Pure checks of a candidate answer against a question's ValidationRule.
No I/O, no side effects. A rejected answer is a normal outcome: the caller
keeps "next" disabled, nothing is raised.
"""

import logging
from numbers import Real
from typing import Any

from .models import Question, QuestionType, ValidationRule

logger = logging.getLogger(__name__)


def is_empty_answer(answer: Any) -> bool:
    """
    None, empty string and empty list count as "no answer".

    Used by `answered` conditions. The `required` rule is stricter: any falsy
    answer (including 0 and False) fails it.
    """
    if answer is None:
        return True
    if isinstance(answer, str) and answer == "":
        return True
    if isinstance(answer, (list, tuple)) and len(answer) == 0:
        return True
    return False


def validate_answer(question: Question, answer: Any) -> bool:
    """
    Validate an answer against the question's rules.

    Returns:
        True if the answer is acceptable, False otherwise.
    """
    rule = question.validation
    if rule is None:
        return True

    if rule.required and not answer:
        return False

    # Type rules apply to unanswered questions too: an optional text_input
    # with min_length still needs a string.
    if question.type == QuestionType.MULTIPLE_CHOICE:
        if not _validate_multiple_choice(answer, rule):
            return False
    elif question.type == QuestionType.TEXT_INPUT:
        if not _validate_text_input(answer, rule):
            return False
    elif question.type == QuestionType.RATING:
        if not _validate_numeric(answer, rule):
            return False

    if rule.custom_validator is not None:
        return _run_custom_validator(question, answer, rule)

    return True


def _validate_multiple_choice(answer: Any, rule: ValidationRule) -> bool:
    if rule.min_selections is not None:
        if not isinstance(answer, list) or len(answer) < rule.min_selections:
            return False

    if rule.max_selections is not None:
        if isinstance(answer, list) and len(answer) > rule.max_selections:
            return False

    return True


def _validate_text_input(answer: Any, rule: ValidationRule) -> bool:
    if not isinstance(answer, str):
        return False

    if rule.min_length is not None and len(answer) < rule.min_length:
        return False

    if rule.max_length is not None and len(answer) > rule.max_length:
        return False

    return True


def _validate_numeric(answer: Any, rule: ValidationRule) -> bool:
    # bool is an int subclass; a checkbox value is not a rating
    if isinstance(answer, bool) or not isinstance(answer, Real):
        return False

    if rule.min is not None and answer < rule.min:
        return False

    if rule.max is not None and answer > rule.max:
        return False

    return True


def _run_custom_validator(question: Question, answer: Any, rule: ValidationRule) -> bool:
    try:
        result = rule.custom_validator(answer)
    except Exception as e:
        logger.warning(f"Custom validator for question '{question.id}' raised: {e}")
        return False
    # Only a literal True passes. Strings are not treated as messages.
    return result is True


class ValidationManager:
    """Namespace kept for hosts that call ValidationManager.validate_answer()."""

    validate_answer = staticmethod(validate_answer)
    is_empty_answer = staticmethod(is_empty_answer)
