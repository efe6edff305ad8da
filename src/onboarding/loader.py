"""
Flow loader.

Builds slides and session options from a YAML file or an already-parsed
mapping. Example:

    options:
      storage_key: "@onboarding:completed"
      show_skip_button: true
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
          options:
            - {id: "yes", label: "Yes"}
            - {id: "no", label: "No"}
          validation: {required: true}
      - id: pet_names
        type: question
        skip_if: {question: has_pets, equals: "no"}
        question:
          id: pet_names
          type: text_input
          validation: {min_length: 2}
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .conditions import compile_condition
from .errors import FlowDefinitionError
from .models import Slide
from .session import OnboardingOptions

logger = logging.getLogger(__name__)

# Options that cannot come from a static file
_CALLBACK_OPTIONS = {"on_complete", "on_skip"}


@dataclass
class FlowDefinition:
    """Slides plus the options a flow file declared."""
    slides: list[Slide] = field(default_factory=list)
    options: dict[str, Any] = field(default_factory=dict)

    def build_options(self, **overrides: Any) -> OnboardingOptions:
        """OnboardingOptions from the file, with host overrides (e.g. callbacks) applied."""
        return OnboardingOptions(**{**self.options, **overrides})


def _compile_skip(entry: dict, where: str) -> dict:
    skip = entry.get("skip_if")
    if skip is None or callable(skip):
        return entry
    try:
        return {**entry, "skip_if": compile_condition(skip)}
    except FlowDefinitionError as e:
        raise FlowDefinitionError(f"{where}: {e}") from e


def _prepare_slide(raw: Any, position: int) -> dict:
    if not isinstance(raw, Mapping):
        raise FlowDefinitionError(f"Slide #{position} must be a mapping, got {type(raw).__name__}")
    entry = dict(raw)
    where = f"slide '{entry.get('id', position)}'"
    entry = _compile_skip(entry, where)

    question = entry.get("question")
    if isinstance(question, Mapping):
        entry["question"] = _compile_skip(dict(question), f"{where} question")
    return entry


def parse_flow(data: Any) -> FlowDefinition:
    """
    Turn a parsed flow document into slides and options.

    Raises:
        FlowDefinitionError: Structure or field values are invalid.
    """
    if not isinstance(data, Mapping):
        raise FlowDefinitionError("Flow document must be a mapping with a 'slides' list")

    raw_slides = data.get("slides")
    if not isinstance(raw_slides, list):
        raise FlowDefinitionError("Flow document needs a 'slides' list")

    slides: list[Slide] = []
    seen: set[str] = set()
    for position, raw in enumerate(raw_slides):
        entry = _prepare_slide(raw, position)
        try:
            slide = Slide(**entry)
        except ValidationError as e:
            raise FlowDefinitionError(f"Slide #{position} is invalid: {e}") from e
        if slide.id in seen:
            raise FlowDefinitionError(f"Duplicate slide id '{slide.id}'")
        seen.add(slide.id)
        slides.append(slide)

    options = dict(data.get("options") or {})
    ignored = _CALLBACK_OPTIONS & options.keys()
    if ignored:
        logger.warning(f"Ignoring callback options in flow file: {sorted(ignored)}")
        for key in ignored:
            options.pop(key)
    try:
        OnboardingOptions(**options)
    except ValidationError as e:
        raise FlowDefinitionError(f"Invalid flow options: {e}") from e

    return FlowDefinition(slides=slides, options=options)


def load_flow(source: Path | str | Mapping[str, Any]) -> FlowDefinition:
    """Load a flow from a YAML/JSON file path or a parsed mapping."""
    if isinstance(source, Mapping):
        return parse_flow(source)

    path = Path(source)
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise FlowDefinitionError(f"Cannot read flow file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise FlowDefinitionError(f"Flow file {path} is not valid YAML: {e}") from e

    return parse_flow(data)
