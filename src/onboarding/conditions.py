"""
Declarative skip conditions.

Flows written in YAML/JSON cannot carry Python callables, so skip_if is
expressed as a small condition tree and compiled into a predicate:

    skip_if:
      question: has_pets
      equals: "no"

    skip_if:
      any:
        - {question: goal, in: [relax, sleep]}
        - {question: age, lt: 18}

Leaf operators: equals, not_equals, in, not_in, contains, answered,
not_answered, gt, gte, lt, lte. Combinators: all, any, not.

Compiled predicates are pure functions of the answers mapping.
"""

import operator
from collections.abc import Callable, Mapping
from numbers import Real
from typing import Any

from .errors import FlowDefinitionError
from .selection import ensure_array
from .validation import is_empty_answer

Predicate = Callable[[Mapping[str, Any]], bool]

_COMPARISONS = {
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
}

LEAF_OPERATORS = {
    "equals", "not_equals", "in", "not_in", "contains",
    "answered", "not_answered", *_COMPARISONS,
}
COMBINATORS = {"all", "any", "not"}


def compile_condition(spec: Any) -> Predicate:
    """
    Compile a condition tree into a predicate over answers.

    Raises:
        FlowDefinitionError: The tree is malformed.
    """
    if not isinstance(spec, Mapping) or not spec:
        raise FlowDefinitionError(f"Condition must be a non-empty mapping, got {spec!r}")

    combinators = COMBINATORS & spec.keys()
    if combinators:
        if len(spec) != 1:
            raise FlowDefinitionError(f"Combinator must be the only key in a condition: {dict(spec)!r}")
        return _compile_combinator(next(iter(combinators)), spec)

    return _compile_leaf(spec)


def _compile_combinator(name: str, spec: Mapping[str, Any]) -> Predicate:
    body = spec[name]

    if name == "not":
        inner = compile_condition(body)
        return lambda answers: not inner(answers)

    if not isinstance(body, list) or not body:
        raise FlowDefinitionError(f"'{name}' expects a non-empty list of conditions")
    children = [compile_condition(child) for child in body]

    if name == "all":
        return lambda answers: all(child(answers) for child in children)
    return lambda answers: any(child(answers) for child in children)


def _compile_leaf(spec: Mapping[str, Any]) -> Predicate:
    key = spec.get("question")
    if not isinstance(key, str) or not key:
        raise FlowDefinitionError(f"Condition needs a 'question' key naming an answer: {dict(spec)!r}")

    ops = [k for k in spec if k != "question"]
    if len(ops) != 1 or ops[0] not in LEAF_OPERATORS:
        raise FlowDefinitionError(
            f"Condition on '{key}' needs exactly one operator from {sorted(LEAF_OPERATORS)}, got {ops}"
        )
    op = ops[0]
    operand = spec[op]

    if op == "answered":
        return lambda answers: not is_empty_answer(answers.get(key))
    if op == "not_answered":
        return lambda answers: is_empty_answer(answers.get(key))
    if op == "equals":
        return lambda answers: answers.get(key) == operand
    if op == "not_equals":
        return lambda answers: answers.get(key) != operand
    if op in ("in", "not_in"):
        if not isinstance(operand, list):
            raise FlowDefinitionError(f"'{op}' on '{key}' expects a list")
        if op == "in":
            return lambda answers: answers.get(key) in operand
        return lambda answers: answers.get(key) not in operand
    if op == "contains":
        return lambda answers: operand in ensure_array(answers.get(key))

    compare = _COMPARISONS[op]
    if isinstance(operand, bool) or not isinstance(operand, Real):
        raise FlowDefinitionError(f"'{op}' on '{key}' expects a number")

    def _numeric(answers: Mapping[str, Any]) -> bool:
        value = answers.get(key)
        if isinstance(value, bool) or not isinstance(value, Real):
            return False
        return compare(value, operand)

    return _numeric
