"""Clause comparator: one rule clause vs one model attribute."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Mapping

from modelsieve.models.domain import ModelRecord, RuleClause

_MISSING = object()


@dataclass(frozen=True)
class ClauseOutcome:
    passed: bool
    reason: str


def get_field_value(model: ModelRecord, path: str) -> Any:
    """
    Resolve a dot-separated path ("pricing.input") against a model record.
    Returns the module-level ``_MISSING`` sentinel when any segment is absent.
    """
    value: Any = model
    for part in path.split("."):
        if isinstance(value, Mapping) and part in value:
            value = value[part]
        else:
            return _MISSING
    return value


def is_number(value: Any) -> bool:
    # bool is an int subclass; never treat it as a number here
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return not (isinstance(value, float) and math.isnan(value))
    return False


def values_equal(left: Any, right: Any) -> bool:
    """Deep, type-aware equality."""
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left is right
    if is_number(left) and is_number(right):
        # exact for ints beyond 2**53
        return left == right
    if is_number(left) or is_number(right):
        return False
    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        return len(left) == len(right) and all(
            values_equal(a, b) for a, b in zip(left, right)
        )
    if isinstance(left, Mapping) and isinstance(right, Mapping):
        if set(left.keys()) != set(right.keys()):
            return False
        return all(values_equal(left[k], right[k]) for k in left)
    if type(left) is not type(right):
        return False
    return left == right


def _is_array(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    if _is_array(value):
        return "array"
    if isinstance(value, Mapping):
        return "object"
    return type(value).__name__


def _numeric(op: str, actual: Any, expected: Any) -> bool:
    if op == "gt":
        return actual > expected
    if op == "gte":
        return actual >= expected
    if op == "lt":
        return actual < expected
    return actual <= expected


def compare(clause: RuleClause, model: ModelRecord) -> ClauseOutcome:
    """
    Decide pass/fail for one clause against one model.

    Never raises: a missing field or an operator/type mismatch is a failed
    comparison with a reason attached.
    """
    actual = get_field_value(model, clause.field)
    desc = clause.describe()

    if actual is _MISSING:
        return ClauseOutcome(False, f"field '{clause.field}' is missing on model")

    op = clause.operator
    expected = clause.value

    if op in ("eq", "ne"):
        equal = values_equal(actual, expected)
        passed = equal if op == "eq" else not equal
        return ClauseOutcome(
            passed,
            f"{desc}: {'passed' if passed else 'failed'} (actual {_type_name(actual)} {actual!r})",
        )

    if op in ("gt", "gte", "lt", "lte"):
        if not is_number(actual) or not is_number(expected):
            return ClauseOutcome(
                False,
                f"{desc}: type mismatch, cannot compare {_type_name(actual)} with {_type_name(expected)}",
            )
        passed = _numeric(op, actual, expected)
        return ClauseOutcome(passed, f"{desc}: {'passed' if passed else 'failed'} (actual {actual!r})")

    if op == "in":
        if not _is_array(expected):
            return ClauseOutcome(False, f"{desc}: type mismatch, 'in' needs an array value")
        passed = any(values_equal(actual, item) for item in expected)
        return ClauseOutcome(passed, f"{desc}: {'passed' if passed else 'failed'} (actual {actual!r})")

    if op == "contains":
        if not _is_array(actual):
            return ClauseOutcome(
                False,
                f"{desc}: type mismatch, model field is {_type_name(actual)}, not an array",
            )
        passed = any(values_equal(item, expected) for item in actual)
        return ClauseOutcome(passed, f"{desc}: {'passed' if passed else 'failed'}")

    return ClauseOutcome(False, f"{desc}: unsupported operator '{op}'")
