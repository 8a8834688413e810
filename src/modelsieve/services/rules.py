"""Rule clause parsing and validation (wire dicts -> RuleClause)."""

from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Optional, Tuple

from modelsieve.errors import ValidationError
from modelsieve.models.domain import CLAUSE_KINDS, OPERATORS, RuleClause
from modelsieve.services.comparator import is_number


def parse_clause(raw: Any, index: int = 0) -> Tuple[Optional[RuleClause], Optional[ValidationError]]:
    prefix = f"rules[{index}]"
    if not isinstance(raw, Mapping):
        return None, ValidationError(prefix, "rule clause must be an object")

    field = raw.get("field")
    if not isinstance(field, str) or not field.strip():
        return None, ValidationError(f"{prefix}.field", "field must be a non-empty string")

    operator = raw.get("operator")
    if operator not in OPERATORS:
        return None, ValidationError(
            f"{prefix}.operator",
            f"unknown operator {operator!r}",
            {"allowed": list(OPERATORS)},
        )

    kind = raw.get("type", raw.get("kind"))
    if kind not in CLAUSE_KINDS:
        return None, ValidationError(f"{prefix}.type", f"type must be one of {list(CLAUSE_KINDS)}")

    if "value" not in raw:
        return None, ValidationError(f"{prefix}.value", "value is required")
    value = raw["value"]
    if operator == "in" and not isinstance(value, (list, tuple)):
        return None, ValidationError(f"{prefix}.value", "'in' requires an array value")
    if isinstance(value, tuple):
        value = list(value)

    weight = raw.get("weight")
    if kind == "hard":
        if weight is not None:
            return None, ValidationError(f"{prefix}.weight", "hard clauses cannot carry a weight")
    elif weight is not None:
        if not is_number(weight):
            return None, ValidationError(f"{prefix}.weight", "weight must be a number")
        if not 0.0 <= float(weight) <= 1.0:
            return None, ValidationError(f"{prefix}.weight", "weight must be within [0, 1]")
        weight = float(weight)

    return RuleClause(field=field, operator=operator, value=value, kind=kind, weight=weight), None


def parse_rules(raw_rules: Any) -> Tuple[List[RuleClause], Optional[ValidationError]]:
    """
    Validate a list of wire clauses.

    Returns (clauses, None) or ([], error) for the first offending clause.
    """
    if not isinstance(raw_rules, (list, tuple)):
        return [], ValidationError("rules", "rules must be an array")

    clauses: List[RuleClause] = []
    for i, raw in enumerate(raw_rules):
        clause, err = parse_clause(raw, i)
        if err is not None:
            return [], err
        clauses.append(clause)
    return clauses, None


def rules_to_wire(clauses: Iterable[RuleClause]) -> List[dict]:
    return [c.to_wire() for c in clauses]
