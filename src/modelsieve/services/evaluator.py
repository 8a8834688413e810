"""Filter evaluator: compose clause outcomes into a per-model verdict."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import List, Sequence, Tuple

from modelsieve.models.domain import ClauseResult, EvaluationResult, ModelRecord, RuleClause
from modelsieve.services.comparator import compare


def partition_rules(rules: Sequence[RuleClause]) -> Tuple[List[RuleClause], List[RuleClause]]:
    """Split into (hard, soft), keeping original relative order in each."""
    hard: List[RuleClause] = []
    soft: List[RuleClause] = []
    for clause in rules:
        (hard if clause.kind == "hard" else soft).append(clause)
    return hard, soft


def _rationale(
    hard_total: int,
    failed_hard: int,
    soft_total: int,
    passed_soft: int,
    score: float,
) -> str:
    if hard_total == 0:
        hard_part = "no hard clauses"
    elif failed_hard:
        hard_part = f"failed {failed_hard} of {hard_total} hard clauses"
    else:
        hard_part = f"passed all {hard_total} hard clauses"

    if soft_total == 0:
        soft_part = "no soft clauses"
    else:
        soft_part = f"soft score {score:.2f} ({passed_soft}/{soft_total} soft clauses)"
    return f"{hard_part}; {soft_part}"


def evaluate(rules: Sequence[RuleClause], model: ModelRecord) -> EvaluationResult:
    """
    Evaluate one model against a filter's rules.

    - match is decided by hard clauses only
    - score = sum(weight * passed) / sum(weight) over soft clauses
    - without soft weight, score is 1.0 on match and 0.0 otherwise
    """
    hard, soft = partition_rules(rules)
    diagnostics: List[ClauseResult] = []

    failed_hard = 0
    for clause in hard:
        outcome = compare(clause, model)
        if not outcome.passed:
            failed_hard += 1
        diagnostics.append(
            ClauseResult(clause.field, clause.operator, clause.kind, outcome.passed, outcome.reason)
        )
    matched_all_hard = failed_hard == 0

    passed_soft = 0
    earned = 0.0
    total_weight = 0.0
    for clause in soft:
        outcome = compare(clause, model)
        weight = clause.effective_weight
        total_weight += weight
        if outcome.passed:
            passed_soft += 1
            earned += weight
        diagnostics.append(
            ClauseResult(clause.field, clause.operator, clause.kind, outcome.passed, outcome.reason)
        )

    if total_weight > 0:
        score = min(max(earned / total_weight, 0.0), 1.0)
    else:
        score = 1.0 if matched_all_hard else 0.0

    model_id = str(model.get("id", ""))
    model_name = model.get("name")
    return EvaluationResult(
        model_id=model_id,
        model_name=str(model_name) if model_name is not None else model_id,
        match=matched_all_hard,
        matched_all_hard=matched_all_hard,
        score=score,
        failed_hard_count=failed_hard,
        passed_soft_count=passed_soft,
        total_soft_count=len(soft),
        rationale=_rationale(len(hard), failed_hard, len(soft), passed_soft, score),
        clause_results=tuple(diagnostics),
    )


def evaluate_all(
    rules: Sequence[RuleClause],
    models: Sequence[ModelRecord],
    workers: int = 1,
) -> List[EvaluationResult]:
    """
    Evaluate every model. Output order always equals input order, whether the
    work runs inline or on a thread pool.
    """
    rules = tuple(rules)
    if workers <= 1 or len(models) <= 1:
        return [evaluate(rules, m) for m in models]

    with ThreadPoolExecutor(max_workers=workers) as pool:
        return list(pool.map(lambda m: evaluate(rules, m), models))


def format_evaluation_result(result: EvaluationResult) -> str:
    """One-line human summary of a result."""
    if not result.match:
        return f"rejected ({result.failed_hard_count} hard clause(s) failed)"
    if result.total_soft_count == 0:
        return "passed (hard clauses only)"
    return (
        f"passed with score {result.score * 100:.1f}% "
        f"({result.passed_soft_count}/{result.total_soft_count} soft clauses)"
    )
