from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from modelsieve.config.settings import settings
from modelsieve.db.engine import build_engine
from modelsieve.db.init_db import ensure_db, init_db
from modelsieve.logging_config import configure_logging
from modelsieve.models.domain import VISIBILITIES, Caller
from modelsieve.repos.filters_repo import SavedFiltersRepo
from modelsieve.services.artifacts import LocalArtifactStore
from modelsieve.services.cache import TTLCache
from modelsieve.services.catalog import (
    HttpModelCatalog,
    ModelCatalog,
    StaticModelCatalog,
    extract_models,
)
from modelsieve.services.evaluator import format_evaluation_result
from modelsieve.services.filter_evaluation import EvaluateRequest, FilterEvaluationService
from modelsieve.services.rules import parse_rules, rules_to_wire
from modelsieve.services.run_recorder import RunRecorder

app = typer.Typer(help="modelsieve CLI (init DB, saved filters, evaluation, run history).")
console = Console()


def _fail(message: str) -> None:
    console.print(f"[red]✗[/red] Error: {message}")
    raise typer.Exit(1)


def _load_json(path: Path):
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        _fail(f"cannot read {path}: {e}")


@app.callback()
def _setup() -> None:
    configure_logging(settings.log_level, settings.log_json)


@app.command("init-db")
def init_db_cmd() -> None:
    """Drop and recreate all tables."""
    engine = build_engine()
    init_db(engine)
    typer.echo("✅ Database initialized and reachable.")


@app.command("add-filter")
def add_filter_cmd(
    file: Path = typer.Option(..., "--file", help="JSON file with a list of rule clauses."),
    name: str = typer.Option(..., help="Filter name."),
    owner: str = typer.Option(..., help="Owner user id."),
    description: Optional[str] = typer.Option(None, help="Description."),
    visibility: str = typer.Option("private", help="private | team | public"),
    team: Optional[str] = typer.Option(None, help="Team id (for team visibility)."),
) -> None:
    """Store a saved filter from a rules file."""
    if visibility not in VISIBILITIES:
        _fail(f"visibility must be one of {list(VISIBILITIES)}")

    clauses, err = parse_rules(_load_json(file))
    if err is not None:
        _fail(f"{err.details.get('field')}: {err.message}")

    engine = build_engine()
    ensure_db(engine)
    row = SavedFiltersRepo(engine).create(
        owner_id=owner,
        name=name,
        rules=rules_to_wire(clauses),
        description=description,
        visibility=visibility,
        team_id=team,
    )
    console.print(f"[green]✓[/green] Created filter id={row.id} ({len(clauses)} clauses)")


@app.command("evaluate")
def evaluate_cmd(
    filter_id: str = typer.Option(..., "--filter-id", help="Saved filter id."),
    user: str = typer.Option(..., "--user", help="Caller user id."),
    team: Optional[str] = typer.Option(None, "--team", help="Caller team id."),
    models_file: Optional[Path] = typer.Option(
        None, "--models-file", help="JSON model list; defaults to the HTTP catalog."
    ),
    limit: Optional[int] = typer.Option(None, help="Max models to evaluate."),
    model_id: Optional[List[str]] = typer.Option(None, "--model-id", help="Restrict to model id (repeatable)."),
) -> None:
    """Evaluate a saved filter and record the run."""
    engine = build_engine()
    ensure_db(engine)

    catalog: ModelCatalog
    if models_file is not None:
        catalog = StaticModelCatalog(tuple(extract_models(_load_json(models_file))))
    else:
        catalog = HttpModelCatalog(cache=TTLCache(default_ttl_s=settings.catalog_cache_ttl_s))

    store = LocalArtifactStore(Path(settings.artifact_dir)) if settings.artifact_dir else None
    service = FilterEvaluationService(engine, catalog, recorder=RunRecorder(artifact_store=store))
    outcome = service.evaluate_filter(
        filter_id,
        Caller(user_id=user, team_id=team),
        EvaluateRequest(model_ids=model_id or None, limit=limit),
    )
    if not outcome.ok:
        _fail(f"[{outcome.error.code}] {outcome.error.message}")

    data = outcome.value
    console.print(
        f"[bold blue]{data.filter_name}[/bold blue] run_id={data.run_id} "
        f"matched {data.match_count}/{data.total_evaluated} in {data.duration_ms} ms"
    )

    table = Table(title="Evaluation results")
    table.add_column("Model", style="cyan")
    table.add_column("Match", style="magenta")
    table.add_column("Score", style="green", justify="right")
    table.add_column("Summary", style="yellow")
    for r in data.results:
        table.add_row(r.model_id, "yes" if r.match else "no", f"{r.score:.2f}", format_evaluation_result(r))
    console.print(table)


@app.command("runs")
def runs_cmd(
    filter_id: str = typer.Option(..., "--filter-id", help="Saved filter id."),
    user: str = typer.Option(..., "--user", help="Caller user id."),
    team: Optional[str] = typer.Option(None, "--team", help="Caller team id."),
    page: int = typer.Option(1, help="Page number."),
    page_size: int = typer.Option(20, "--page-size", help="Runs per page (max 100)."),
) -> None:
    """List recorded runs for a filter, newest first."""
    engine = build_engine()
    ensure_db(engine)
    service = FilterEvaluationService(engine, StaticModelCatalog())
    outcome = service.list_runs(filter_id, Caller(user_id=user, team_id=team), page, page_size)
    if not outcome.ok:
        _fail(f"[{outcome.error.code}] {outcome.error.message}")

    run_page = outcome.value
    table = Table(title=f"Runs for filter {filter_id} ({run_page.total} total)")
    table.add_column("run_id", style="cyan")
    table.add_column("executed_at", style="green")
    table.add_column("by", style="green")
    table.add_column("version", style="magenta", justify="right")
    table.add_column("matches", style="yellow", justify="right")
    for r in run_page.runs:
        table.add_row(
            r.id,
            r.executed_at.isoformat() if r.executed_at else "",
            r.executed_by,
            str(r.filter_snapshot.get("version", "")),
            f"{r.match_count}/{r.total_evaluated}",
        )
    console.print(table)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
