# src/contrib_recon/tasks/cli.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""contrib-recon CLI: operational commands.

Commands:
    reconcile run      Reconcile the last N closed periods and print a JSON summary.
    divergences list   List persisted divergences as JSON.

Exit codes (``reconcile run``):
    0   every entity reconciled
    2   partial success (at least one entity failed)
    1   fatal error (invalid configuration, divergence store unavailable)

Environment:
    RECON_DATABASE_URL          Async SQLAlchemy URL.
    RECON_ENTITIES              Comma-separated default entity references.
    RECON_INTERNAL_BASE_URL     Internal system API base URL.
    RECON_PORTAL_BASE_URL       External portal API base URL.
    (see ``contrib_recon.config.settings.Settings`` for the full list)
"""

from __future__ import annotations

import asyncio
import json
import time
from contextlib import suppress
from pathlib import Path
from typing import Any
from uuid import uuid4

import prometheus_client as prom
import typer

from contrib_recon.application.schemas.dto.reconciliation import (
    ReconciliationReport,
    divergence_to_dict,
)
from contrib_recon.config.settings import Settings, get_settings
from contrib_recon.dependencies.bootstrap import open_runtime
from contrib_recon.domain.entities.divergence import Divergence
from contrib_recon.domain.enums.reconciliation import DivergenceStatus
from contrib_recon.domain.exceptions.base import DomainError
from contrib_recon.infrastructure.logging.logger import (
    configure_root_logging,
    get_json_logger,
    set_run_context,
)
from contrib_recon.infrastructure.observability.metrics import (
    get_run_duration_seconds,
    get_runs_total,
)

configure_root_logging()
log = get_json_logger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_PARTIAL = 2

app = typer.Typer(add_completion=False, no_args_is_help=True)
reconcile_app = typer.Typer(no_args_is_help=True)
divergences_app = typer.Typer(no_args_is_help=True)
app.add_typer(reconcile_app, name="reconcile")
app.add_typer(divergences_app, name="divergences")


def _load_settings() -> Settings:
    """Return settings (applying the configured log level) or exit on invalid configuration."""
    try:
        settings = get_settings()
    except RuntimeError as exc:
        typer.echo(json.dumps({"error": {"code": "INVALID_CONFIG", "message": str(exc)}}))
        raise typer.Exit(code=EXIT_FATAL) from exc
    configure_root_logging(settings.log_level)
    return settings


def _emit(payload: Any) -> None:
    typer.echo(json.dumps(payload, ensure_ascii=False, sort_keys=True))


def _record_run(outcome: str, started: float, textfile: Path | None) -> None:
    with suppress(Exception):
        get_runs_total().labels(outcome=outcome).inc()
        get_run_duration_seconds().observe(time.perf_counter() - started)
    if textfile is not None:
        prom.write_to_textfile(str(textfile), prom.REGISTRY)


@reconcile_app.command("run")
def reconcile_run(
    periods: int | None = typer.Option(  # noqa: B008
        None, "--periods", min=0, help="Closed periods to reconcile (default: RECON_PERIOD_COUNT)."
    ),
    tolerance: int | None = typer.Option(  # noqa: B008
        None, "--tolerance", min=0, help="Absolute tolerance in minor units (cents)."
    ),
    entity: list[str] | None = typer.Option(  # noqa: B008
        None, "--entity", "-e", help="Entity reference; repeatable (default: RECON_ENTITIES)."
    ),
    metrics_textfile: Path | None = typer.Option(  # noqa: B008
        None, "--metrics-textfile", help="Write Prometheus metrics to this file on exit."
    ),
) -> None:
    """Run one reconciliation and print its JSON summary."""
    settings = _load_settings()
    run_id = str(uuid4())
    set_run_context(run_id=run_id)
    started = time.perf_counter()

    async def _run() -> ReconciliationReport:
        async with open_runtime(settings) as runtime:
            return await runtime.reconcile.reconcile(
                periods,
                tolerance,
                entities=entity or None,
                run_id=run_id,
            )

    try:
        report = asyncio.run(_run())
    except DomainError as exc:
        log.error("reconcile.fatal", extra={"code": exc.code, "reason": str(exc)})
        _record_run("fatal", started, metrics_textfile)
        _emit({"run_id": run_id, "error": {"code": exc.code, "message": str(exc)}})
        raise typer.Exit(code=EXIT_FATAL) from exc
    except ValueError as exc:
        _record_run("fatal", started, metrics_textfile)
        _emit({"run_id": run_id, "error": {"code": "INVALID_ARGUMENT", "message": str(exc)}})
        raise typer.Exit(code=EXIT_FATAL) from exc

    outcome = "partial" if report.is_partial else "success"
    _record_run(outcome, started, metrics_textfile)
    _emit(report.summary())
    raise typer.Exit(code=EXIT_PARTIAL if report.is_partial else EXIT_OK)


@divergences_app.command("list")
def divergences_list(
    status: DivergenceStatus | None = typer.Option(  # noqa: B008
        None, "--status", case_sensitive=False, help="Filter by status."
    ),
    entity: str | None = typer.Option(None, "--entity", help="Filter by entity."),  # noqa: B008
    limit: int = typer.Option(100, "--limit", min=1, max=5000),  # noqa: B008
) -> None:
    """Print persisted divergences as JSON, ordered by entity, period and rate."""
    settings = _load_settings()

    async def _run() -> tuple[Divergence, ...]:
        async with open_runtime(settings) as runtime:
            return await runtime.list_divergences.execute(
                status=status, entity_ref=entity, limit=limit
            )

    try:
        items = asyncio.run(_run())
    except DomainError as exc:
        log.error("divergences.list_failed", extra={"code": exc.code, "reason": str(exc)})
        _emit({"error": {"code": exc.code, "message": str(exc)}})
        raise typer.Exit(code=EXIT_FATAL) from exc

    _emit({"count": len(items), "items": [divergence_to_dict(d) for d in items]})


if __name__ == "__main__":
    app()
