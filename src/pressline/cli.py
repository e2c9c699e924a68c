"""CLI interface for pressline: the scheduler and operator entry points."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from pressline.audit import AuditLog
from pressline.config import PresslineConfig, load_config
from pressline.drafts.models import Phase
from pressline.drafts.store import DraftQuery, DraftStore
from pressline.selector import run_content_selector
from pressline.sweeper import diagnose, run_sweeper, summarize_recovery_history

app = typer.Typer(
    name="pressline",
    help="Promote reservoir drafts and recover failed ones.",
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        from pressline import __version__

        console.print(f"pressline {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Enable debug logging."),
    ] = False,
) -> None:
    """pressline - content promotion and recovery."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to a .pressline.toml file."),
]


def _open(config_path: Optional[Path]) -> tuple[PresslineConfig, DraftStore, AuditLog]:
    config = load_config(config_path)
    return config, DraftStore(config.store_dir), AuditLog(config.store_dir)


@app.command(name="select")
def select_cmd(
    config_path: ConfigOption = None,
    budget: Annotated[
        Optional[float],
        typer.Option("--budget", "-b", help="Wall-clock budget in seconds."),
    ] = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print the raw result.")] = False,
) -> None:
    """Promote the best reservoir drafts to published posts."""
    config, store, audit = _open(config_path)
    result = run_content_selector(store, config, audit=audit, timeout_budget=budget)

    if as_json:
        console.print(result.model_dump_json(indent=2))
    else:
        colour = "green" if result.success else "red"
        console.print(f"[{colour}]{result.message}[/{colour}]")
        if result.promoted:
            table = Table(title="Promoted")
            for column in ("Draft", "Keyword", "Score", "Slug", "Languages"):
                table.add_column(column)
            for item in result.promoted:
                table.add_row(
                    item.draft_id[:8],
                    item.keyword,
                    f"{item.score:g}" if item.score is not None else "-",
                    item.slug,
                    ", ".join(str(loc) for loc in item.locales),
                )
            console.print(table)
        for skip in result.skipped:
            detail = f" ({skip.detail})" if skip.detail else ""
            console.print(f"  [yellow]skipped[/yellow] {skip.keyword}: {skip.reason}{detail}")

    if not result.success:
        raise typer.Exit(1)


@app.command(name="sweep")
def sweep_cmd(
    config_path: ConfigOption = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print the raw result.")] = False,
) -> None:
    """Diagnose and recover rejected, stuck and failing drafts."""
    config, store, audit = _open(config_path)
    result = run_sweeper(store, config, audit=audit)

    if as_json:
        console.print(result.model_dump_json(indent=2))
    else:
        colour = "green" if result.success else "red"
        console.print(f"[{colour}]{result.message}[/{colour}]")
        if result.actions:
            table = Table(title="Recovery actions")
            for column in ("Draft", "Keyword", "Category", "Phase", "Fix"):
                table.add_column(column)
            for action in result.actions:
                table.add_row(
                    action.draft_id[:8],
                    f"{action.keyword} ({action.locale})",
                    action.category,
                    f"{action.previous_phase} -> {action.new_phase}",
                    action.fix,
                )
            console.print(table)

    if not result.success:
        raise typer.Exit(1)


@app.command(name="drafts")
def drafts_cmd(
    config_path: ConfigOption = None,
    phase: Annotated[
        Optional[list[Phase]],
        typer.Option("--phase", "-p", help="Only show drafts in this phase (repeatable)."),
    ] = None,
    limit: Annotated[int, typer.Option("--limit", "-n")] = 50,
) -> None:
    """List drafts, most recently updated first."""
    _config, store, _audit = _open(config_path)
    drafts = store.find_drafts(
        DraftQuery(phases=phase or None, order_by=[("updated_at", True)], limit=limit)
    )
    if not drafts:
        console.print("[yellow]No drafts found.[/yellow]")
        raise typer.Exit(0)

    table = Table()
    for column in ("Id", "Site", "Locale", "Keyword", "Phase", "Attempts", "Score", "Last error"):
        table.add_column(column)
    for d in drafts:
        table.add_row(
            d.id[:8],
            d.site_id,
            str(d.locale),
            d.keyword,
            str(d.phase),
            str(d.phase_attempts),
            f"{d.quality_score:g}" if d.quality_score is not None else "-",
            (d.last_error or d.rejection_reason or "")[:60],
        )
    console.print(table)


@app.command(name="history")
def history_cmd(
    config_path: ConfigOption = None,
    hours: Annotated[int, typer.Option("--hours", help="Look-back window in hours.")] = 24,
) -> None:
    """Summarize recent recovery-log activity."""
    _config, store, audit = _open(config_path)
    since = datetime.now(tz=UTC) - timedelta(hours=hours)
    summary = summarize_recovery_history(store, since)

    console.print(f"[bold]Recovery log since {since:%Y-%m-%d %H:%M} UTC[/bold]")
    console.print(f"  Entries: {summary.total}")
    console.print(f"  Recovered: {summary.recovered}")
    console.print(f"  Failed: {summary.failed}")
    for category, count in sorted(summary.by_category.items()):
        console.print(f"  - {category}: {count}")
    if summary.repeat_drafts:
        console.print(f"[yellow]Recovered more than once:[/yellow] {', '.join(summary.repeat_drafts)}")

    runs = audit.recent(limit=5)
    if runs:
        console.print()
        console.print("[bold]Last runs[/bold]")
        for run in runs:
            console.print(
                f"  {run.recorded_at:%Y-%m-%d %H:%M} {run.job_name} {run.status}: "
                f"{run.summary.get('message', '')}"
            )


@app.command(name="diagnose")
def diagnose_cmd(
    text: Annotated[str, typer.Argument(help="Stored error or rejection text.")],
) -> None:
    """Show how the sweeper would classify an error message."""
    console.print(json.dumps(diagnose(text).model_dump(mode="json"), indent=2))


if __name__ == "__main__":
    app()
