"""
Command Line Interface for the Compliance Posture engine.
"""

import json
from pathlib import Path
from typing import List, Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..config import get_settings
from ..db.base import get_session_local, init_database
from ..engine.catalog import FrameworkCatalog
from ..engine.evidence_store import EvidenceStore
from ..engine.posture import PostureAggregator
from ..engine.risk_scorer import score as score_answers
from ..errors import EngineError
from ..logging_config import configure_logging
from ..schemas.enums import ImplementationStatus
from ..storage import create_object_store

app = typer.Typer(help="Compliance Posture - risk scoring, control posture and evidence")
console = Console()

TIER_STYLES = {
    "Low": "green",
    "Medium": "yellow",
    "High": "red",
    "Critical": "bold red",
}


def _read_json(path: Path) -> dict:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Cannot read {path}: {e}[/red]")
        raise typer.Exit(code=2)
    if not isinstance(data, dict):
        console.print(f"[red]Expected a JSON object in {path}[/red]")
        raise typer.Exit(code=2)
    return data


def _fail(error: EngineError) -> None:
    console.print(f"[red]{error.code}[/red]: {error.message}")
    raise typer.Exit(code=1)


@app.callback()
def main_callback(
    log_level: Optional[str] = typer.Option(None, help="Override LOG_LEVEL"),
) -> None:
    settings = get_settings()
    configure_logging(log_level or settings.log_level, "console")


@app.command("init-db")
def init_db() -> None:
    """Create all tables in the configured database."""
    init_database()
    console.print("✅ Database initialized")


@app.command("load-framework")
def load_framework(
    file: Path = typer.Argument(..., help="JSON file with a framework and its controls"),
) -> None:
    """Load or update a framework and its controls."""
    definition = _read_json(file)
    db = get_session_local()()
    try:
        framework = FrameworkCatalog(db).load(definition)
        console.print(
            f"✅ Loaded {framework.key} ({framework.name}): {len(framework.controls)} controls"
        )
    except EngineError as e:
        _fail(e)
    finally:
        db.close()


@app.command()
def score(
    file: Path = typer.Argument(..., help="JSON file with questionnaire answers"),
) -> None:
    """Score a vendor questionnaire."""
    answers = _read_json(file)
    try:
        result = score_answers(answers)
    except EngineError as e:
        _fail(e)

    style = TIER_STYLES.get(result.tier.value, "white")
    rprint(
        Panel.fit(
            f"Score: [bold]{result.score}[/bold] / 100\nTier: [{style}]{result.tier.value}[/{style}]",
            title="Vendor Risk",
        )
    )
    if result.factors:
        table = Table(title="Risk Factors")
        table.add_column("Indicator", style="cyan")
        for factor in result.factors:
            table.add_row(factor)
        console.print(table)


@app.command()
def posture(
    org: str = typer.Option(..., "--org", help="Organization id"),
    framework: List[str] = typer.Option(..., "--framework", help="Framework key (repeatable)"),
) -> None:
    """Show control posture for an organization."""
    db = get_session_local()()
    try:
        summary = PostureAggregator(db).summary(framework, org)
    except EngineError as e:
        _fail(e)
    finally:
        db.close()

    table = Table(title=f"Compliance Posture: {org}")
    table.add_column("Framework", style="cyan")
    table.add_column("Controls", justify="right")
    table.add_column("Implemented", justify="right", style="green")
    table.add_column("In Progress", justify="right", style="yellow")
    table.add_column("Not Started", justify="right", style="red")
    table.add_column("Exempt", justify="right")
    table.add_column("Evidence", justify="right")
    table.add_column("Mapped", justify="right")

    for key, fp in summary.frameworks.items():
        table.add_row(
            f"{key} ({fp.name})",
            str(fp.total),
            f"{fp.implemented}% ({fp.counts.get(ImplementationStatus.IMPLEMENTED, 0)})",
            f"{fp.in_progress}%",
            f"{fp.not_started}%",
            f"{fp.exempt}%",
            str(fp.evidence),
            str(fp.mapped_controls),
        )

    console.print(table)
    console.print(
        f"Overall compliance: [bold]{summary.compliance_percentage}%[/bold] "
        f"({summary.implemented_controls}/{summary.total_controls} controls)"
    )


@app.command("retry-deletions")
def retry_deletions() -> None:
    """Finish evidence deletions that stopped after a storage failure."""
    settings = get_settings()
    db = get_session_local()()
    try:
        store = create_object_store(settings.object_store_uri)
        result = EvidenceStore(db, store).retry_pending_deletions(actor_id="cli")
    finally:
        db.close()

    console.print(f"✅ Purged {len(result['purged'])} evidence item(s)")
    if result["failed"]:
        table = Table(title="Still Pending")
        table.add_column("Evidence", style="cyan")
        table.add_column("Error", style="red")
        for evidence_id, message in result["failed"].items():
            table.add_row(evidence_id, message)
        console.print(table)
        raise typer.Exit(code=1)


@app.command()
def serve(
    port: Optional[int] = typer.Option(None, help="Port to run the API server on"),
    host: Optional[str] = typer.Option(None, help="Host to bind the server to"),
    reload: bool = typer.Option(False, help="Reload on code changes"),
) -> None:
    """Run the HTTP API."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port
    rprint(Panel.fit(f"Starting {settings.app_name} on http://{host}:{port}", style="bold blue"))
    uvicorn.run(
        "compliance_posture.api:app", host=host, port=port, reload=reload or settings.debug
    )


@app.command()
def version() -> None:
    """Show version information."""
    from .. import __version__

    rprint(Panel.fit(f"Compliance Posture v{__version__}", style="bold green"))


def main():
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
