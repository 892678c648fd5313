"""
magi CLI - run the gateway and hold deliberations from the terminal.

Commands:
    magi serve                 Run the /analyze gateway under uvicorn
    magi deliberate [TOPIC]    Deliberate one topic (or an interactive session)
    magi personas              List the persona catalog
    magi history               Show or export the history log
"""

import asyncio
import json
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .agents.personas import DEFAULT_SEATS, PersonaCatalog
from .config import ALLOWED_MODELS, REASONING_EFFORTS, history_file_from_env
from .harness.history import HistoryLog
from .llm import GatewayCompletionClient, create_client
from .orchestration import (
    DeliberationError,
    DeliberationEvent,
    DeliberationOrchestrator,
    DeliberationSession,
    Phase,
    auto_proceed,
)
from .orchestration import events as ev
from .security import ValidationError, validate_in_choices

app = typer.Typer(help="MAGI council: multi-agent deliberation and its gateway")
console = Console()

DEFAULT_HISTORY_FILE = Path(".magi/history.json")
_DECISION_STYLES = {"APPROVE": "green", "DENY": "red", "ERROR": "yellow"}
_OUTCOME_STYLES = {"APPROVED": "bold green", "DENIED": "bold red", "PENDING": "bold yellow"}


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _history_log(history_file: Path | None) -> HistoryLog:
    path = history_file or history_file_from_env() or DEFAULT_HISTORY_FILE
    try:
        return HistoryLog(path=path)
    except (OSError, ValueError, KeyError, TypeError) as e:
        console.print(f"[bold red]Error:[/bold red] cannot read history file {path}: {e}")
        raise typer.Exit(1)


# =============================================================================
# SERVE
# =============================================================================


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address"),
    port: int = typer.Option(8000, help="Port"),
    reload: bool = typer.Option(False, help="Reload on code changes"),
):
    """Run the admission-controlled /analyze gateway."""
    import uvicorn

    console.print(f"\n[bold blue]magi serve[/bold blue] on http://{host}:{port}\n")
    uvicorn.run("magi.api.gateway:create_app", factory=True, host=host, port=port, reload=reload)


# =============================================================================
# DELIBERATE
# =============================================================================


class _Renderer:
    """Event observer printing phase results as they settle."""

    def __init__(self, catalog: PersonaCatalog):
        self._catalog = catalog

    def __call__(self, event: DeliberationEvent) -> None:
        if event.type == ev.PHASE_STARTED:
            console.rule(f"[bold]{event.phase.value}[/bold]")
        elif event.type == ev.PHASE_COMPLETED:
            console.print(self._phase_table(event))
        elif event.type == ev.DECISION:
            outcome = event.payload["result"]
            console.print(
                Panel(
                    f"[{_OUTCOME_STYLES[outcome]}]{outcome}[/] "
                    f"(approve {event.payload['approve']} / deny {event.payload['deny']} "
                    f"/ error {event.payload['error']})",
                    title="Collective decision",
                )
            )
        elif event.type == ev.CONSENSUS:
            report = event.payload
            console.print(
                Panel(
                    f"[bold]Summary:[/bold] {report.summary}\n"
                    f"[bold]Reason:[/bold] {report.reason}\n"
                    f"[bold]Action:[/bold] {report.action}",
                    title="Consensus report",
                )
            )
        elif event.type == ev.CONSENSUS_FAILED:
            console.print("[yellow]Consensus synthesis failed; the decision above stands.[/yellow]")

    def _phase_table(self, event: DeliberationEvent) -> Table:
        table = Table(title=f"{event.phase.value} results")
        table.add_column("#", justify="right")
        table.add_column("Persona", style="bold")
        table.add_column("Decision")
        table.add_column("Reason / opinion")
        for result in event.payload:
            persona = self._catalog.get(result.persona_id).name
            if result.verdict is not None:
                label = result.verdict.decision.value
                decision = f"[{_DECISION_STYLES[label]}]{label}[/]"
                text = result.verdict.reason
            else:
                decision = "-" if result.ok else "[yellow]ERROR[/yellow]"
                text = result.opinion or result.error or ""
            table.add_row(str(result.agent_id), persona, decision, text)
        return table


async def _prompt_gate(next_phase: Phase) -> None:
    await asyncio.to_thread(console.input, f"[dim]Press Enter to start {next_phase.value}...[/dim]")


async def _deliberate(
    orchestrator: DeliberationOrchestrator,
    session: DeliberationSession,
    topic: str | None,
    discussion: bool,
    auto: bool,
) -> None:
    gate = auto_proceed if auto else _prompt_gate
    topics = [topic] if topic else None

    while True:
        if topics is not None:
            if not topics:
                return
            current = topics.pop()
        else:
            current = (await asyncio.to_thread(console.input, "\n[bold]Topic[/bold] (/reset, empty to quit): ")).strip()
            if not current:
                return
            if current == "/reset":
                session.reset()
                console.print("[dim]Session memory cleared.[/dim]")
                continue
        try:
            await orchestrator.submit(session, current, discussion=discussion, gate=gate)
        except (DeliberationError, ValidationError) as e:
            console.print(f"[bold red]Error:[/bold red] {e}")


@app.command()
def deliberate(
    topic: str = typer.Argument(None, help="Topic to deliberate (omit for an interactive session)"),
    simple: bool = typer.Option(False, "--simple", help="Single analysis round, no discussion"),
    auto: bool = typer.Option(False, "--auto", help="Advance phases without waiting for Enter"),
    persona: list[str] = typer.Option(None, "--persona", "-p", help="Persona id per seat (repeatable)"),
    random_personas: bool = typer.Option(False, "--random-personas", help="Assign personas at random"),
    model: str = typer.Option(None, help=f"Model: {', '.join(ALLOWED_MODELS)}"),
    effort: str = typer.Option(None, help=f"Reasoning effort: {', '.join(REASONING_EFFORTS)}"),
    gateway: str = typer.Option(None, help="Route calls through a deployed gateway base URL"),
    origin: str = typer.Option(None, help="Origin header to send to the gateway"),
    history_file: Path = typer.Option(None, help="History log file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Hold a deliberation among the council agents."""
    _setup_logging(verbose)
    catalog = PersonaCatalog()

    try:
        if model:
            validate_in_choices(model, ALLOWED_MODELS, "model")
        if effort:
            validate_in_choices(effort, REASONING_EFFORTS, "effort")
    except ValidationError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    seats = list(persona) if persona else list(DEFAULT_SEATS)
    if random_personas:
        seats = [p.id for p in catalog.random_assignment(len(seats))]
    unknown = [pid for pid in seats if pid not in catalog]
    if unknown:
        console.print(f"[bold red]Error:[/bold red] unknown persona(s): {', '.join(unknown)}")
        raise typer.Exit(1)

    if gateway:
        client = GatewayCompletionClient(
            gateway,
            model=model or ALLOWED_MODELS[0],
            reasoning_effort=effort or "none",
            origin=origin,
        )
    else:
        client = create_client(model=model, reasoning_effort=effort)

    session = DeliberationSession.create(seats)
    orchestrator = DeliberationOrchestrator(
        client=client, personas=catalog, history=_history_log(history_file)
    )
    orchestrator.events.subscribe(_Renderer(catalog))

    names = ", ".join(catalog.get(pid).name for pid in seats)
    console.print(f"\n[bold blue]magi deliberate[/bold blue] -- council: {names}\n")
    asyncio.run(_deliberate(orchestrator, session, topic, discussion=not simple, auto=auto))


# =============================================================================
# PERSONAS / HISTORY
# =============================================================================


@app.command()
def personas():
    """List the persona catalog."""
    table = Table(title="Personas")
    table.add_column("Id", style="bold")
    table.add_column("Name")
    table.add_column("Default seat")
    for p in PersonaCatalog().all():
        table.add_row(p.id, p.name, "yes" if p.id in DEFAULT_SEATS else "")
    console.print(table)


@app.command()
def history(
    history_file: Path = typer.Option(None, help="History log file"),
    export: bool = typer.Option(False, "--export", help="Print a JSON backup document"),
    output: Path = typer.Option(None, help="Write the export to this file instead of stdout"),
):
    """Show the most recent deliberation results."""
    log = _history_log(history_file)

    if export:
        document = json.dumps(log.export(), indent=2, ensure_ascii=False)
        if output:
            output.write_text(document, encoding="utf-8")
            console.print(f"[green]Exported {len(log)} entries to {output}[/green]")
        else:
            typer.echo(document)
        return

    if not len(log):
        console.print("[dim]No deliberations recorded yet.[/dim]")
        return

    table = Table(title=f"History (latest {log.capacity})")
    table.add_column("When")
    table.add_column("Topic")
    table.add_column("Result")
    for entry in log.entries():
        style = _OUTCOME_STYLES.get(entry.result, "")
        table.add_row(entry.timestamp, entry.topic, f"[{style}]{entry.result}[/]" if style else entry.result)
    console.print(table)


if __name__ == "__main__":
    app()
