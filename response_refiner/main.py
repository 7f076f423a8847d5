"""CLI interface for the Response Refiner."""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
import typer

# Load environment variables from .env file
load_dotenv()
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from response_refiner.host import (
    ActiveSession,
    JsonConversationStore,
    ProfileRegistry,
    create_pipeline,
)
from response_refiner.models.config import (
    MoveDirection,
    RefinerSettings,
    load_settings,
    save_settings,
)
from response_refiner.refinement import (
    GenerationError,
    PreconditionError,
    PresetImportError,
    PresetLibrary,
    RefinementResult,
)

DEFAULT_SETTINGS_PATH = Path("refiner_settings.json")

# Initialize CLI app
app = typer.Typer(
    name="response-refiner",
    help="Multi-step LLM refinement of assistant chat messages",
    add_completion=False,
)
steps_app = typer.Typer(help="Manage refinement steps", add_completion=False)
presets_app = typer.Typer(help="Manage prompt presets", add_completion=False)
app.add_typer(steps_app, name="steps")
app.add_typer(presets_app, name="presets")

console = Console()

SettingsOption = typer.Option(
    DEFAULT_SETTINGS_PATH, "--settings", "-s", help="Path to the settings JSON file"
)


def setup_logging(verbose: bool = False) -> None:
    """Set up logging with rich formatting."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


@app.command()
def refine(
    chat_file: Path = typer.Argument(..., help="Chat transcript (JSON list of role/text records)"),
    message_id: int = typer.Argument(..., help="Index of the assistant message to refine"),
    settings_path: Path = SettingsOption,
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose logging"
    ),
) -> None:
    """
    Refine one assistant message through every configured step.

    The transcript file is rewritten only if the message changed.

    Example:
        response-refiner refine chat.json 5 --settings refiner_settings.json
    """
    setup_logging(verbose)

    if not chat_file.exists():
        console.print(f"[red]Chat file not found: {chat_file}[/red]")
        sys.exit(1)

    settings = load_settings(settings_path)
    if not settings.steps:
        console.print("[yellow]No refinement steps configured[/yellow]")
        sys.exit(1)

    console.print(Panel.fit(
        f"[bold blue]Refining message {message_id}[/bold blue]\n"
        f"Chat: {chat_file}\n"
        f"Steps: {len(settings.steps)}",
        title="Response Refiner",
    ))

    async def run_refinement() -> tuple[RefinementResult, dict[str, dict[str, Any]]]:
        store = JsonConversationStore(chat_file)
        registry = ProfileRegistry(settings.profiles)
        async with ActiveSession(settings.default_backend) as session:
            try:
                pipeline = create_pipeline(settings, store, session, registry)
                result = await pipeline.refine(message_id)
                return result, collect_costs(session, registry)
            finally:
                await registry.close()

    try:
        with console.status("Refining..."):
            result, costs = asyncio.run(run_refinement())
        display_refinement_result(result)
        display_costs(costs)

    except PreconditionError as e:
        console.print(f"\n[red]{e}[/red]")
        sys.exit(1)
    except GenerationError as e:
        console.print(f"\n[red]Refinement failed: {e}[/red]")
        console.print("[yellow]The message was left unchanged[/yellow]")
        if verbose:
            console.print_exception()
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Refinement cancelled by user[/yellow]")
        sys.exit(1)
    except Exception as e:
        console.print(f"\n[red]Refinement failed: {e}[/red]")
        if verbose:
            console.print_exception()
        sys.exit(1)


def display_refinement_result(result: RefinementResult) -> None:
    """Display the outcome of a refinement run."""
    table = Table(title="Refinement Steps")
    table.add_column("Step", style="cyan")
    table.add_column("Backend", style="magenta")
    table.add_column("Action", style="white")
    table.add_column("Edits", style="green")

    for outcome in result.steps:
        edits = f"{outcome.edits_applied}"
        if outcome.edits_missed:
            edits += f" ({outcome.edits_missed} missed)"
        action = outcome.action.value
        if outcome.reasoning_stripped:
            action += " [dim](reasoning stripped)[/dim]"
        table.add_row(outcome.step_name, outcome.backend_ref, action, edits)

    console.print(table)

    if result.committed:
        console.print(f"\n[green]Message {result.message_index} updated[/green]")
        console.print(Panel(result.refined_text, title="Refined message"))
    else:
        console.print(f"\n[yellow]No changes made to message {result.message_index}[/yellow]")

    console.print(f"  Time: {result.latency_ms / 1000:.1f}s")


def collect_costs(
    session: ActiveSession, registry: ProfileRegistry
) -> dict[str, dict[str, Any]]:
    """Cost summaries keyed by backend, skipping backends that made no requests."""
    costs = {"default": session.get_cost_summary() or {}}
    costs.update(registry.get_cost_summary())
    return {
        backend: summary
        for backend, summary in costs.items()
        if summary.get("total_requests")
    }


def display_costs(costs: dict[str, dict[str, Any]]) -> None:
    """Display token usage and cost per backend."""
    if not costs:
        return

    table = Table(title="Usage")
    table.add_column("Backend", style="magenta")
    table.add_column("Requests", style="white")
    table.add_column("Input tokens", style="cyan")
    table.add_column("Output tokens", style="cyan")
    table.add_column("Cost (USD)", style="green")

    total = 0.0
    for backend, summary in costs.items():
        total += summary["total_cost_usd"]
        table.add_row(
            backend,
            str(summary["total_requests"]),
            str(summary["total_input_tokens"]),
            str(summary["total_output_tokens"]),
            f"${summary['total_cost_usd']:.4f}",
        )

    console.print(table)
    console.print(f"  Total cost: ${total:.4f}")


# ----------------------------------------------------------------------
# Steps
# ----------------------------------------------------------------------


def _display_steps(settings: RefinerSettings) -> None:
    library = PresetLibrary(settings)
    table = Table(title=f"Refinement Steps ({len(settings.steps)})")
    table.add_column("#", style="dim")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("Backend", style="magenta")
    table.add_column("Preset", style="green")
    table.add_column("Skip if no edits", style="white")

    for i, step in enumerate(settings.steps, 1):
        preset = settings.find_preset(step.preset_id)
        preset_label = preset.name if preset else "-"
        if preset and library.is_modified(step.id):
            preset_label += " (modified)"
        table.add_row(
            str(i),
            step.id,
            step.name,
            step.backend_ref,
            preset_label,
            "yes" if step.skip_if_no_changes else "no",
        )

    console.print(table)


@steps_app.command("list")
def list_steps(settings_path: Path = SettingsOption) -> None:
    """List the configured refinement steps in run order."""
    settings = load_settings(settings_path)
    _display_steps(settings)


@steps_app.command("add")
def add_step(
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Step name"),
    backend: Optional[str] = typer.Option(
        None, "--backend", "-b", help="Profile id, or 'default' for the active session"
    ),
    preset_name: Optional[str] = typer.Option(
        None, "--preset", "-p", help="Name of a preset to apply to the new step"
    ),
    skip_if_no_changes: bool = typer.Option(
        False, "--skip-if-no-changes", help="Leave the draft alone when no edits are returned"
    ),
    settings_path: Path = SettingsOption,
) -> None:
    """Append a new step with the default prompts."""
    settings = load_settings(settings_path)

    fields = {"skip_if_no_changes": skip_if_no_changes}
    if name:
        fields["name"] = name
    if backend:
        if backend != "default" and settings.get_profile(backend) is None:
            console.print(f"[red]Unknown backend profile: {backend}[/red]")
            sys.exit(1)
        fields["backend_ref"] = backend

    step = settings.add_step(**fields)

    if preset_name:
        library = PresetLibrary(settings)
        preset = library.find_by_name(preset_name)
        if preset is None:
            console.print(f"[red]Preset not found: {preset_name}[/red]")
            sys.exit(1)
        library.apply_to_step(step.id, preset.id)

    save_settings(settings, settings_path)
    console.print(f"[green]Added step '{step.name}' ({step.id})[/green]")


@steps_app.command("remove")
def remove_step(
    step_id: str = typer.Argument(..., help="ID of the step to remove"),
    settings_path: Path = SettingsOption,
) -> None:
    """Remove a step."""
    settings = load_settings(settings_path)
    if not settings.remove_step(step_id):
        console.print(f"[red]Step not found: {step_id}[/red]")
        sys.exit(1)

    save_settings(settings, settings_path)
    console.print(f"[green]Removed step {step_id}[/green]")


@steps_app.command("move")
def move_step(
    step_id: str = typer.Argument(..., help="ID of the step to move"),
    direction: MoveDirection = typer.Argument(..., help="up or down"),
    settings_path: Path = SettingsOption,
) -> None:
    """Move a step one position up or down."""
    settings = load_settings(settings_path)
    if not settings.move_step(step_id, direction):
        console.print(f"[yellow]Step {step_id} cannot move {direction.value}[/yellow]")
        sys.exit(1)

    save_settings(settings, settings_path)
    _display_steps(settings)


# ----------------------------------------------------------------------
# Presets
# ----------------------------------------------------------------------


@presets_app.command("list")
def list_presets(settings_path: Path = SettingsOption) -> None:
    """List the saved presets."""
    settings = load_settings(settings_path)

    table = Table(title=f"Presets ({len(settings.presets)})")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("Linked steps", style="green")

    for preset in settings.presets:
        linked = sum(1 for step in settings.steps if step.preset_id == preset.id)
        table.add_row(preset.id, preset.name, str(linked))

    console.print(table)


@presets_app.command("save")
def save_preset(
    step_id: str = typer.Argument(..., help="Step whose prompts to save"),
    name: str = typer.Argument(..., help="Preset name"),
    overwrite: bool = typer.Option(
        False, "--overwrite", help="Replace an existing preset with the same name"
    ),
    settings_path: Path = SettingsOption,
) -> None:
    """Save a step's prompts as a named preset."""
    settings = load_settings(settings_path)
    library = PresetLibrary(settings)

    try:
        preset = library.create_from_step(step_id, name, overwrite=overwrite)
    except (KeyError, ValueError) as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    save_settings(settings, settings_path)
    console.print(f"[green]Preset saved: {preset.name} ({preset.id})[/green]")


@presets_app.command("delete")
def delete_preset(
    preset_id: str = typer.Argument(..., help="ID of the preset to delete"),
    settings_path: Path = SettingsOption,
) -> None:
    """Delete a preset and unlink it from its steps."""
    settings = load_settings(settings_path)
    if not PresetLibrary(settings).delete(preset_id):
        console.print(f"[red]Preset not found: {preset_id}[/red]")
        sys.exit(1)

    save_settings(settings, settings_path)
    console.print(f"[green]Preset deleted: {preset_id}[/green]")


@presets_app.command("export")
def export_preset(
    preset_id: str = typer.Argument(..., help="ID of the preset to export"),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Output file (defaults to stdout)"
    ),
    settings_path: Path = SettingsOption,
) -> None:
    """Export a preset as JSON."""
    settings = load_settings(settings_path)

    try:
        payload = PresetLibrary(settings).export_preset(preset_id)
    except KeyError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    if output:
        output.write_text(payload)
        console.print(f"[green]Preset exported to: {output}[/green]")
    else:
        console.print_json(payload)


@presets_app.command("import")
def import_preset(
    input_file: Path = typer.Argument(..., help="Preset JSON file"),
    settings_path: Path = SettingsOption,
) -> None:
    """Import a preset. A name clash is resolved by adding an ' - imported' suffix."""
    if not input_file.exists():
        console.print(f"[red]File not found: {input_file}[/red]")
        sys.exit(1)

    settings = load_settings(settings_path)

    try:
        result = PresetLibrary(settings).import_preset(input_file.read_text())
    except PresetImportError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    save_settings(settings, settings_path)
    console.print(
        f"[green]Preset imported: {result.preset.name} ({result.action.value})[/green]"
    )


@app.callback()
def main():
    """
    Response Refiner

    Runs assistant messages through a configurable chain of LLM refinement
    steps that rewrite them with targeted search/replace edits.
    """
    pass


if __name__ == "__main__":
    app()
