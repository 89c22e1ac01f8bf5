"""CLI for boilerplate-update."""

import logging
import os
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from .config import load_update_config
from .core import AwaitingInteractiveResolution, StatusKind, UpdateRequest, UpdateResult
from .errors import UpdateError
from .orchestrator import BoilerplateUpdater


app = typer.Typer(help="""\
Update a project's generated boilerplate to a newer version of the
generator's output, keeping your own edits. Changes are left unstaged
for review.""")

console = Console()
err_console = Console(stderr=True)

STATUS_STYLES = {
    StatusKind.ADDED: "[green]+[/green]",
    StatusKind.MODIFIED: "[yellow]~[/yellow]",
    StatusKind.DELETED: "[red]-[/red]",
    StatusKind.CONFLICTED: "[red]⚠[/red]",
}


def _setup_logging(verbose: bool) -> None:
    """Send log records to stderr; DEBUG=1 or --verbose for details."""
    level = logging.DEBUG if (verbose or os.environ.get("DEBUG")) else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )


def _fail(message: str) -> None:
    err_console.print(f"[red]✗[/red] {message}")
    raise typer.Exit(1)


def display_result(result: UpdateResult) -> None:
    """Print the result of a completed update."""
    if result.report is not None:
        typer.echo(result.report)
        return
    if result.manifest is not None:
        typer.echo(result.manifest)
        return

    if result.versions:
        console.print(
            f"[bold]Updated boilerplate {result.versions.from_version} → {result.versions.to_version}[/bold]"
        )
    if result.merge is not None:
        for change in result.merge.changed_paths:
            console.print(f"  {STATUS_STYLES[change.status]} {change.path}")
        console.print(result.merge.summary())
    if result.codemods:
        console.print(f"Codemods: {', '.join(result.codemods)}")
    console.print("[dim]Changes are unstaged; review them with git status / git diff[/dim]")


@app.command()
def update(
    from_version: Optional[str] = typer.Option(None, "--from", help="Version (or range) the project was generated with"),
    to_version: Optional[str] = typer.Option(None, "--to", help="Version (or range) to update to (default: latest)"),
    remote_url: Optional[str] = typer.Option(None, "--remote-url", help="Output repository URL"),
    codemods_url: Optional[str] = typer.Option(None, "--codemods-url", help="Codemod manifest URL"),
    project_type: Optional[str] = typer.Option(None, "--project-type", help="Project type used to filter codemods"),
    resolve_conflicts: bool = typer.Option(False, "--resolve-conflicts", help="Open the merge tool on conflicts"),
    compare_only: bool = typer.Option(False, "--compare-only", help="Open a comparison view of the two versions"),
    stats_only: bool = typer.Option(False, "--stats-only", help="Show versions and applicable codemods"),
    reset: bool = typer.Option(False, "--reset", help="Reset boilerplate files to the new version"),
    run_codemods: bool = typer.Option(False, "--run-codemods", help="Run applicable codemods after updating"),
    list_codemods: bool = typer.Option(False, "--list-codemods", help="Print the codemod manifest"),
    ignore: List[str] = typer.Option([], "--ignore", help="Boilerplate path pattern to leave untouched (repeatable)"),
    cwd: Path = typer.Option(Path("."), "--cwd", help="Working tree to update"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
):
    """Update boilerplate files from the generator's output repository.

    Examples:
        boilerplate-update --from 1.0.0                 # Update to latest
        boilerplate-update --from 1.0.0 --to "^2"       # Update to newest 2.x
        boilerplate-update --from 1.0.0 --stats-only    # Show what would apply
        boilerplate-update --from 1.0.0 --reset         # Throw away boilerplate edits
    """
    _setup_logging(verbose)
    root = cwd.resolve()

    try:
        config = load_update_config(root)
    except UpdateError as e:
        _fail(str(e))

    remote_url = remote_url or config.remote_url
    codemods_url = codemods_url or config.codemods_url
    project_type = project_type or config.project_type

    if not list_codemods:
        if not remote_url:
            _fail("No output repository; pass --remote-url or set remote_url in .boilerplate-update.yaml")
        if not project_type:
            _fail("No project type; pass --project-type or set project_type in .boilerplate-update.yaml")
        if not from_version:
            _fail("No start version; pass --from")

    try:
        request = UpdateRequest.from_flags(
            resolve_conflicts=resolve_conflicts,
            compare_only=compare_only,
            reset=reset,
            stats_only=stats_only,
            run_codemods=run_codemods,
            list_codemods=list_codemods,
            remote_url=remote_url or "",
            project_type=project_type or "",
            codemods_url=codemods_url,
            start_version=from_version or "",
            end_version=to_version,
            ignored_files=ignore,
        )
        outcome = BoilerplateUpdater(root, config=config).update(request)
        if isinstance(outcome, AwaitingInteractiveResolution):
            # Runs on the terminal until the user finishes resolving
            result = outcome.completion.result()
        else:
            result = outcome.result
    except UpdateError as e:
        _fail(str(e))

    if result is not None:
        display_result(result)


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
