# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""Commandeur CLI - apply a workflow to every folder of a batch"""

import json
import logging
import sys
import time
from pathlib import Path

import click

# Force UTF-8 encoding for Windows
if sys.platform == "win32":
    sys.stdout.reconfigure(encoding="utf-8")
    sys.stderr.reconfigure(encoding="utf-8")

from commandeur import __version__
from commandeur.core.config import ensure_directories, get_config, load_config, set_config
from commandeur.core.events import EventBus, EventType
from commandeur.core.exceptions import CommandeurError, ConfigError
from commandeur.core.execution_manager import ExecutionManager
from commandeur.core.logger import configure_logging
from commandeur.core.models import ValidationLevel, Workflow
from commandeur.core.saved_workflows import (
    delete_workflow,
    duplicate_workflow,
    list_workflows,
    load_workflow,
    load_workflow_file,
    save_workflow,
)
from commandeur.core.shells import list_available_shells
from commandeur.core.validation import validate_workflow
from commandeur.core.workspace import WorkspaceHandle, get_registry, prepare_workspace

logger = logging.getLogger("commandeur.cli")

LEVEL_COLORS = {
    ValidationLevel.INFO: None,
    ValidationLevel.WARNING: "yellow",
    ValidationLevel.ERROR: "red",
}


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Application log level (defaults to configuration)",
)
@click.option(
    "--config",
    "config_file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Configuration file (YAML), applied over the default locations",
)
def cli(log_level, config_file):
    """Commandeur - run file/process workflows over a batch of folders.

    A batch is a directory (or .zip archive) whose first-level sub-folders
    are processed one after the other, e.g. one folder per submission.

    Core commands:
        commandeur run       - Execute a workflow
        commandeur validate  - Dry-run checks, nothing is modified
        commandeur inspect   - Show the folders of a batch
    """
    if config_file:
        try:
            set_config(load_config(Path(config_file)))
        except ConfigError as e:
            click.echo(f"[-] Error: {e}", err=True)
            sys.exit(1)
    ensure_directories()
    configure_logging(level=log_level)


# =============================================================================
# Helpers
# =============================================================================


def _load_workflow(reference: str) -> Workflow:
    """A workflow file path, or the id of a saved workflow."""
    path = Path(reference)
    if path.exists():
        return load_workflow_file(path)
    return load_workflow(reference)


def _prepare(source: str) -> WorkspaceHandle:
    return prepare_workspace(
        source, registry=get_registry(), temp_dir=get_config().paths.temp_dir
    )


def _echo_message(msg):
    folders = f" ({', '.join(msg.folders)})" if msg.folders else ""
    line = f"  [{msg.level.value.upper()}] [{msg.operation_id}] {msg.message}{folders}"
    click.echo(click.style(line, fg=LEVEL_COLORS[msg.level]))
    if msg.details:
        for detail_line in msg.details.splitlines():
            click.echo(f"      > {detail_line}")


# =============================================================================
# Core Commands
# =============================================================================


@cli.command()
@click.argument("workflow")
@click.argument("source", type=click.Path(exists=True))
@click.option("--log-dir", type=click.Path(file_okay=False), help="Directory for the run log")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
def run(workflow: str, source: str, log_dir: str, as_json: bool):
    """Execute WORKFLOW (file or saved id) over every folder of SOURCE.

    Press Ctrl+C once to stop after the current operation.

    Examples:
        commandeur run fix-headers.yaml ./submissions
        commandeur run 1c0a... ./batch.zip --json
    """
    try:
        wf = _load_workflow(workflow)
        workspace = _prepare(source)
    except CommandeurError as e:
        click.echo(f"[-] Error: {e}", err=True)
        sys.exit(1)

    bus = EventBus()
    if not as_json:
        def on_log(event):
            entry = event.data
            color = LEVEL_COLORS[ValidationLevel(entry["level"])]
            click.echo(click.style(f"[{entry['operationLabel']}] {entry['message']}", fg=color))

        def on_progress(event):
            logger.debug(f"Progress {event.data['processed']}/{event.data['total']}")

        bus.subscribe(EventType.LOG_ENTRY, on_log)
        bus.subscribe(EventType.PROGRESS, on_progress)

    manager = ExecutionManager()
    try:
        execution_id = manager.start(
            workspace, wf, event_bus=bus, logs_dir=Path(log_dir) if log_dir else None
        )
        while True:
            try:
                result = manager.wait(execution_id, timeout=0.2)
                break
            except TimeoutError:
                continue
            except KeyboardInterrupt:
                click.echo("[!] Stop requested, finishing current operation...", err=True)
                manager.stop()
                time.sleep(0.05)
    except CommandeurError as e:
        click.echo(f"[-] Error: {e}", err=True)
        sys.exit(1)
    finally:
        get_registry().drop_workspace(workspace.id)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    else:
        click.echo("")
        for msg in result.warnings + result.errors:
            _echo_message(msg)
        status = click.style("[+] Success", fg="green") if result.success else click.style("[-] Failed", fg="red")
        click.echo(f"{status} - {result.operations_run} operation(s) run")
        if result.stop_reason:
            click.echo(f"    Stopped: {result.stop_reason}")
        if result.log_file_path:
            click.echo(f"    Log: {result.log_file_path}")
        if result.output_archive_path:
            click.echo(f"    Archive: {result.output_archive_path}")

    if not result.success:
        sys.exit(1)


@cli.command()
@click.argument("workflow")
@click.argument("source", type=click.Path(exists=True))
@click.option("--json", "as_json", is_flag=True, help="Print messages as JSON")
def validate(workflow: str, source: str, as_json: bool):
    """Check WORKFLOW against SOURCE without modifying anything."""
    try:
        wf = _load_workflow(workflow)
        workspace = _prepare(source)
    except CommandeurError as e:
        click.echo(f"[-] Error: {e}", err=True)
        sys.exit(1)

    try:
        messages = validate_workflow(workspace, wf)
    except CommandeurError as e:
        click.echo(f"[-] Error: {e}", err=True)
        sys.exit(1)
    finally:
        get_registry().drop_workspace(workspace.id)

    if as_json:
        click.echo(json.dumps([m.to_dict() for m in messages], indent=2, ensure_ascii=False))
    elif not messages:
        click.echo(click.style("[+] No issues found", fg="green"))
    else:
        for msg in messages:
            _echo_message(msg)

    if any(m.level == ValidationLevel.ERROR for m in messages):
        sys.exit(1)


@cli.command()
@click.argument("source", type=click.Path(exists=True))
@click.option("--json", "as_json", is_flag=True, help="Print the summary as JSON")
def inspect(source: str, as_json: bool):
    """Show how SOURCE is seen as a workspace."""
    try:
        workspace = _prepare(source)
    except CommandeurError as e:
        click.echo(f"[-] Error: {e}", err=True)
        sys.exit(1)

    summary = workspace.summary()
    get_registry().drop_workspace(workspace.id)

    if as_json:
        click.echo(json.dumps(summary.to_dict(), indent=2, ensure_ascii=False))
        return

    click.echo(f"Source: {summary.source_path}")
    click.echo(f"Mode:   {summary.mode.value}")
    click.echo(f"Root:   {summary.root_path}")
    click.echo(f"Folders ({len(summary.sub_folders)}):")
    for folder in summary.sub_folders:
        click.echo(f"  - {folder}")


@cli.command()
def shells():
    """List shells available for exec operations."""
    for shell in list_available_shells():
        click.echo(f"{shell['name']:<12} {shell['path']}")


# =============================================================================
# Saved Workflows
# =============================================================================


@cli.group()
def workflows():
    """Manage saved workflows."""
    pass


@workflows.command("list")
def workflows_list():
    """List saved workflows, most recent first."""
    try:
        summaries = list_workflows()
    except CommandeurError as e:
        click.echo(f"[-] Error: {e}", err=True)
        sys.exit(1)

    if not summaries:
        click.echo("No saved workflows.")
        return
    for summary in summaries:
        click.echo(f"{summary.id}  {summary.saved_at}  {summary.name}")


@workflows.command("save")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--id", "existing_id", help="Overwrite this saved workflow")
def workflows_save(file: str, existing_id: str):
    """Save the workflow defined in FILE."""
    try:
        summary = save_workflow(load_workflow_file(file), existing_id=existing_id)
    except CommandeurError as e:
        click.echo(f"[-] Error: {e}", err=True)
        sys.exit(1)
    click.echo(f"[+] Saved '{summary.name}' as {summary.id}")


@workflows.command("show")
@click.argument("workflow_id")
def workflows_show(workflow_id: str):
    """Print a saved workflow as JSON."""
    try:
        wf = load_workflow(workflow_id)
    except CommandeurError as e:
        click.echo(f"[-] Error: {e}", err=True)
        sys.exit(1)
    click.echo(json.dumps(wf.to_dict(), indent=2, ensure_ascii=False))


@workflows.command("delete")
@click.argument("workflow_id")
def workflows_delete(workflow_id: str):
    """Delete a saved workflow."""
    try:
        delete_workflow(workflow_id)
    except CommandeurError as e:
        click.echo(f"[-] Error: {e}", err=True)
        sys.exit(1)
    click.echo(f"[+] Deleted {workflow_id}")


@workflows.command("duplicate")
@click.argument("workflow_id")
def workflows_duplicate(workflow_id: str):
    """Copy a saved workflow under a new id."""
    try:
        summary = duplicate_workflow(workflow_id)
    except CommandeurError as e:
        click.echo(f"[-] Error: {e}", err=True)
        sys.exit(1)
    click.echo(f"[+] Duplicated as '{summary.name}' ({summary.id})")


if __name__ == "__main__":
    cli()
