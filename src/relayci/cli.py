# cli.py
from __future__ import annotations

import os
import signal
import sys
from pathlib import Path

import click

from relayci.config import LOG_FORMATS, RuntimeConfig
from relayci.errors import WorkflowLoadError
from relayci.runner import EXIT_CANCELLED, EXIT_FAILURE, WorkflowExecutor, load_workflow
from relayci.ui.console import Console, get_console, set_console


DEFAULT_WORKFLOW = "relayci_workflow.py"


def find_workflow_files(directory: Path = Path(".")) -> list[Path]:
    """Workflow candidates in `directory`: relayci_workflow.py first, then other *_workflow.py."""
    found = {p.name: p for p in directory.glob("*_workflow.py")}
    default = found.pop(DEFAULT_WORKFLOW, None)
    return ([default] if default else []) + [found[n] for n in sorted(found)]


def discover_workflow(workflow_arg: str | None) -> Path:
    """
    Pick the workflow file to run.

    An explicit path may omit its .py suffix. Without one, exactly one
    workflow file must exist in the current directory; anything else exits 1.
    """
    console = get_console()

    if workflow_arg:
        for candidate in (Path(workflow_arg), Path(f"{workflow_arg}.py")):
            if candidate.is_file():
                return candidate
        console.print_error(
            "Workflow file not found",
            f"No such workflow file: {workflow_arg}",
            suggestion="Pass an existing file:\n  relayci run --workflow ci_workflow.py",
        )
        sys.exit(EXIT_FAILURE)

    files = find_workflow_files()
    if len(files) == 1:
        return files[0]

    if not files:
        console.print_error(
            "No workflow file found",
            f"Nothing matched {DEFAULT_WORKFLOW} or *_workflow.py in the current directory.",
            suggestion=f"Create {DEFAULT_WORKFLOW}, or pass one explicitly:\n  relayci run --workflow PATH",
        )
    else:
        console.print_error(
            "Multiple workflow files found",
            "Choose one with --workflow:",
            details=[str(f) for f in files],
        )
    sys.exit(EXIT_FAILURE)


def _load(workflow_arg: str | None):
    console = get_console()
    workflow_path = discover_workflow(workflow_arg)
    try:
        return load_workflow(workflow_path)
    except WorkflowLoadError as e:
        console.print_error("Failed to load workflow", str(e))
        sys.exit(EXIT_FAILURE)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """relayci: level-by-level workflow runner."""
    set_console(Console(debug=debug))
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.option(
    "--workflow",
    default=None,
    help="Workflow file path (defaults to relayci_workflow.py if present)",
)
@click.option("--run-id", default=None, help="Run identity (env: RELAYCI_RUN_ID)")
@click.option("--artifacts-dir", default=None, help="Artifacts root (env: RELAYCI_ARTIFACTS_DIR)")
@click.option(
    "--source-dir",
    default=None,
    help="Directory copied into jobs with copy_repo (env: RELAYCI_SOURCE_DIR, default: cwd)",
)
@click.option(
    "--keep-workspace/--no-keep-workspace",
    default=None,
    help="Keep job workspaces and containers after the run (env: RELAYCI_KEEP_WORKSPACE)",
)
@click.option(
    "--log-format",
    type=click.Choice(LOG_FORMATS),
    default=None,
    help="Event rendering (env: RELAYCI_LOG_FORMAT)",
)
@click.pass_context
def run(ctx, workflow, run_id, artifacts_dir, source_dir, keep_workspace, log_format):
    """Run a relayci workflow."""
    debug = ctx.obj.get("debug", False)
    wf = _load(workflow)

    # CLI options win over the environment; resolve both in one place
    environ = dict(os.environ)
    if run_id:
        environ["RELAYCI_RUN_ID"] = run_id
    if artifacts_dir:
        environ["RELAYCI_ARTIFACTS_DIR"] = artifacts_dir
    if source_dir:
        environ["RELAYCI_SOURCE_DIR"] = source_dir
    if keep_workspace is not None:
        environ["RELAYCI_KEEP_WORKSPACE"] = "1" if keep_workspace else "0"
    if log_format:
        environ["RELAYCI_LOG_FORMAT"] = log_format
    config = RuntimeConfig.from_env(environ, workflow_name=wf.name)

    console = Console(debug=debug, log_format=config.log_format, workflow=wf.name)
    set_console(console)

    for problem in wf.validate():
        console.print_warning(problem)

    console.print_run_started(
        workflow=wf.name,
        run_id=config.run_id,
        levels=len(wf.levels),
        job_count=len(wf.jobs()),
    )

    try:
        executor = WorkflowExecutor(wf, config, sink=console)
    except OSError as e:
        console.print_exception(e)
        sys.exit(EXIT_FAILURE)

    def _cancel(signum, frame):
        console.print_info(f"\nReceived signal {signum}, cancelling...")
        executor.cancel()

    previous = {sig: signal.signal(sig, _cancel) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        summary = executor.execute()
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(EXIT_CANCELLED)
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    console.print_summary(summary)
    sys.exit(summary.exit_code)


@cli.command()
@click.option(
    "--workflow",
    default=None,
    help="Workflow file path (defaults to relayci_workflow.py if present)",
)
def validate(workflow):
    """Check a workflow for duplicate names and unknown conditions."""
    console = get_console()
    wf = _load(workflow)

    problems = wf.validate()
    for problem in problems:
        console.print_warning(problem)
    if problems:
        sys.exit(EXIT_FAILURE)

    console.print_info(f"{wf.name}: {len(wf.levels)} level(s), {len(wf.jobs())} job(s), OK")


if __name__ == "__main__":
    cli()
