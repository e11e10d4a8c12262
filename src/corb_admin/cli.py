from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

import click

from .config import AppConfig, load_config
from .errors import CorbAdminError, PhaseFailure
from .logging_config import configure_logging
from .models import RunOptions, RunRequest
from .service import build_service
from .state import RunStatus


_config_option = click.option(
    "--config", "config_path", type=click.Path(exists=True, path_type=Path), default=None
)
_verbose_option = click.option("--verbose", is_flag=True, default=False, help="Increase logging verbosity.")

STOP_GRACE_SECONDS = 5.0


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="corb-admin", message="CoRB Admin %(version)s")
def main() -> None:
    """Configure, launch and inspect CoRB migration runs."""


@main.command()
@_config_option
@_verbose_option
@click.option("--host", type=str, default=None, help="Override the configured bind host.")
@click.option("--port", type=int, default=None, help="Override the configured port.")
def serve(config_path: Optional[Path], verbose: bool, host: Optional[str], port: Optional[int]) -> None:  # pragma: no cover - thin wrapper around uvicorn
    """Serve the run orchestrator HTTP API."""
    import uvicorn

    from .api.main import create_app

    config = load_config(config_path)
    configure_logging(verbose=verbose, logger_name="corb_admin.cli", log_file=config.logging.file)
    app = create_app(build_service(config))
    uvicorn.run(app, host=host or config.server.host, port=port or config.server.port)


@main.command()
@click.argument("project")
@click.argument("job")
@click.argument("environment")
@_config_option
@_verbose_option
@click.option("--limit", type=click.IntRange(min=1), default=10, show_default=True, help="Row limit.")
@click.option("--no-limit", is_flag=True, default=False, help="Process all rows.")
@click.option("--threads", "thread_count", type=click.IntRange(min=1), default=4, show_default=True)
@click.option("--dry-run/--wet", default=True, show_default=True, help="Dry phase only, or dry then wet.")
@click.option("--run-id", "resume_run_id", type=str, default=None, help="Resume an existing run.")
@click.option("--ask-password", is_flag=True, default=False, help="Prompt for the environment password.")
def run(
    project: str,
    job: str,
    environment: str,
    config_path: Optional[Path],
    verbose: bool,
    limit: int,
    no_limit: bool,
    thread_count: int,
    dry_run: bool,
    resume_run_id: Optional[str],
    ask_password: bool,
) -> None:
    """Submit a run and wait for its phases to finish."""
    config = _prepare_config(config_path)
    logger = configure_logging(verbose=verbose, logger_name="corb_admin.cli", log_file=config.logging.file)
    secret = None
    if ask_password:
        secret = click.prompt(f"Password for {environment}", hide_input=True, default="", show_default=False)

    service = build_service(config)
    try:
        request = RunRequest(
            project=project,
            job=job,
            environment=environment,
            options=RunOptions(limit=None if no_limit else limit, dry_run=dry_run, thread_count=thread_count),
            secret=secret or None,
            resume_run_id=resume_run_id,
        )
        run_id = service.submit(request)
        logger.info("Run ID: %s", run_id)
        try:
            status = service.wait_for_completion(project, environment, run_id)
        except KeyboardInterrupt:
            logger.warning("Interrupted; stopping run %s", run_id)
            service.stop(run_id)
            service.wait(run_id, timeout=STOP_GRACE_SECONDS)
            raise click.Abort()
    except PhaseFailure as exc:
        detail = f" ({exc.phase} phase exit code {exc.exit_code})" if exc.exit_code is not None else ""
        click.echo(click.style(f"Run {exc.run_id} status: {RunStatus.ERROR.value}{detail}", fg="red"))
        sys.exit(1)
    except CorbAdminError as exc:
        raise click.ClickException(str(exc)) from exc

    click.echo(click.style(f"Run {run_id} status: {status.value}", fg="green"))


@main.command()
@click.argument("project")
@click.argument("environment")
@click.argument("run_id", required=False)
@_config_option
def status(project: str, environment: str, run_id: Optional[str], config_path: Optional[Path]) -> None:
    """Show the status of one run, or of every run in an environment."""
    service = build_service(_prepare_config(config_path))
    try:
        if run_id:
            click.echo(f"{run_id}\t{service.get_status(project, environment, run_id).value}")
            return
        for summary in service.list_runs(project, environment):
            click.echo(f"{summary.run_id}\t{summary.status.value}")
    except CorbAdminError as exc:
        raise click.ClickException(str(exc)) from exc


@main.command()
@click.argument("project")
@click.argument("environment")
@click.argument("run_id")
@click.argument("name", required=False)
@_config_option
def files(project: str, environment: str, run_id: str, name: Optional[str], config_path: Optional[Path]) -> None:
    """List a run's artifacts, or print one of them."""
    service = build_service(_prepare_config(config_path))
    try:
        if name:
            click.echo(service.read_artifact(project, environment, run_id, name), nl=False)
            return
        for entry in service.list_artifact_files(project, environment, run_id):
            click.echo(entry)
    except CorbAdminError as exc:
        raise click.ClickException(str(exc)) from exc


@main.command()
@click.argument("project")
@click.argument("environment")
@click.argument("run_id")
@_config_option
@click.confirmation_option(prompt="Delete this run and all of its artifacts?")
def delete(project: str, environment: str, run_id: str, config_path: Optional[Path]) -> None:
    """Delete a run's artifact directory."""
    service = build_service(_prepare_config(config_path))
    try:
        service.delete_run(project, environment, run_id)
    except CorbAdminError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Deleted run {run_id}")


def _prepare_config(config_path: Optional[Path]) -> AppConfig:
    config = load_config(config_path)
    config.paths.runs_dir.mkdir(parents=True, exist_ok=True)
    return config
