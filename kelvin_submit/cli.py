"""Command-line interface for kelvin-submit."""

from __future__ import annotations

import logging
from pathlib import Path

import click

from kelvin_submit.configs import DEFAULT_KELVIN_URL, TOKEN_ENV_VAR, resolve_config
from kelvin_submit.errors import KelvinSubmitError
from kelvin_submit.types import RunOutcome
from kelvin_submit.workflow import run

INTERRUPTED_EXIT_CODE = 130


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )


def _report(outcome: RunOutcome) -> None:
    if outcome.result is None:
        for path in outcome.files:
            click.echo(f"  {path}")
        click.echo(
            f"Dry run: {outcome.archive.file_count} file(s), {outcome.archive.size}B archive, nothing uploaded."
        )
        return

    result = outcome.result
    if result.submit_id is not None:
        click.echo(result.message)
    else:
        click.echo(f"Submission accepted (HTTP {result.status_code}).")
        if result.message:
            click.echo(result.message)
    if result.url:
        click.echo(f"You can find the submit at {result.url}")


@click.group()
@click.version_option(package_name="kelvin-submit")
def main() -> None:
    """Submit Rust projects to the Kelvin grading service."""


@main.command()
@click.argument("assignment_id")
@click.option(
    "--token",
    envvar=TOKEN_ENV_VAR,
    show_envvar=True,
    help="API token for submitting to Kelvin (generate it at <kelvin-url>/api_token).",
)
@click.option(
    "--dir",
    "directory",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Project directory (default: current directory).",
)
@click.option("--kelvin-url", default=None, help=f"Kelvin base URL [default: {DEFAULT_KELVIN_URL}].")
@click.option("--timeout", "timeout_seconds", type=float, default=None, help="Network timeout in seconds.")
@click.option("--no-open", is_flag=True, default=False, help="Do not open the browser after uploading.")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="YAML configuration file.",
)
@click.option("--dry-run", is_flag=True, default=False, help="Build the archive and list its files without uploading.")
@click.option("--no-progress", is_flag=True, default=False, help="Hide the progress bar.")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Enable debug logging.")
@click.pass_context
def submit(
    ctx: click.Context,
    assignment_id: str,
    token: str | None,
    directory: Path | None,
    kelvin_url: str | None,
    timeout_seconds: float | None,
    no_open: bool,
    config_path: Path | None,
    dry_run: bool,
    no_progress: bool,
    verbose: bool,
) -> None:
    """Submit the current project to Kelvin.

    ASSIGNMENT_ID can be found in the URL of the task, i.e.
    https://kelvin.cs.vsb.cz/task/<assignment-id>/<your-login>.
    """
    _setup_logging(verbose)
    try:
        config = resolve_config(
            assignment_id,
            token,
            root=directory,
            config_path=config_path,
            kelvin_url=kelvin_url,
            timeout_seconds=timeout_seconds,
            open_browser=False if no_open else None,
            dry_run=dry_run or None,
        )
        outcome = run(config, show_progress=not no_progress)
    except KelvinSubmitError as e:
        click.echo(f"Error [{e.stage}]: {e}", err=True)
        ctx.exit(e.exit_code)
    except KeyboardInterrupt:
        click.echo("Interrupted.", err=True)
        ctx.exit(INTERRUPTED_EXIT_CODE)

    _report(outcome)


if __name__ == "__main__":
    main()
