"""High-level workflow orchestration for submitting a workspace."""

from __future__ import annotations

import logging

import click

from kelvin_submit.archive import build_archive
from kelvin_submit.client import SubmissionClient
from kelvin_submit.configs import SubmitConfig
from kelvin_submit.errors import ArchiveError
from kelvin_submit.scanner import scan_workspace
from kelvin_submit.types import RunOutcome, SubmissionRequest

logger = logging.getLogger(__name__)


def open_submit_page(url: str) -> None:
    """Open the submit page in a browser; failures are only logged."""
    try:
        click.launch(url)
    except OSError as e:
        logger.warning("Cannot open browser: %s", e)


def run(
    config: SubmitConfig,
    *,
    client: SubmissionClient | None = None,
    show_progress: bool = False,
) -> RunOutcome:
    """Main workflow function.

    Scans the workspace, compresses the selected files and uploads the archive.
    Each stage completes before the next one starts; the first failure aborts
    the run.

    Args:
        config: Resolved configuration for this run.
        client: Optional pre-built client, mainly for tests.
        show_progress: Display a progress bar while compressing.

    Returns:
        The files that were packaged, the archive and the upload result
        (``None`` when ``config.dry_run`` is set).

    Raises:
        KelvinSubmitError: Any stage failure, see ``kelvin_submit.errors``.
    """
    # Scan
    workspace = scan_workspace(config.root, config.scan)
    files = list(workspace)
    logger.info("Found %d file(s) to submit in %s", len(files), workspace.root)

    # Build
    archive = build_archive(files, show_progress=show_progress)
    if archive.is_empty and not config.allow_empty:
        raise ArchiveError(f"no files to submit in {workspace.root}")

    outcome = RunOutcome(files=[f.path for f in files], archive=archive)
    if config.dry_run:
        return outcome

    # Submit
    request = SubmissionRequest(assignment_id=config.assignment_id, token=config.token, archive=archive.data)
    if client is None:
        with SubmissionClient(config.kelvin_url, config.timeout_seconds) as owned_client:
            result = owned_client.submit(request)
    else:
        result = client.submit(request)
    outcome.result = result

    if config.open_browser and result.url:
        open_submit_page(result.url)

    return outcome
