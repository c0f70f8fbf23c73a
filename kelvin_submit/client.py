"""HTTP client for uploading a submission to Kelvin."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import requests
from pydantic import ValidationError

from kelvin_submit.configs import DEFAULT_TIMEOUT_SECONDS
from kelvin_submit.errors import AuthError, NotFoundError, ServerError, TransportError
from kelvin_submit.types import KelvinResponse, SubmissionRequest, SubmissionResult

logger = logging.getLogger(__name__)

ARCHIVE_FIELD = "solution"
ARCHIVE_CONTENT_TYPE = "application/zip"


def submission_url(base_url: str, assignment_id: str) -> str:
    """Build the upload endpoint for an assignment."""
    return f"{base_url.rstrip('/')}/api/submits/{quote(assignment_id, safe='')}"


class SubmissionClient:
    """Uploads archives to Kelvin.

    Exactly one request is made per ``submit`` call; failures are raised
    immediately and never retried.

    Args:
        base_url: Kelvin root URL, e.g. ``https://kelvin.cs.vsb.cz``.
        timeout_seconds: Upper bound for connecting and for reading the response.
        session: Optional ``requests.Session`` (or compatible object) to use.
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        session: Any | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._owns_session = session is None
        self.session = session if session is not None else requests.Session()

    def __enter__(self) -> SubmissionClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_session:
            self.session.close()

    def submit(self, request: SubmissionRequest) -> SubmissionResult:
        """Upload one archive as a new submission.

        Args:
            request: Assignment, token and archive bytes.

        Returns:
            The parsed outcome of a 2xx response.

        Raises:
            AuthError: On HTTP 401 or 403.
            NotFoundError: On HTTP 404.
            ServerError: On any other non-2xx status.
            TransportError: If the server cannot be reached or the request times out.
        """
        url = submission_url(self.base_url, request.assignment_id)
        headers = {"Authorization": f"Bearer {request.token}"}
        files = {ARCHIVE_FIELD: (request.filename, request.archive, ARCHIVE_CONTENT_TYPE)}

        logger.info("Uploading %dB to %s", len(request.archive), url)
        try:
            response = self.session.post(url, headers=headers, files=files, timeout=self.timeout_seconds)
        except requests.exceptions.Timeout as e:
            raise TransportError(f"timed out after {self.timeout_seconds:g}s") from e
        except requests.exceptions.SSLError as e:
            raise TransportError(f"TLS error: {e}") from e
        except requests.exceptions.ConnectionError as e:
            raise TransportError(f"connection error: {e}") from e
        except requests.exceptions.RequestException as e:
            raise TransportError(str(e)) from e

        return self._interpret(response, url)

    def _interpret(self, response: requests.Response, url: str) -> SubmissionResult:
        status = response.status_code
        if 200 <= status < 300:
            return self._parse_success(response)

        logger.error("The submit was not successful. Status error: %d", status)
        logger.debug("Response content: %s", response.text)
        if status in (401, 403):
            raise AuthError(status)
        if status == 404:
            raise NotFoundError(url)
        raise ServerError(status, response.text)

    def _parse_success(self, response: requests.Response) -> SubmissionResult:
        try:
            parsed = KelvinResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            # Accepted, but not in the usual shape
            logger.debug("Unexpected success body (%s): %s", e, response.text)
            return SubmissionResult(status_code=response.status_code, message=response.text.strip())

        return SubmissionResult(
            status_code=response.status_code,
            submit_id=parsed.submit.id,
            url=parsed.submit.url,
            task_name=parsed.task.name,
            message=f"Created submit #{parsed.submit.id} for task {parsed.task.name}",
        )
