"""Type definitions for kelvin-submit."""

from __future__ import annotations

from pathlib import Path, PurePosixPath

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ProjectFile(BaseModel):
    """A file selected for submission.

    Attributes:
        path: Path relative to the workspace root, with ``/`` separators.
        source: Location of the file on disk.
    """

    model_config = ConfigDict(frozen=True)

    path: str
    source: Path

    @field_validator("path")
    @classmethod
    def check_relative_posix(cls, v: str) -> str:
        """Reject absolute, parent-relative or backslash paths."""
        if not v or "\\" in v:
            raise ValueError(f"not a relative POSIX path: {v!r}")
        pure = PurePosixPath(v)
        if pure.is_absolute() or ".." in pure.parts or v.endswith("/"):
            raise ValueError(f"not a relative file path: {v!r}")
        return v

    def read(self) -> bytes:
        """Read the file contents from disk.

        Raises:
            OSError: If the file cannot be read.
        """
        return self.source.read_bytes()


class SubmissionRequest(BaseModel):
    """Everything needed for one upload."""

    assignment_id: str
    token: str = Field(repr=False)
    archive: bytes = Field(repr=False)
    filename: str = "submit.zip"

    @field_validator("assignment_id", "token")
    @classmethod
    def check_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v


class SubmissionResult(BaseModel):
    """Outcome of a successful upload.

    Failures are raised as ``UploadError`` subclasses, so ``success`` is only
    ``False`` for results built by hand.
    """

    success: bool = True
    status_code: int
    submit_id: int | None = None
    url: str | None = None
    task_name: str | None = None
    message: str = ""


class Archive(BaseModel):
    """A built ZIP archive, held in memory."""

    data: bytes = Field(repr=False)
    file_count: int
    warnings: list[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return self.file_count == 0

    @property
    def size(self) -> int:
        return len(self.data)


class SubmitData(BaseModel):
    id: int
    url: str


class TaskData(BaseModel):
    name: str


class KelvinResponse(BaseModel):
    """JSON body returned by Kelvin after a submit was created."""

    submit: SubmitData
    task: TaskData


class RunOutcome(BaseModel):
    """What one run of the pipeline produced."""

    files: list[str]
    archive: Archive
    result: SubmissionResult | None = None
