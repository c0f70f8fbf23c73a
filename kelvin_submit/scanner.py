"""Workspace discovery and file selection.

This module supports:
- Locating the project manifest at or above a starting directory.
- Pure path predicates (extension allow-list, hidden paths, excluded directories).
- Gitignore-style rule files, stacked per directory.
- A lazy, restartable walk over the workspace yielding ``ProjectFile`` records.
"""

from __future__ import annotations

import logging
import os
import tomllib
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

import pathspec

from kelvin_submit.configs import ScanConfig
from kelvin_submit.errors import ScanError
from kelvin_submit.types import ProjectFile

logger = logging.getLogger(__name__)


def find_manifest(start: Path, manifest_name: str = "Cargo.toml") -> Path:
    """Find the nearest manifest at or above ``start``.

    Args:
        start: Directory to begin the search from.
        manifest_name: File name of the project manifest.

    Returns:
        Absolute path to the manifest file.

    Raises:
        ScanError: If ``start`` is not an existing directory or no manifest is found.
    """
    if not start.exists():
        raise ScanError(f"directory does not exist: {start}")
    if not start.is_dir():
        raise ScanError(f"not a directory: {start}")

    start = start.resolve()
    for directory in (start, *start.parents):
        candidate = directory / manifest_name
        if candidate.is_file():
            return candidate
    raise ScanError(f"could not find {manifest_name} in {start} or any parent directory")


def _declares_workspace(manifest: Path) -> bool:
    try:
        with open(manifest, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ScanError(f"invalid manifest {manifest}: {e}") from e
    except OSError as e:
        raise ScanError(f"cannot read manifest {manifest}: {e}") from e
    return "workspace" in data


def find_workspace_root(start: Path, manifest_name: str = "Cargo.toml") -> Path:
    """Resolve the directory whose contents get submitted.

    This is the directory of the nearest manifest, unless an enclosing manifest
    declares a ``[workspace]`` table, in which case the nearest such enclosing
    directory wins (a package nested inside a Cargo workspace submits the whole
    workspace).

    Raises:
        ScanError: If no manifest is found or an enclosing manifest is not valid TOML.
    """
    manifest = find_manifest(start, manifest_name)
    package_dir = manifest.parent
    if _declares_workspace(manifest):
        return package_dir

    for directory in package_dir.parents:
        candidate = directory / manifest_name
        if candidate.is_file() and _declares_workspace(candidate):
            return directory
    return package_dir


def is_hidden(path: str) -> bool:
    """Return True if any component of the relative path starts with a dot."""
    return any(part.startswith(".") for part in PurePosixPath(path).parts)


def has_allowed_extension(path: str, config: ScanConfig) -> bool:
    suffix = PurePosixPath(path).suffix
    return bool(suffix) and suffix[1:] in config.allowed_extensions


def is_excluded_dir(path: str, config: ScanConfig) -> bool:
    """Return True if the relative directory path lies in an excluded directory."""
    excluded = set(config.excluded_dirs)
    return any(part in excluded for part in PurePosixPath(path).parts)


@dataclass(frozen=True)
class IgnoreRules:
    """Gitignore-style rules collected while descending into the workspace.

    Each layer is anchored at the directory (relative to the workspace root)
    whose ignore file declared it. Deeper layers take precedence, and within a
    layer the last matching pattern wins, as in git.
    """

    layers: tuple[tuple[str, pathspec.GitIgnoreSpec], ...] = field(default_factory=tuple)

    @classmethod
    def from_lines(cls, lines: list[str], base: str = "") -> IgnoreRules:
        return cls().with_lines(lines, base)

    def with_lines(self, lines: list[str], base: str = "") -> IgnoreRules:
        """Return a new rule set with ``lines`` anchored at ``base`` on top."""
        spec = pathspec.GitIgnoreSpec.from_lines(lines)
        if not spec.patterns:
            return self
        return IgnoreRules(self.layers + ((base, spec),))

    def matches(self, path: str, is_dir: bool = False) -> bool:
        """Return True if the relative path is ignored."""
        for base, spec in reversed(self.layers):
            if not base:
                local = path
            elif path.startswith(base + "/"):
                local = path[len(base) + 1 :]
            else:
                continue
            result = spec.check_file(local + "/" if is_dir else local)
            if result.include is not None:
                return result.include
        return False


def archive_name_problem(name: str) -> str | None:
    """Return why a file or directory name cannot be stored as an archive entry, or None."""
    try:
        name.encode("utf-8")
    except UnicodeEncodeError:
        return "name is not valid UTF-8"
    if "\\" in name:
        return "name contains a backslash"
    return None


def is_included(path: str, config: ScanConfig, ignore: IgnoreRules | None = None) -> bool:
    """Decide whether a relative file path belongs in the submission.

    Pure predicate: only the path string is inspected, the filesystem is not
    touched.

    Args:
        path: File path relative to the workspace root, ``/`` separated.
        config: Scan rules.
        ignore: Ignore rules in effect for the file's directory.

    Returns:
        True if the file should be archived.
    """
    parent = str(PurePosixPath(path).parent)
    if parent != "." and is_excluded_dir(parent, config):
        return False
    if not config.include_hidden and is_hidden(path):
        return False
    if not has_allowed_extension(path, config):
        return False
    if ignore is not None and ignore.matches(path):
        return False
    return True


def _read_ignore_lines(path: Path) -> list[str]:
    try:
        return path.read_text(encoding="utf-8", errors="replace").splitlines()
    except OSError as e:
        logger.warning("Cannot read ignore file %s: %s", path, e)
        return []


class Workspace:
    """Restartable iterable over the files of a workspace.

    Every iteration walks the directory tree afresh, visiting entries in
    sorted order, so two iterations over an unchanged tree yield the same
    sequence.
    """

    def __init__(self, root: Path, config: ScanConfig | None = None) -> None:
        self.root = root
        self.config = config or ScanConfig()

    def __repr__(self) -> str:
        return f"Workspace(root={str(self.root)!r})"

    def __iter__(self) -> Iterator[ProjectFile]:
        rules = IgnoreRules()
        git_exclude = self.root / ".git" / "info" / "exclude"
        if git_exclude.is_file():
            rules = rules.with_lines(_read_ignore_lines(git_exclude))
        try:
            root_dev = os.stat(self.root).st_dev
        except OSError as e:
            raise ScanError(f"cannot read workspace root {self.root}: {e}") from e
        yield from self._walk(self.root, "", rules, root_dev)

    def _load_rules(self, directory: Path, rel_dir: str, rules: IgnoreRules) -> IgnoreRules:
        for name in self.config.ignore_files:
            ignore_file = directory / name
            if ignore_file.is_file():
                rules = rules.with_lines(_read_ignore_lines(ignore_file), rel_dir)
        return rules

    def _walk(self, directory: Path, rel_dir: str, rules: IgnoreRules, root_dev: int) -> Iterator[ProjectFile]:
        rules = self._load_rules(directory, rel_dir, rules)
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            raise ScanError(f"cannot read directory {directory}: {e}") from e

        subdirs: list[tuple[os.DirEntry[str], str]] = []
        for entry in entries:
            rel_path = f"{rel_dir}/{entry.name}" if rel_dir else entry.name
            problem = archive_name_problem(entry.name)
            if problem:
                logger.warning("Skipping %r: %s", entry.path, problem)
                continue
            if entry.is_dir(follow_symlinks=False):
                subdirs.append((entry, rel_path))
                continue
            if not entry.is_file():
                continue
            if not is_included(rel_path, self.config, rules):
                continue
            try:
                size = entry.stat().st_size
            except OSError as e:
                logger.warning("Cannot stat %s: %s", entry.path, e)
                continue
            if size > self.config.max_file_size:
                logger.warning(
                    "Skipping %s: %d bytes exceeds the %d byte limit", rel_path, size, self.config.max_file_size
                )
                continue
            yield ProjectFile(path=rel_path, source=Path(entry.path))

        for entry, rel_path in subdirs:
            if is_excluded_dir(entry.name, self.config):
                continue
            if not self.config.include_hidden and is_hidden(entry.name):
                continue
            if rules.matches(rel_path, is_dir=True):
                continue
            try:
                dev = entry.stat(follow_symlinks=False).st_dev
            except OSError as e:
                logger.warning("Cannot stat %s: %s", entry.path, e)
                continue
            if dev != root_dev:
                logger.debug("Not crossing file system boundary at %s", entry.path)
                continue
            yield from self._walk(Path(entry.path), rel_path, rules, root_dev)


def scan_workspace(start: Path, config: ScanConfig | None = None) -> Workspace:
    """Resolve the workspace root above ``start`` and return its file iterable.

    Raises:
        ScanError: If no manifest is found or the root is not readable.
    """
    config = config or ScanConfig()
    root = find_workspace_root(start, config.manifest_name)
    if not os.access(root, os.R_OK | os.X_OK):
        raise ScanError(f"workspace root is not readable: {root}")
    logger.info("Using workspace root %s", root)
    return Workspace(root, config)
