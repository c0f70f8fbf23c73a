from pathlib import Path

import pytest

from kelvin_submit import scanner
from kelvin_submit.configs import ScanConfig
from kelvin_submit.errors import ScanError
from kelvin_submit.scanner import (
    IgnoreRules,
    Workspace,
    archive_name_problem,
    find_manifest,
    find_workspace_root,
    has_allowed_extension,
    is_excluded_dir,
    is_hidden,
    is_included,
    scan_workspace,
)


@pytest.mark.parametrize(
    "path, expected",
    [
        ("src/main.rs", True),
        ("Cargo.toml", True),
        ("Cargo.lock", True),
        ("docs/README.md", True),
        ("input.txt", True),
        ("script.py", False),
        ("LICENSE", False),
        ("src/main.RS", False),
    ],
)
def test_has_allowed_extension(path, expected):
    assert has_allowed_extension(path, ScanConfig()) is expected


def test_is_hidden():
    assert is_hidden(".github/workflows/ci.txt")
    assert is_hidden("src/.secret.rs")
    assert not is_hidden("src/main.rs")


def test_is_excluded_dir_matches_any_component():
    config = ScanConfig()
    assert is_excluded_dir("target", config)
    assert is_excluded_dir("crates/app/target/debug", config)
    assert not is_excluded_dir("src/targets", config)


def test_is_included_combines_rules():
    config = ScanConfig()
    assert is_included("src/lib.rs", config)
    assert not is_included("target/debug/build.rs", config)
    assert not is_included(".cargo/config.toml", config)
    assert is_included(".cargo/config.toml", config.model_copy(update={"include_hidden": True}))
    assert not is_included("notes.txt", config, IgnoreRules.from_lines(["*.txt"]))


def test_ignore_rules_negation():
    rules = IgnoreRules.from_lines(["*.md", "!README.md"])
    assert rules.matches("CHANGELOG.md")
    assert not rules.matches("README.md")


def test_ignore_rules_nested_layers():
    rules = IgnoreRules.from_lines(["generated/"]).with_lines(["*.rs", "!keep.rs"], base="crate")
    assert rules.matches("crate/a.rs")
    assert not rules.matches("crate/keep.rs")
    assert not rules.matches("a.rs")
    assert rules.matches("generated", is_dir=True)
    assert not rules.matches("generated")


def test_deeper_ignore_file_overrides_parent():
    rules = IgnoreRules.from_lines(["*.txt"]).with_lines(["!data.txt"], base="tests")
    assert rules.matches("tests/other.txt")
    assert not rules.matches("tests/data.txt")


def test_find_manifest_from_nested_directory(project: Path):
    nested = project / "src" / "util"
    assert find_manifest(nested) == (project / "Cargo.toml").resolve()


def test_find_manifest_missing_directory(tmp_path: Path):
    with pytest.raises(ScanError, match="does not exist"):
        find_manifest(tmp_path / "nope")


def test_find_manifest_without_manifest(tmp_path: Path):
    (tmp_path / "src").mkdir()
    with pytest.raises(ScanError, match="could not find Cargo.toml"):
        find_manifest(tmp_path / "src")


def test_find_workspace_root_prefers_enclosing_workspace(tmp_path: Path, write_tree):
    write_tree(
        tmp_path,
        {
            "Cargo.toml": '[workspace]\nmembers = ["app"]\n',
            "app/Cargo.toml": '[package]\nname = "app"\n',
            "app/src/main.rs": "fn main() {}\n",
        },
    )
    assert find_workspace_root(tmp_path / "app" / "src") == tmp_path.resolve()


def test_find_workspace_root_standalone_package(project: Path):
    assert find_workspace_root(project / "src") == project.resolve()


def test_find_workspace_root_invalid_enclosing_manifest(tmp_path: Path, write_tree):
    write_tree(
        tmp_path,
        {
            "Cargo.toml": "[workspace\n",
            "app/Cargo.toml": '[package]\nname = "app"\n',
        },
    )
    with pytest.raises(ScanError, match="invalid manifest"):
        find_workspace_root(tmp_path / "app")


def test_workspace_yields_exactly_allowed_files(project: Path, write_tree):
    write_tree(
        project,
        {
            ".gitignore": "ignored.txt\nscratch/\n",
            "ignored.txt": "ignored\n",
            "notes.txt": "kept\n",
            "scratch/tmp.rs": "// ignored dir\n",
            ".hidden.rs": "// hidden\n",
            ".git/HEAD.txt": "ref\n",
            "tests/.gitignore": "*.txt\n",
            "tests/fixture.txt": "ignored by nested rule\n",
            "tests/it.rs": "#[test] fn t() {}\n",
        },
    )
    paths = {f.path for f in Workspace(project.resolve())}
    assert paths == {
        "Cargo.toml",
        "Cargo.lock",
        "README.md",
        "notes.txt",
        "src/main.rs",
        "src/util/mod.rs",
        "tests/it.rs",
    }


def test_workspace_is_restartable_and_stable(project: Path):
    workspace = Workspace(project)
    first = [f.path for f in workspace]
    second = [f.path for f in workspace]
    assert first == second
    assert first


def test_workspace_honours_git_info_exclude(project: Path, write_tree):
    write_tree(project, {".git/info/exclude": "README.md\n"})
    paths = {f.path for f in Workspace(project)}
    assert "README.md" not in paths
    assert "src/main.rs" in paths


def test_workspace_skips_large_files(project: Path, write_tree):
    write_tree(project, {"src/big.rs": "x" * 100})
    config = ScanConfig(max_file_size=64)
    paths = {f.path for f in Workspace(project, config)}
    assert "src/big.rs" not in paths
    assert "src/main.rs" in paths


def test_workspace_custom_excluded_dirs(project: Path, write_tree):
    write_tree(project, {"out/gen.rs": "// generated\n"})
    assert "out/gen.rs" in {f.path for f in Workspace(project)}
    config = ScanConfig(excluded_dirs=["target", "out"])
    assert "out/gen.rs" not in {f.path for f in Workspace(project, config)}


def test_project_files_point_at_real_sources(project: Path):
    for project_file in Workspace(project):
        assert project_file.source.is_file()
        assert project_file.read() == (project / project_file.path).read_bytes()


def test_scan_workspace_from_subdirectory(project: Path):
    workspace = scan_workspace(project / "src")
    assert workspace.root == project.resolve()
    assert "src/main.rs" in {f.path for f in workspace}


def test_scan_workspace_without_manifest(tmp_path: Path):
    with pytest.raises(ScanError):
        scan_workspace(tmp_path)


@pytest.mark.parametrize("name, expected", [("main.rs", None), ("a\\b.rs", "backslash"), ("bad\udcff.rs", "UTF-8")])
def test_archive_name_problem(name, expected):
    problem = archive_name_problem(name)
    if expected is None:
        assert problem is None
    else:
        assert expected in problem


def test_workspace_skips_backslash_names(project: Path, write_tree):
    write_tree(project, {"src/a\\b.rs": "// odd name\n", "odd\\dir/lib.rs": "// odd dir\n"})
    paths = {f.path for f in Workspace(project)}
    assert "src/main.rs" in paths
    assert not any("\\" in p for p in paths)
    assert "odd\\dir/lib.rs" not in paths


class _FlakyDirEntry:
    def __init__(self, entry):
        self._entry = entry
        self.name = entry.name
        self.path = entry.path

    def is_dir(self, follow_symlinks=True):
        return self._entry.is_dir(follow_symlinks=follow_symlinks)

    def is_file(self, follow_symlinks=True):
        return self._entry.is_file(follow_symlinks=follow_symlinks)

    def stat(self, follow_symlinks=True):
        if self.name == "flaky":
            raise PermissionError(13, "Permission denied", self.path)
        return self._entry.stat(follow_symlinks=follow_symlinks)


def test_workspace_skips_directory_that_cannot_be_stat(project: Path, write_tree, monkeypatch):
    write_tree(project, {"flaky/lib.rs": "// unreachable\n"})
    real_scandir = scanner.os.scandir

    class _Scandir:
        def __init__(self, path):
            self._it = real_scandir(path)

        def __enter__(self):
            return (_FlakyDirEntry(e) for e in self._it)

        def __exit__(self, *exc_info):
            self._it.close()

    monkeypatch.setattr(scanner.os, "scandir", _Scandir)
    paths = {f.path for f in Workspace(project)}
    assert "src/main.rs" in paths
    assert "flaky/lib.rs" not in paths
