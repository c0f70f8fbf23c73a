from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

CARGO_TOML = '[package]\nname = "hello"\nversion = "0.1.0"\nedition = "2021"\n'


class FakeResponse:
    def __init__(self, status_code: int, body: Any = "") -> None:
        self.status_code = status_code
        self.text = body if isinstance(body, str) else json.dumps(body)

    def json(self) -> Any:
        return json.loads(self.text)


class FakeSession:
    """Stands in for ``requests.Session``; records every POST."""

    def __init__(self, response: FakeResponse | None = None, error: Exception | None = None) -> None:
        self.response = response or FakeResponse(200, {})
        self.error = error
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"url": url, **kwargs})
        if self.error is not None:
            raise self.error
        return self.response

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def write_tree() -> Callable[[Path, dict[str, str | bytes]], Path]:
    def _write(root: Path, files: dict[str, str | bytes]) -> Path:
        for rel, content in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                path.write_bytes(content)
            else:
                path.write_text(content)
        return root

    return _write


@pytest.fixture
def project(tmp_path: Path, write_tree) -> Path:
    """A small Cargo project with a few files that must not be submitted."""
    root = tmp_path / "hello"
    write_tree(
        root,
        {
            "Cargo.toml": CARGO_TOML,
            "Cargo.lock": "# lock\n",
            "README.md": "# hello\n",
            "src/main.rs": 'fn main() { println!("hi"); }\n',
            "src/util/mod.rs": "pub fn add(a: i32, b: i32) -> i32 { a + b }\n",
            "target/debug/build.rs": "// build output\n",
            "script.py": "print('not rust')\n",
        },
    )
    return root


@pytest.fixture
def fake_session() -> Callable[..., FakeSession]:
    def _make(status_code: int = 200, body: Any = "", error: Exception | None = None) -> FakeSession:
        return FakeSession(FakeResponse(status_code, body), error)

    return _make


@pytest.fixture
def kelvin_ok_body() -> dict[str, Any]:
    return {
        "submit": {"id": 42, "url": "https://kelvin.cs.vsb.cz/task/1234/abc0001#result-42"},
        "task": {"name": "Hello world"},
    }
