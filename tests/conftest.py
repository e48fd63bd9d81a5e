"""Pytest configuration and shared fixtures."""

import sys
import tempfile
from pathlib import Path
from typing import Generator

import pytest


@pytest.fixture
def temp_project_dir() -> Generator[Path, None, None]:
    """Create an empty temporary project directory."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir)


@pytest.fixture
def python_interpreter() -> str:
    """The interpreter running the tests doubles as the dynamic runtime."""
    return sys.executable


@pytest.fixture
def fake_tool(temp_project_dir: Path):
    """Factory for executable shell scripts standing in for runtimes.

    POSIX only; tests using it are skipped on Windows.
    """
    if sys.platform == "win32":
        pytest.skip("shell script fakes need a POSIX shell")

    bin_dir = temp_project_dir / "fakebin"
    bin_dir.mkdir(exist_ok=True)

    def make(name: str, body: str) -> Path:
        script = bin_dir / name
        script.write_text("#!/bin/sh\n" + body)
        script.chmod(0o755)
        return script

    return make
