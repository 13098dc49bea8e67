"""Pytest configuration and fixtures."""

from __future__ import annotations

import json
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytest

from fakes import FakeHost, FakeLauncher
from lily_client.config import ClientConfig
from lily_client.extension import teardown_client

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture(autouse=True)
def reset_client():
    """Never leak the process-wide client handle between tests."""
    yield
    teardown_client()


@pytest.fixture
def fast_config() -> ClientConfig:
    """Default configuration with short timeouts."""
    return ClientConfig(handshake_timeout_s=1.0, shutdown_timeout_s=0.2)


@pytest.fixture
def launcher() -> FakeLauncher:
    """Launcher handing out well-behaved fake servers."""
    return FakeLauncher()


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    root = tmp_path / "workspace"
    root.mkdir()
    return root


@pytest.fixture
def host(workspace: Path) -> FakeHost:
    return FakeHost(workspace)


@dataclass
class StubServer:
    """The fake_lily_server.py script installed as `lily` on PATH."""

    bin_dir: Path
    log_path: Path

    def entries(self) -> list[dict[str, Any]]:
        if not self.log_path.exists():
            return []
        return [json.loads(line) for line in self.log_path.read_text(encoding="utf-8").splitlines()]

    def pids(self) -> list[int]:
        seen: list[int] = []
        for entry in self.entries():
            if entry["pid"] not in seen:
                seen.append(entry["pid"])
        return seen

    def methods(self, pid: int) -> list[str]:
        return [entry["method"] for entry in self.entries() if entry["pid"] == pid]


@pytest.fixture
def lily_on_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> StubServer:
    """Put a `lily` executable backed by the stub server first on PATH."""
    if sys.platform == "win32":
        pytest.skip("Stub server wrapper needs a POSIX shell")

    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    wrapper = bin_dir / "lily"
    script = FIXTURES / "fake_lily_server.py"
    wrapper.write_text(f'#!/bin/sh\nexec "{sys.executable}" "{script}" "$@"\n', encoding="utf-8")
    wrapper.chmod(0o755)

    log_path = tmp_path / "stub.log"
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")
    monkeypatch.setenv("LILY_STUB_LOG", str(log_path))
    return StubServer(bin_dir, log_path)
