"""
End-to-end scenarios against a real server process.

The `lily` on PATH is tests/fixtures/fake_lily_server.py behind a shell
wrapper; it logs every message it receives so the tests can check what
actually crossed the pipe.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from lsprotocol import types as lsp

from fakes import FakeHost, wait_until
from lily_client.config import ClientConfig
from lily_client.controller import SessionController, SessionState
from lily_client.errors import SpawnError
from lily_client.events import EventKind, WorkspaceEvent
from lily_client.extension import activate, deactivate
from lily_client.transport.documents import TextDocument, path_to_uri
from lily_client.transport.session import TransportState


class TestLifecycle:
    """Start, edit, restart, deactivate."""

    async def test_full_lifecycle(self, lily_on_path, workspace: Path):
        host = FakeHost(workspace)

        controller = await activate(host, ClientConfig())
        assert controller.state is SessionState.RUNNING
        first = controller.transport

        source = workspace / "a.lily"
        source.write_text("let answer = 42\n", encoding="utf-8")
        host.fire(WorkspaceEvent(EventKind.CHANGED, source))
        await first.flush()

        assert await host.execute_command("lily.commands.restart") is True
        second = controller.transport
        assert second is not first
        assert first.state is TransportState.CLOSED
        assert first.process.returncode == 0
        assert controller.state is SessionState.RUNNING

        await deactivate()
        assert controller.state is SessionState.STOPPED
        assert second.state is TransportState.CLOSED
        assert second.process.returncode == 0

        first_pid, second_pid = lily_on_path.pids()
        assert lily_on_path.methods(first_pid) == [
            "initialize",
            "initialized",
            lsp.WORKSPACE_DID_CHANGE_WATCHED_FILES,
            "shutdown",
            "exit",
        ]
        assert lily_on_path.methods(second_pid) == ["initialize", "initialized", "shutdown", "exit"]

        change = [e for e in lily_on_path.entries() if e["method"] == lsp.WORKSPACE_DID_CHANGE_WATCHED_FILES]
        assert change[0]["params"] == {"changes": [{"uri": path_to_uri(source), "type": 2}]}

    async def test_diagnostics_round_trip(self, lily_on_path, workspace: Path):
        host = FakeHost(workspace)
        source = workspace / "b.lily"
        source.write_text("ok\nan error here\n", encoding="utf-8")

        uri = path_to_uri(source)

        controller = await activate(host, ClientConfig())
        try:
            transport = controller.transport
            document = TextDocument.from_path(source, "lily")
            assert transport.did_open(document)
            sink = host.sinks["lily"]
            await wait_until(lambda: uri in sink.published, timeout=10.0)
            diagnostics = sink.published[uri]

            assert transport.did_change(TextDocument(uri, "lily", 2, "ok\n"))
            assert transport.did_close(document)
            await wait_until(lambda: sink.published[uri] == [], timeout=10.0)
            pid = transport.process.pid
        finally:
            await deactivate()

        assert [(d.range.start.line, d.range.start.character, d.code) for d in diagnostics] == [(1, 3, "E001")]
        assert lily_on_path.methods(pid)[2:5] == [
            lsp.TEXT_DOCUMENT_DID_OPEN,
            lsp.TEXT_DOCUMENT_DID_CHANGE,
            lsp.TEXT_DOCUMENT_DID_CLOSE,
        ]
        assert sink.published == {}


class TestMissingExecutable:
    """A server that is not installed."""

    async def test_start_raises_spawn_error(self):
        controller = SessionController(ClientConfig(executable="lily-definitely-not-installed"))

        with pytest.raises(SpawnError):
            await controller.start()

        assert controller.state is SessionState.STOPPED
        assert controller.transport is None
