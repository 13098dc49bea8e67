"""
Check command: one-shot diagnostics for a set of files.

Starts a session, opens each file, collects what the server publishes
within the wait window, closes the documents again, then stops the
server.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path

from lsprotocol import types as lsp
from rich.console import Console
from rich.markup import escape

from ..config import ClientConfig
from ..controller import SessionController, default_options
from ..errors import LanguageClientError
from ..host.console import diagnostics_table, display_path
from ..transport.documents import TextDocument, path_to_uri, severity_of


class DiagnosticsCollector:
    """Diagnostics sink that lets a caller wait for specific documents."""

    def __init__(self) -> None:
        self.received: dict[str, list[lsp.Diagnostic]] = {}
        self._changed = asyncio.Event()

    def set(self, uri: str, diagnostics: list[lsp.Diagnostic]) -> None:
        self.received[uri] = list(diagnostics)
        self._changed.set()

    def clear(self) -> None:
        # Results outlive the session that produced them
        pass

    async def wait_for(self, uris: set[str]) -> None:
        while not uris <= set(self.received):
            self._changed.clear()
            await self._changed.wait()


@dataclass
class CheckResult:
    diagnostics: dict[str, list[lsp.Diagnostic]] = field(default_factory=dict)
    missing: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def severity_counts(self) -> Counter[lsp.DiagnosticSeverity]:
        return Counter(severity_of(d) for diags in self.diagnostics.values() for d in diags)

    @property
    def has_errors(self) -> bool:
        return self.severity_counts[lsp.DiagnosticSeverity.Error] > 0


async def check_files(paths: list[Path], config: ClientConfig, wait: float, root: Path) -> CheckResult:
    """
    Open the files on a fresh session and collect diagnostics.

    Raises:
        LanguageClientError: the server could not be started
    """
    collector = DiagnosticsCollector()
    controller = SessionController(
        config,
        options=default_options(config, path_to_uri(root)),
        diagnostics=collector,
    )
    result = CheckResult()

    await controller.start()
    try:
        transport = controller.transport
        assert transport is not None
        expected: set[str] = set()
        opened: list[TextDocument] = []
        for path in paths:
            document = TextDocument.from_path(path, config.language_id)
            if transport.did_open(document):
                expected.add(document.uri)
                opened.append(document)
            else:
                result.skipped.append(document.uri)

        try:
            await asyncio.wait_for(collector.wait_for(expected), timeout=wait)
        except asyncio.TimeoutError:
            result.missing = sorted(expected - set(collector.received))

        # Taken before didClose; servers may clear a closed document's diagnostics
        result.diagnostics = {uri: list(diags) for uri, diags in collector.received.items() if uri in expected}
        if transport.is_open:
            for document in opened:
                transport.did_close(document)
    finally:
        await controller.stop()

    return result


def run_check(paths: list[Path], config: ClientConfig, wait: float) -> int:
    """
    Check files and print the results.

    Returns:
        0 if no errors, 1 if any error diagnostic, 2 if the server failed
    """
    console = Console()
    root = Path.cwd()

    try:
        result = asyncio.run(check_files(paths, config, wait, root))
    except LanguageClientError as e:
        Console(stderr=True).print(f"[red]Could not run {escape(config.executable)}:[/red] {escape(str(e))}")
        return 2

    for uri in sorted(result.diagnostics):
        diagnostics = result.diagnostics[uri]
        path = escape(display_path(uri, root))
        if diagnostics:
            console.print(diagnostics_table(path, diagnostics))
        else:
            console.print(f"[green]ok[/green] {path}")

    for uri in result.skipped:
        console.print(f"[yellow]skipped[/yellow] {escape(display_path(uri, root))} (not a {escape(config.language_id)} document)")
    for uri in result.missing:
        console.print(f"[yellow]no diagnostics received[/yellow] {escape(display_path(uri, root))}")

    counts = result.severity_counts
    console.print()
    console.print(
        f"{len(result.diagnostics)} file(s): "
        f"{counts[lsp.DiagnosticSeverity.Error]} error(s), "
        f"{counts[lsp.DiagnosticSeverity.Warning]} warning(s)"
    )
    return 1 if result.has_errors else 0
