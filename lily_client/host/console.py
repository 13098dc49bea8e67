"""
Console host: runs the client outside an editor.

Diagnostics are rendered with rich, file events come from watchdog and
commands are invoked by the serve loop (signals) rather than a palette.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from pathlib import Path
from typing import Any

from lsprotocol import types as lsp
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..transport.documents import severity_label, severity_of, uri_to_path
from .base import CallbackDisposable, CommandHandler, Disposable, WatchCallback
from .watcher import watch_workspace

SEVERITY_STYLES = {
    lsp.DiagnosticSeverity.Error: "red",
    lsp.DiagnosticSeverity.Warning: "yellow",
    lsp.DiagnosticSeverity.Information: "cyan",
    lsp.DiagnosticSeverity.Hint: "dim",
}


def display_path(uri: str, root: Path | None) -> str:
    path = uri_to_path(uri)
    if root is not None:
        try:
            return path.relative_to(root).as_posix()
        except ValueError:
            pass
    return str(path)


def diagnostics_table(title: str, diagnostics: list[lsp.Diagnostic]) -> Table:
    table = Table(title=title, title_justify="left")
    table.add_column("Line:Col", justify="right", style="dim")
    table.add_column("Severity")
    table.add_column("Code", style="dim")
    table.add_column("Message")

    for diag in sorted(diagnostics, key=lambda d: (d.range.start.line, d.range.start.character)):
        severity = severity_of(diag)
        style = SEVERITY_STYLES.get(severity, "")
        label = severity_label(severity)
        start = diag.range.start
        table.add_row(
            f"{start.line + 1}:{start.character + 1}",
            f"[{style}]{label}[/{style}]" if style else label,
            escape("" if diag.code is None else str(diag.code)),
            escape(diag.message),
        )
    return table


class ConsoleDiagnosticsSink:
    """Diagnostics collection that prints every update."""

    def __init__(self, label: str, console: Console, root: Path | None = None):
        self.label = label
        self.console = console
        self.root = root
        self.current: dict[str, list[lsp.Diagnostic]] = {}

    def set(self, uri: str, diagnostics: list[lsp.Diagnostic]) -> None:
        path = escape(display_path(uri, self.root))
        if diagnostics:
            self.current[uri] = list(diagnostics)
            self.console.print(diagnostics_table(f"{escape(self.label)}: {path}", diagnostics))
        else:
            had_problems = self.current.pop(uri, None) is not None
            if had_problems:
                self.console.print(f"[green]{escape(self.label)}: {path} is clean[/green]")

    def clear(self) -> None:
        self.current.clear()

    def counts(self) -> Counter[lsp.DiagnosticSeverity]:
        return Counter(severity_of(d) for diags in self.current.values() for d in diags)


class ConsoleHost:
    """HostContext implementation for a terminal session."""

    def __init__(self, workspace_root: Path, console: Console | None = None):
        self.workspace_root: Path | None = workspace_root
        self.console = console or Console(stderr=True)
        self.subscriptions: list[Disposable] = []
        self.commands: dict[str, CommandHandler] = {}
        self.sinks: dict[str, ConsoleDiagnosticsSink] = {}

    def register_command(self, command_id: str, handler: CommandHandler) -> Disposable:
        if command_id in self.commands:
            raise ValueError(f"Command already registered: {command_id}")
        self.commands[command_id] = handler
        return CallbackDisposable(lambda: self.commands.pop(command_id, None))

    async def execute_command(self, command_id: str) -> Any:
        handler = self.commands.get(command_id)
        if handler is None:
            raise KeyError(f"Unknown command: {command_id}")
        return await handler()

    def create_file_watcher(self, glob: str, on_event: WatchCallback) -> Disposable:
        assert self.workspace_root is not None
        return watch_workspace(self.workspace_root, on_event, asyncio.get_running_loop())

    def create_diagnostics(self, label: str) -> ConsoleDiagnosticsSink:
        sink = ConsoleDiagnosticsSink(label, self.console, self.workspace_root)
        self.sinks[label] = sink
        return sink

    def show_error(self, message: str) -> None:
        self.console.print(f"[red]{escape(message)}[/red]")

    def show_info(self, message: str) -> None:
        self.console.print(f"[dim]{escape(message)}[/dim]")

    def dispose(self) -> None:
        for disposable in reversed(self.subscriptions):
            disposable.dispose()
        self.subscriptions.clear()
