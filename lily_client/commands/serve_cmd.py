"""
Serve command: keep a language server running against a workspace.

File changes under the workspace are forwarded while the server runs,
diagnostics are printed as they arrive, SIGHUP runs the restart command
and SIGINT/SIGTERM deactivate the client.
"""

from __future__ import annotations

import asyncio
import signal
from pathlib import Path

from rich.console import Console
from rich.markup import escape

from ..config import ClientConfig
from ..errors import LanguageClientError
from ..extension import activate, deactivate, get_client
from ..host.console import ConsoleHost


async def serve(root: Path, config: ClientConfig, console: Console) -> int:
    """
    Run until interrupted.

    Returns:
        Process exit code (0 after a clean stop, 1 if the first start failed)
    """
    loop = asyncio.get_running_loop()
    host = ConsoleHost(root, console)
    stop_requested = asyncio.Event()
    restarts: list[asyncio.Task[object]] = []

    def request_restart() -> None:
        console.print("[bold]Restarting[/bold] language server")
        restarts.append(asyncio.ensure_future(host.execute_command(config.restart_command)))

    console.print(f"[bold]Watching[/bold] {escape(str(root))} for {escape(config.file_glob)}")
    console.print(f"  Server: {escape(config.executable)}")
    console.print(f"  Diagnostics: {escape(config.diagnostic_channel)}")
    console.print()

    try:
        try:
            await activate(host, config)
        except LanguageClientError as e:
            console.print(f"[red]Could not start {escape(config.executable)}:[/red] {escape(str(e))}")
            return 1

        console.print("[dim]Press Ctrl+C to stop; send SIGHUP to restart the server[/dim]")
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_requested.set)
        if hasattr(signal, "SIGHUP"):
            loop.add_signal_handler(signal.SIGHUP, request_restart)

        await stop_requested.wait()
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM, getattr(signal, "SIGHUP", None)):
            if sig is not None:
                loop.remove_signal_handler(sig)
        if restarts:
            await asyncio.gather(*restarts, return_exceptions=True)
        client = get_client()
        sessions = client.controller.sessions_started if client else 0
        await deactivate()
        host.dispose()

    console.print()
    console.print(f"[bold]Stopped.[/bold] {sessions} server session(s) run.")
    return 0


def run_serve(root: Path, config: ClientConfig) -> int:
    console = Console(stderr=True)
    return asyncio.run(serve(root.resolve(), config, console))
