"""
Session controller: owns the single language server session.

States:

    STOPPED --start()--> STARTING --ok--> RUNNING --stop()--> STOPPING --> STOPPED
                            |
                            +--failure--> STOPPED

Transitions are serialized. Overlapping calls join the operation already
in flight instead of starting a second process:
- start() while STARTING joins it; while RUNNING it is a no-op;
  while STOPPING it waits for the stop, then starts
- stop() while STOPPING joins it; while STOPPED it is a no-op;
  while STARTING it waits for the start to settle, then stops.
  A restart in flight is told not to start again and awaited, so
  stop() always returns with the controller STOPPED
- restart() joins a restart in flight, and raises
  TransitionInProgressError while a plain start or stop is running

An unexpected server exit moves RUNNING to STOPPED and is reported to
lost-listeners. Nothing restarts automatically.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from enum import Enum
from typing import Any, Awaitable, Callable, Protocol

from lsprotocol import types as lsp

from .config import ClientConfig
from .errors import TransitionInProgressError, TransportLost
from .launcher import Launcher, ProcessHandle, launch
from .transport.documents import DocumentSelector
from .transport.session import TransportOptions, TransportSession

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class DiagnosticsSink(Protocol):
    """Where published diagnostics end up (an editor's problem list, a console)."""

    def set(self, uri: str, diagnostics: list[lsp.Diagnostic]) -> None: ...

    def clear(self) -> None: ...


Opener = Callable[..., Awaitable[TransportSession]]
StateListener = Callable[[SessionState], None]
LostListener = Callable[[TransportLost], None]


def default_options(config: ClientConfig, root_uri: str | None = None) -> TransportOptions:
    """Transport options derived from the client configuration."""
    return TransportOptions(
        diagnostic_channel=config.diagnostic_channel,
        document_filter=DocumentSelector(scheme="file", language=config.language_id),
        watched_file_globs=[config.file_glob],
        root_uri=root_uri,
    )


class SessionController:
    """Start, stop and restart the language server without ever running two."""

    def __init__(
        self,
        config: ClientConfig,
        *,
        options: TransportOptions | None = None,
        launcher: Launcher = launch,
        opener: Opener = TransportSession.open,
        diagnostics: DiagnosticsSink | None = None,
    ):
        self._config = config
        self._options = options or default_options(config)
        self._launcher = launcher
        self._opener = opener
        self._diagnostics = diagnostics

        self._state = SessionState.STOPPED
        self._transport: TransportSession | None = None
        self._pending: asyncio.Future[None] | None = None
        self._restart: asyncio.Future[None] | None = None
        self._start_after_stop = False
        self._state_listeners: list[StateListener] = []
        self._lost_listeners: list[LostListener] = []
        self.sessions_started = 0

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def state(self) -> SessionState:
        return self._state

    def current_state(self) -> SessionState:
        return self._state

    @property
    def transport(self) -> TransportSession | None:
        """The live transport, only while RUNNING."""
        return self._transport if self._state is SessionState.RUNNING else None

    def add_state_listener(self, listener: StateListener) -> None:
        self._state_listeners.append(listener)

    def add_lost_listener(self, listener: LostListener) -> None:
        self._lost_listeners.append(listener)

    def _set_state(self, state: SessionState) -> None:
        if state is self._state:
            return
        logger.debug(f"Session {self._state.value} -> {state.value}")
        self._state = state
        for listener in list(self._state_listeners):
            listener(state)

    async def _settle(self) -> None:
        """Wait for the in-flight transition without taking on its outcome."""
        if self._pending is not None and not self._pending.done():
            await asyncio.wait([self._pending])

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the server; failures propagate and leave the controller STOPPED."""
        while self._state is SessionState.STOPPING:
            await self._settle()
        if self._state is SessionState.RUNNING:
            return
        if self._state is SessionState.STARTING:
            assert self._pending is not None
            await asyncio.shield(self._pending)
            return

        self._set_state(SessionState.STARTING)
        self._pending = asyncio.ensure_future(self._do_start())
        await asyncio.shield(self._pending)

    async def _do_start(self) -> None:
        executable = self._config.executable
        process: ProcessHandle | None = None
        try:
            process = await self._launcher(executable)
            transport = await self._opener(
                process,
                self._options,
                handshake_timeout=self._config.handshake_timeout_s,
                shutdown_timeout=self._config.shutdown_timeout_s,
                on_diagnostics=self._publish_diagnostics,
                on_lost=self._transport_lost,
            )
        except BaseException as e:
            if process is not None and process.returncode is None:
                with suppress(ProcessLookupError):
                    process.kill()
                await process.wait()
            self._set_state(SessionState.STOPPED)
            if not isinstance(e, asyncio.CancelledError):
                logger.error(f"Failed to start language server {executable!r}: {e}")
            raise

        self._transport = transport
        self.sessions_started += 1
        self._set_state(SessionState.RUNNING)
        logger.info(f"Language server {executable!r} running")

    async def stop(self) -> None:
        """Stop the server and wait until the process is gone."""
        restart = self._restart
        if restart is not None and not restart.done():
            self._start_after_stop = False
            await asyncio.wait([restart])
        await self._stop()

    async def _stop(self) -> None:
        # Loops because a joined transition can end in any state
        while self._state is not SessionState.STOPPED:
            if self._state in (SessionState.STARTING, SessionState.STOPPING):
                await self._settle()
                continue
            self._set_state(SessionState.STOPPING)
            self._pending = asyncio.ensure_future(self._do_stop())
            await asyncio.shield(self._pending)

    async def _do_stop(self) -> None:
        transport, self._transport = self._transport, None
        try:
            if transport is not None:
                await transport.close()
        finally:
            self._clear_diagnostics()
            self._set_state(SessionState.STOPPED)
        logger.info(f"Language server {self._config.executable!r} stopped")

    async def restart(self) -> None:
        """Stop, then start. Concurrent restarts share one run."""
        if self._restart is not None and not self._restart.done():
            await asyncio.shield(self._restart)
            return
        if self._state in (SessionState.STARTING, SessionState.STOPPING):
            raise TransitionInProgressError(f"Cannot restart while the session is {self._state.value}")

        self._start_after_stop = True
        self._restart = asyncio.ensure_future(self._do_restart())
        await asyncio.shield(self._restart)

    async def _do_restart(self) -> None:
        logger.info(f"Restarting language server {self._config.executable!r}")
        await self._stop()
        if not self._start_after_stop:
            logger.info("Restart abandoned: stop requested while restarting")
            return
        await self.start()

    # ------------------------------------------------------------------
    # Traffic
    # ------------------------------------------------------------------

    def forward(self, method: str, params: Any = None) -> bool:
        """
        Send a notification on the running session.

        Returns:
            False if no session is running (the message is dropped)

        Raises:
            SessionTerminated: the session died but the loss is not yet reported
        """
        transport = self.transport
        if transport is None:
            return False
        transport.notify(method, params)
        return True

    def _publish_diagnostics(self, params: lsp.PublishDiagnosticsParams) -> None:
        if self._diagnostics is not None:
            self._diagnostics.set(params.uri, list(params.diagnostics))

    def _clear_diagnostics(self) -> None:
        if self._diagnostics is not None:
            self._diagnostics.clear()

    def _transport_lost(self, transport: Any, error: TransportLost) -> None:
        if transport is not self._transport or self._state is not SessionState.RUNNING:
            return
        self._transport = None
        self._clear_diagnostics()
        logger.warning(f"{error}. Run the restart command to recover.")
        self._set_state(SessionState.STOPPED)
        for listener in list(self._lost_listeners):
            listener(error)
