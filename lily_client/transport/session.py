"""
Transport session: one language server process driven through pygls.

pygls' LanguageClient handles the wire: base-protocol framing, request
ids, response futures and typed lsprotocol messages. This module adds
the lifecycle around it:
- Attaching the client to a process the launcher already spawned
- The initialize/initialized handshake, bounded by a timeout
- Answers to the server-to-client requests a minimal client must handle
- Graceful shutdown with terminate and kill as fallbacks
- Reporting an unexpected server exit as TransportLost

A session is single-use. Once closed or lost it never reopens; the
controller builds a new one.
"""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import suppress
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from lsprotocol import types as lsp
from pygls.exceptions import JsonRpcException
from pygls.io_ import run_async
from pygls.lsp.client import LanguageClient

from .. import __version__
from ..errors import HandshakeError, ResponseError, SessionTerminated, TransportLost
from ..launcher import ProcessHandle
from .documents import DocumentSelector, TextDocument, uri_to_path

logger = logging.getLogger(__name__)
server_logger = logging.getLogger("lily_client.server")

DiagnosticsCallback = Callable[[lsp.PublishDiagnosticsParams], None]
LostCallback = Callable[["TransportSession", TransportLost], None]
NotificationHandler = Callable[[Any], None]

_LOG_LEVELS = {
    lsp.MessageType.Error: logging.ERROR,
    lsp.MessageType.Warning: logging.WARNING,
    lsp.MessageType.Info: logging.INFO,
    lsp.MessageType.Log: logging.DEBUG,
    lsp.MessageType.Debug: logging.DEBUG,
}


class TransportState(str, Enum):
    OPENING = "opening"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"
    LOST = "lost"


def _default_document_filter() -> Callable[[TextDocument], bool]:
    return DocumentSelector(scheme="file", language="lily")


@dataclass
class TransportOptions:
    """Per-session settings handed to the server or used to filter traffic."""

    diagnostic_channel: str = "lily"
    document_filter: Callable[[TextDocument], bool] = field(default_factory=_default_document_filter)
    watched_file_globs: list[str] = field(default_factory=list)
    client_name: str = "lily-client"
    client_version: str | None = None
    root_uri: str | None = None


def _relay_log(message_type: lsp.MessageType, message: str) -> None:
    server_logger.log(_LOG_LEVELS.get(message_type, logging.INFO), message)


class LilyLanguageClient(LanguageClient):
    """pygls client bound to a server process the launcher spawned."""

    def __init__(self, transport: TransportSession):
        options = transport.options
        super().__init__(name=options.client_name, version=options.client_version or __version__)
        self.transport = transport

    def attach(self, process: ProcessHandle) -> None:
        """Wire the protocol to the process's pipes, as start_io does for processes it spawns."""
        self.protocol.set_writer(process.stdin)
        self._server = process
        self._async_tasks.extend(
            [
                asyncio.ensure_future(
                    run_async(
                        stop_event=self._stop_event,
                        reader=process.stdout,
                        protocol=self.protocol,
                        logger=logger,
                        error_handler=self.report_server_error,
                    )
                ),
                asyncio.ensure_future(self._server_exit()),
            ]
        )

    async def server_exit(self, server) -> None:
        # Pending requests have already failed by the time this runs
        self.transport._process_exited()

    def report_server_error(self, error, source) -> None:
        logger.warning(f"Message from language server could not be handled: {error}")


def create_client(transport: TransportSession) -> LilyLanguageClient:
    """Create the pygls client and register the server-to-client handlers."""
    client = LilyLanguageClient(transport)

    @client.feature(lsp.TEXT_DOCUMENT_PUBLISH_DIAGNOSTICS)
    def publish_diagnostics(params: lsp.PublishDiagnosticsParams) -> None:
        transport._diagnostics_published(params)

    @client.feature(lsp.WINDOW_LOG_MESSAGE)
    def log_message(params: lsp.LogMessageParams) -> None:
        _relay_log(params.type, params.message)

    @client.feature(lsp.WINDOW_SHOW_MESSAGE)
    def show_message(params: lsp.ShowMessageParams) -> None:
        _relay_log(params.type, params.message)

    @client.feature(lsp.WINDOW_SHOW_MESSAGE_REQUEST)
    def show_message_request(params: lsp.ShowMessageRequestParams) -> None:
        # No user to pick an action; the server sees the request dismissed
        _relay_log(params.type, params.message)
        return None

    @client.feature(lsp.WORKSPACE_CONFIGURATION)
    def workspace_configuration(params: lsp.ConfigurationParams) -> list[None]:
        return [None] * len(params.items)

    @client.feature(lsp.CLIENT_REGISTER_CAPABILITY)
    def register_capability(params: lsp.RegistrationParams) -> None:
        logger.debug(f"Ignoring {len(params.registrations)} capability registration(s)")

    @client.feature(lsp.CLIENT_UNREGISTER_CAPABILITY)
    def unregister_capability(params: lsp.UnregistrationParams) -> None:
        return None

    @client.feature(lsp.WINDOW_WORK_DONE_PROGRESS_CREATE)
    def work_done_progress_create(params: lsp.WorkDoneProgressCreateParams) -> None:
        return None

    return client


class TransportSession:
    """Message channel to one language server process."""

    def __init__(
        self,
        process: ProcessHandle,
        options: TransportOptions,
        *,
        shutdown_timeout: float = 5.0,
        on_diagnostics: DiagnosticsCallback | None = None,
        on_lost: LostCallback | None = None,
    ):
        if process.stdin is None or process.stdout is None:
            raise ValueError("Language server process needs piped stdin and stdout")
        self._process = process
        self._options = options
        self._shutdown_timeout = shutdown_timeout
        self._on_diagnostics = on_diagnostics
        self._on_lost = on_lost

        self._state = TransportState.OPENING
        self._client = create_client(self)
        self._stderr_task: asyncio.Task[None] | None = None
        self._close_task: asyncio.Task[None] | None = None

        self.server_capabilities: lsp.ServerCapabilities | None = None
        self.server_info: lsp.ServerInfo | None = None

    # ------------------------------------------------------------------
    # Opening
    # ------------------------------------------------------------------

    @classmethod
    async def open(
        cls,
        process: ProcessHandle,
        options: TransportOptions,
        *,
        handshake_timeout: float = 10.0,
        shutdown_timeout: float = 5.0,
        on_diagnostics: DiagnosticsCallback | None = None,
        on_lost: LostCallback | None = None,
    ) -> TransportSession:
        """
        Wrap a running process and perform the protocol handshake.

        The session owns the process from here on. If the handshake fails
        the process is terminated before HandshakeError propagates.

        Raises:
            HandshakeError: no valid initialize response in time
        """
        session = cls(
            process,
            options,
            shutdown_timeout=shutdown_timeout,
            on_diagnostics=on_diagnostics,
            on_lost=on_lost,
        )
        session._start_io()

        try:
            result = await asyncio.wait_for(
                session._client.initialize_async(session._initialize_params()),
                timeout=handshake_timeout,
            )
        except asyncio.TimeoutError as e:
            await session._abort()
            raise HandshakeError(f"Language server did not answer initialize within {handshake_timeout}s") from e
        except JsonRpcException as e:
            await session._abort()
            raise HandshakeError(f"Language server failed to initialize: {e}") from e
        except (RuntimeError, ConnectionError) as e:
            # pygls fails pending requests with RuntimeError once the process exits
            await session._abort()
            raise HandshakeError(f"Language server exited during initialize: {e}") from e
        except BaseException:
            await session._abort()
            raise

        if process.returncode is not None:
            await session._abort()
            raise HandshakeError(f"Language server exited right after initialize (exit status {process.returncode})")

        session.server_capabilities = result.capabilities
        session.server_info = result.server_info
        session._state = TransportState.OPEN
        session.notify(lsp.INITIALIZED, lsp.InitializedParams())
        logger.info(f"Language server initialized (pid {process.pid})")
        return session

    def _initialize_params(self) -> lsp.InitializeParams:
        opts = self._options
        workspace_folders = None
        if opts.root_uri:
            name = uri_to_path(opts.root_uri).name or opts.root_uri
            workspace_folders = [lsp.WorkspaceFolder(uri=opts.root_uri, name=name)]
        initialization_options = None
        if opts.watched_file_globs:
            initialization_options = {"watchedFileGlobs": list(opts.watched_file_globs)}

        return lsp.InitializeParams(
            process_id=os.getpid(),
            client_info=lsp.ClientInfo(name=opts.client_name, version=opts.client_version),
            root_uri=opts.root_uri,
            workspace_folders=workspace_folders,
            initialization_options=initialization_options,
            capabilities=lsp.ClientCapabilities(
                workspace=lsp.WorkspaceClientCapabilities(
                    configuration=True,
                    did_change_watched_files=lsp.DidChangeWatchedFilesClientCapabilities(dynamic_registration=False),
                ),
                text_document=lsp.TextDocumentClientCapabilities(
                    synchronization=lsp.TextDocumentSyncClientCapabilities(dynamic_registration=False, did_save=False),
                    publish_diagnostics=lsp.PublishDiagnosticsClientCapabilities(
                        related_information=False,
                        version_support=True,
                    ),
                ),
                window=lsp.WindowClientCapabilities(work_done_progress=True),
            ),
        )

    def _start_io(self) -> None:
        self._client.attach(self._process)
        if self._process.stderr is not None:
            self._stderr_task = asyncio.ensure_future(self._drain_stderr())

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> TransportState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is TransportState.OPEN

    @property
    def process(self) -> ProcessHandle:
        return self._process

    @property
    def options(self) -> TransportOptions:
        return self._options

    @property
    def client(self) -> LilyLanguageClient:
        return self._client

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def send(self, method: str, params: Any = None, *, request: bool = False) -> asyncio.Future[Any] | None:
        """
        Write a message to the server.

        Messages reach the pipe in the order send() is called. Params may
        be lsprotocol types or plain JSON values.

        Returns:
            For a request, a future resolved with the result; None for a
            notification

        Raises:
            SessionTerminated: the session is not open
        """
        if self._state not in (TransportState.OPENING, TransportState.OPEN):
            raise SessionTerminated(f"Cannot send {method!r}: session is {self._state.value}")
        protocol = self._client.protocol
        try:
            if not request:
                protocol.notify(method, params)
                return None
            future = protocol.send_request(method, params)
        except ConnectionError as e:
            raise SessionTerminated(f"Cannot send {method!r}: {e}") from e
        return asyncio.ensure_future(self._response(future))

    async def request(self, method: str, params: Any = None) -> Any:
        future = self.send(method, params, request=True)
        assert future is not None
        return await future

    def notify(self, method: str, params: Any = None) -> None:
        self.send(method, params)

    async def flush(self) -> None:
        """Wait until everything written so far has been handed to the pipe."""
        stdin = self._process.stdin
        if stdin is None:
            return
        with suppress(ConnectionError):
            await stdin.drain()

    @staticmethod
    async def _response(future) -> Any:
        try:
            return await asyncio.wrap_future(future)
        except JsonRpcException as e:
            raise ResponseError(e.code, e.message, e.data) from e
        except RuntimeError as e:
            raise SessionTerminated(str(e)) from e

    # ------------------------------------------------------------------
    # Document synchronization
    #
    # Public API for hosts that embed the client in an editor. Each call
    # returns False when the document filter rejects the document.
    # ------------------------------------------------------------------

    def did_open(self, document: TextDocument) -> bool:
        """Announce an opened document."""
        if not self._options.document_filter(document):
            return False
        self.notify(lsp.TEXT_DOCUMENT_DID_OPEN, lsp.DidOpenTextDocumentParams(text_document=document.to_item()))
        return True

    def did_change(self, document: TextDocument) -> bool:
        """Send the full new text of a document."""
        if not self._options.document_filter(document):
            return False
        self.notify(
            lsp.TEXT_DOCUMENT_DID_CHANGE,
            lsp.DidChangeTextDocumentParams(
                text_document=lsp.VersionedTextDocumentIdentifier(uri=document.uri, version=document.version),
                content_changes=[lsp.TextDocumentContentChangeWholeDocument(text=document.text)],
            ),
        )
        return True

    def did_close(self, document: TextDocument) -> bool:
        if not self._options.document_filter(document):
            return False
        self.notify(
            lsp.TEXT_DOCUMENT_DID_CLOSE,
            lsp.DidCloseTextDocumentParams(text_document=lsp.TextDocumentIdentifier(uri=document.uri)),
        )
        return True

    # ------------------------------------------------------------------
    # Receiving
    # ------------------------------------------------------------------

    def on_notification(self, method: str, handler: NotificationHandler) -> None:
        """
        Register a handler called with the params of a server notification.

        Methods the session already handles cannot be registered again.
        """

        def notification(params: Any) -> None:
            handler(params)

        self._client.feature(method)(notification)

    def _diagnostics_published(self, params: lsp.PublishDiagnosticsParams) -> None:
        if self._on_diagnostics is not None:
            self._on_diagnostics(params)

    def _process_exited(self) -> None:
        if self._state is not TransportState.OPEN:
            return
        self._state = TransportState.LOST
        returncode = self._process.returncode
        logger.warning(f"Language server exited unexpectedly (exit status {returncode})")
        if self._on_lost is not None:
            self._on_lost(self, TransportLost(returncode))

    async def _drain_stderr(self) -> None:
        stream = self._process.stderr
        assert stream is not None
        while True:
            try:
                line = await stream.readline()
            except (ConnectionError, ValueError):
                return
            if not line:
                return
            text = line.decode("utf-8", errors="replace").rstrip()
            if text:
                server_logger.info(text)

    # ------------------------------------------------------------------
    # Termination
    # ------------------------------------------------------------------

    async def _reap_process(self, grace: float, *, force: bool = False) -> None:
        """Wait for the process to exit, escalating to terminate and kill."""
        process = self._process
        if process.returncode is not None:
            return
        if not force:
            with suppress(asyncio.TimeoutError):
                await asyncio.wait_for(process.wait(), timeout=grace)
                return
            logger.warning(f"Language server (pid {process.pid}) still running; terminating")

        with suppress(ProcessLookupError):
            process.terminate()
        with suppress(asyncio.TimeoutError):
            await asyncio.wait_for(process.wait(), timeout=grace)
            return

        logger.warning(f"Language server (pid {process.pid}) ignored terminate; killing")
        with suppress(ProcessLookupError):
            process.kill()
        await process.wait()

    def _close_stdin(self) -> None:
        stdin = self._process.stdin
        if stdin is not None and not stdin.is_closing():
            with suppress(ConnectionError, RuntimeError):
                stdin.close()

    async def _graceful_shutdown(self) -> bool:
        """Send shutdown then exit. Returns False if the peer did not cooperate."""
        try:
            await asyncio.wait_for(self._client.shutdown_async(None), timeout=self._shutdown_timeout)
        except asyncio.TimeoutError:
            logger.warning("Language server did not answer shutdown; forcing termination")
            return False
        except JsonRpcException as e:
            logger.warning(f"Language server shutdown failed: {e}")
            return self._process.returncode is not None
        except (RuntimeError, ConnectionError) as e:
            logger.debug(f"Language server went away during shutdown: {e}")
            return True

        if self._process.returncode is None:
            with suppress(ConnectionError):
                self._client.exit(None)
            with suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self.flush(), timeout=self._shutdown_timeout)
        return True

    async def close(self) -> None:
        """
        Shut the session down and release the process.

        Safe to call in any state and from several callers at once; all of
        them wait for the same close.
        """
        if self._close_task is None:
            self._close_task = asyncio.ensure_future(self._close())
        await asyncio.shield(self._close_task)

    async def _close(self) -> None:
        if self._state is TransportState.OPEN:
            self._state = TransportState.CLOSING
            cooperative = await self._graceful_shutdown()
            await self._reap_process(self._shutdown_timeout, force=not cooperative)
        elif self._state is not TransportState.LOST:
            self._state = TransportState.CLOSING
            await self._reap_process(self._shutdown_timeout, force=True)

        await self._release()
        self._state = TransportState.CLOSED
        logger.info(f"Language server session closed (exit status {self._process.returncode})")

    async def _abort(self) -> None:
        """Tear down after a failed handshake."""
        self._state = TransportState.CLOSING
        await self._reap_process(self._shutdown_timeout, force=True)
        await self._release()
        self._state = TransportState.CLOSED

    async def _release(self) -> None:
        """Stop the pygls client once the process is gone."""
        try:
            await self._client.stop()
        except (ConnectionError, asyncio.IncompleteReadError) as e:
            logger.debug(f"Language server stream ended mid-message: {e}")
        if self._stderr_task is not None:
            self._stderr_task.cancel()
            await asyncio.gather(self._stderr_task, return_exceptions=True)
        self._close_stdin()
