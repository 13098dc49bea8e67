"""
Activation and deactivation entry points.

A host calls activate() once with its HostContext and deactivate() once
when it unloads the client. Between the two, a single process-wide handle
holds the controller so the deactivation hook can reach it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .config import ClientConfig
from .controller import Opener, SessionController, SessionState, default_options
from .errors import LanguageClientError, TransportLost
from .host.base import CommandHandler, Disposable, HostContext
from .launcher import Launcher, launch
from .synchronizer import EventSynchronizer
from .transport.documents import path_to_uri
from .transport.session import TransportSession

logger = logging.getLogger(__name__)


@dataclass
class ClientHandle:
    """Everything activate() created, torn down by deactivate()."""

    controller: SessionController
    synchronizer: EventSynchronizer
    context: HostContext
    disposables: list[Disposable] = field(default_factory=list)


# Process-wide handle: set by activate(), cleared by deactivate()
_CLIENT: ClientHandle | None = None


def init_client(handle: ClientHandle) -> None:
    """Install the process-wide handle."""
    global _CLIENT
    if _CLIENT is not None:
        raise RuntimeError("Language client is already active; deactivate it first")
    _CLIENT = handle


def get_client() -> ClientHandle | None:
    return _CLIENT


def teardown_client() -> ClientHandle | None:
    """Remove and return the process-wide handle."""
    global _CLIENT
    handle, _CLIENT = _CLIENT, None
    return handle


def make_restart_command(controller: SessionController, context: HostContext) -> CommandHandler:
    """
    Build the restart command handler.

    The handler returns True on success. On failure it reports the error
    through the host and returns False, leaving the controller STOPPED.
    A restart abandoned by a concurrent stop also returns False.
    """

    async def restart() -> bool:
        try:
            await controller.restart()
        except LanguageClientError as e:
            logger.error(f"Restart failed: {e}")
            context.show_error(f"Restarting {controller.config.executable} failed: {e}")
            return False
        if controller.state is not SessionState.RUNNING:
            return False
        context.show_info(f"Restarted {controller.config.executable}")
        return True

    return restart


async def activate(
    context: HostContext,
    config: ClientConfig | None = None,
    *,
    launcher: Launcher = launch,
    opener: Opener = TransportSession.open,
) -> SessionController:
    """
    Wire the client into a host and start the language server.

    The file subscription and restart command are registered before the
    first start, so a failed start can still be recovered by restarting.

    Args:
        context: Host facilities
        config: Client configuration (defaults to ClientConfig())
        launcher: Process factory
        opener: Transport factory

    Returns:
        The running SessionController

    Raises:
        SpawnError, HandshakeError: the initial start failed
        RuntimeError: already activated
    """
    if get_client() is not None:
        raise RuntimeError("Language client is already active; deactivate it first")

    config = config or ClientConfig()
    root = context.workspace_root
    controller = SessionController(
        config,
        options=default_options(config, path_to_uri(root) if root is not None else None),
        launcher=launcher,
        opener=opener,
        diagnostics=context.create_diagnostics(config.diagnostic_channel),
    )

    def report_lost(error: TransportLost) -> None:
        context.show_error(f"{error}. Run {config.restart_command} to restart it.")

    controller.add_lost_listener(report_lost)

    synchronizer = EventSynchronizer(controller, config.file_glob, root=root)
    subscription = synchronizer.subscribe(context)
    command = context.register_command(config.restart_command, make_restart_command(controller, context))
    context.subscriptions.extend([subscription, command])

    init_client(ClientHandle(controller, synchronizer, context, [command]))
    await controller.start()
    return controller


async def deactivate() -> None:
    """Stop the language server and wait until it has exited."""
    handle = get_client()
    if handle is None:
        return
    try:
        await handle.controller.stop()
    finally:
        handle.synchronizer.dispose()
        for disposable in handle.disposables:
            disposable.dispose()
        teardown_client()
