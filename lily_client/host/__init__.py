"""
Host bindings.

This package provides:
- The HostContext protocol the core is activated with
- A console host backed by watchdog and rich
"""

from .base import CallbackDisposable, Disposable, HostContext
from .console import ConsoleDiagnosticsSink, ConsoleHost

__all__ = [
    "CallbackDisposable",
    "ConsoleDiagnosticsSink",
    "ConsoleHost",
    "Disposable",
    "HostContext",
]
