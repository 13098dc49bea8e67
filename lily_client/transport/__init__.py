"""
Language server transport.

This package provides:
- TransportSession: a pygls client bound to one server process, with
  the handshake, shutdown and loss reporting around it
- Documents, URIs and selectors the client sends through a session
"""

from .documents import DocumentSelector, TextDocument, path_to_uri, severity_label, severity_of, uri_to_path
from .session import LilyLanguageClient, TransportOptions, TransportSession, TransportState

__all__ = [
    "DocumentSelector",
    "LilyLanguageClient",
    "TextDocument",
    "TransportOptions",
    "TransportSession",
    "TransportState",
    "path_to_uri",
    "severity_label",
    "severity_of",
    "uri_to_path",
]
