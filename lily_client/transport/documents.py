"""
Documents, URIs and diagnostics as the client handles them.

Wire types come from lsprotocol; this module only adds what the client
needs on top: file URIs, the open-document record with its selector,
and severity helpers for published diagnostics.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from urllib.parse import unquote, urlparse

from lsprotocol import types as lsp

from ..globs import glob_match

# -----------------------------------------------------------------------------
# URIs
# -----------------------------------------------------------------------------


def path_to_uri(path: Path) -> str:
    """Convert a filesystem path to a file URI."""
    return Path(path).resolve().as_uri()


def uri_to_path(uri: str) -> Path:
    """Convert a file URI to a Path."""
    parsed = urlparse(uri)
    path = unquote(parsed.path)
    if path.startswith("/") and len(path) > 2 and path[2] == ":":
        path = path[1:]  # Windows drive letter
    return Path(path)


# -----------------------------------------------------------------------------
# Documents
# -----------------------------------------------------------------------------


@dataclass
class TextDocument:
    """An open document as the client last saw it."""

    uri: str
    language_id: str
    version: int
    text: str

    @property
    def scheme(self) -> str:
        return urlparse(self.uri).scheme

    @classmethod
    def from_path(cls, path: Path, language_id: str, version: int = 1) -> TextDocument:
        return cls(
            uri=path_to_uri(path),
            language_id=language_id,
            version=version,
            text=Path(path).read_text(encoding="utf-8"),
        )

    def to_item(self) -> lsp.TextDocumentItem:
        return lsp.TextDocumentItem(
            uri=self.uri,
            language_id=self.language_id,
            version=self.version,
            text=self.text,
        )


@dataclass(frozen=True)
class DocumentSelector:
    """
    Select documents by scheme, language and optional path glob.

    Instances are callable so they can serve directly as a document filter.
    """

    scheme: str | None = "file"
    language: str | None = None
    pattern: str | None = None

    def __call__(self, document: TextDocument) -> bool:
        if self.scheme is not None and document.scheme != self.scheme:
            return False
        if self.language is not None and document.language_id != self.language:
            return False
        if self.pattern is not None:
            if not glob_match(uri_to_path(document.uri).as_posix(), self.pattern):
                return False
        return True


# -----------------------------------------------------------------------------
# Diagnostics
# -----------------------------------------------------------------------------


def severity_of(diagnostic: lsp.Diagnostic) -> lsp.DiagnosticSeverity:
    """A diagnostic's severity, reading a missing one as an error."""
    return diagnostic.severity or lsp.DiagnosticSeverity.Error


def severity_label(severity: lsp.DiagnosticSeverity) -> str:
    return severity.name.lower()
