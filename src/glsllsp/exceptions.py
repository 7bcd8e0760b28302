"""Exceptions raised by glsllsp."""
from __future__ import annotations


class GlslLspError(Exception):
    """Base class for glsllsp errors."""


class DocumentStateError(GlslLspError):
    """The document table disagrees with a document's recorded state.

    Raised when a document is flagged open but the client never sent
    (or already withdrew) its text.
    """

    def __init__(self, uri: str, message: str):
        super().__init__(f'{uri}: {message}')
        self.uri = uri
