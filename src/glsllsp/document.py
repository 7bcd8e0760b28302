"""
Per-document state.

Every shader document the server has heard of (opened in the editor, seen by
the client's file watcher, or named in a diagnostic request) gets one
:class:`DocumentInfo` in the engine's :class:`DocumentRegistry`.  It tracks:

* the content version, bumped on every edit or disk change,
* whether the editor holds the document open,
* the diagnostics computed for each ``(content, configuration)`` version pair,
  and what has last been shown to the client.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable, Iterator, NamedTuple

from glsllsp.exceptions import DocumentStateError
from glsllsp.versioned import VersionedExecutor

if TYPE_CHECKING:
    from lsprotocol import types as lsp

logger = logging.getLogger(__name__)


class DiagnosticVersion(NamedTuple):
    content_version: int
    configuration_version: int

    def covers(self, other: 'DiagnosticVersion') -> bool:
        """True if a result computed at this version is current for *other*."""
        return (self.content_version >= other.content_version
                and self.configuration_version >= other.configuration_version)


def _covers(v1: DiagnosticVersion, v2: DiagnosticVersion) -> bool:
    return v1.covers(v2)


class DocumentContent:
    """Content version, open flag and text access for one document.

    *get_open_text* returns the live editor text, or ``None`` when the open
    document table does not know the URI.  *read_content* reads the document
    from disk; it is only used while the document is closed.
    """

    def __init__(
        self,
        uri: str,
        get_open_text: Callable[[str], str | None],
        read_content: Callable[[str], Awaitable[str]],
    ):
        self.uri = uri
        self.version = 1
        self.length: int | None = None
        self._opened = False
        self._get_open_text = get_open_text
        self._disk = VersionedExecutor(lambda version: read_content(uri))

    def increase_version(self) -> int:
        self.version += 1
        return self.version

    def is_opened(self) -> bool:
        return self._opened

    def set_opened(self, opened: bool) -> None:
        self._opened = opened

    async def get_text(self) -> str:
        if self._opened:
            text = self._get_open_text(self.uri)
            if text is None:
                raise DocumentStateError(
                    self.uri, 'document is flagged open but not managed by the client')
        else:
            text = await self._disk.get_result(self.version)
        self.length = len(text)
        return text


class DocumentDiagnostics:
    """Cached diagnostics plus the client-facing revision bookkeeping."""

    def __init__(
        self,
        uri: str,
        produce: Callable[[DiagnosticVersion], Awaitable[list['lsp.Diagnostic']]],
    ):
        self.uri = uri
        self.sequence = 0
        self.display_version: DiagnosticVersion | None = None
        # The client currently shows a non-empty list for this document.
        self.visible = False
        self._executor: VersionedExecutor[list, DiagnosticVersion] = VersionedExecutor(
            produce, covers=_covers)

    def increase_sequence(self) -> int:
        self.sequence += 1
        return self.sequence

    def get_display_version(self) -> DiagnosticVersion | None:
        return self.display_version

    def set_display_version(self, version: DiagnosticVersion | None) -> None:
        self.display_version = version

    @property
    def result_id(self) -> str:
        return str(self.sequence)

    async def get_diagnostics(self, version: DiagnosticVersion) -> list['lsp.Diagnostic']:
        return await self._executor.get_result(version)


@dataclass
class DocumentInfo:
    uri: str
    document: DocumentContent
    diagnostics: DocumentDiagnostics


class DocumentRegistry:
    """URI → :class:`DocumentInfo`, creating records on first reference.

    *factory* builds a new record for a URI; the engine supplies one that
    wires the record's text source and diagnostic producer.
    """

    def __init__(self, factory: Callable[[str], DocumentInfo]):
        self._factory = factory
        self._infos: dict[str, DocumentInfo] = {}

    def get(self, uri: str) -> DocumentInfo:
        di = self._infos.get(uri)
        if di is None:
            di = self._factory(uri)
            self._infos[uri] = di
            logger.debug('tracking %s', uri)
        return di

    def find(self, uri: str) -> DocumentInfo | None:
        return self._infos.get(uri)

    def remove(self, uri: str) -> DocumentInfo | None:
        logger.debug('forgetting %s', uri)
        return self._infos.pop(uri, None)

    def __contains__(self, uri: str) -> bool:
        return uri in self._infos

    def __iter__(self) -> Iterator[DocumentInfo]:
        # Snapshot: handlers may add or evict records while we iterate.
        return iter(list(self._infos.values()))

    def __len__(self) -> int:
        return len(self._infos)
