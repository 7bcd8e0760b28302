"""
Diagnostic delivery strategies.

The client decides at ``initialize`` how it wants diagnostics:

* **push** – the server sends ``textDocument/publishDiagnostics`` whenever a
  result is ready (preferred);
* **pull** – the client asks with ``textDocument/diagnostic`` /
  ``workspace/diagnostic`` and the server may answer "unchanged".

The chosen strategy is held by the engine for the whole session.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from lsprotocol import types as lsp

if TYPE_CHECKING:
    from glsllsp.document import DiagnosticVersion, DocumentInfo

logger = logging.getLogger(__name__)

PUSH = 'push'
PULL = 'pull'


class Delivery:
    mode: str = ''

    def deliver(self, di: 'DocumentInfo', version: 'DiagnosticVersion',
                diagnostics: list[lsp.Diagnostic]) -> None:
        """Hand a freshly computed result to the client."""

    def retract(self, di: 'DocumentInfo', version: 'DiagnosticVersion') -> None:
        """Remove whatever the client currently shows for *di*."""

    def refresh(self) -> None:
        """Ask the client to re-request diagnostics."""


class PushDelivery(Delivery):
    mode = PUSH

    def __init__(self, publish: Callable[[lsp.PublishDiagnosticsParams], None],
                 version_support: bool = False):
        self._publish = publish
        self._version_support = version_support

    def deliver(self, di, version, diagnostics):
        shown = di.diagnostics.get_display_version()
        if shown is not None and shown.covers(version):
            logger.debug('not pushing stale diagnostics for %s (%r, shown %r)',
                         di.uri, version, shown)
            return
        self._send(di, diagnostics)
        di.diagnostics.set_display_version(version)
        di.diagnostics.visible = bool(diagnostics)

    def retract(self, di, version):
        self._send(di, [])
        di.diagnostics.set_display_version(version)
        di.diagnostics.visible = False

    def _send(self, di: 'DocumentInfo', diagnostics: list[lsp.Diagnostic]) -> None:
        sequence = di.diagnostics.increase_sequence()
        logger.debug('publishing %d diagnostics for %s', len(diagnostics), di.uri)
        self._publish(lsp.PublishDiagnosticsParams(
            uri=di.uri,
            diagnostics=diagnostics,
            version=sequence if self._version_support else None,
        ))


class PullDelivery(Delivery):
    mode = PULL

    def __init__(self, request_refresh: Callable[[], None] | None = None):
        self._request_refresh = request_refresh

    def refresh(self):
        if self._request_refresh is not None:
            logger.debug('requesting diagnostic refresh')
            self._request_refresh()


def choose_delivery(
    capabilities: lsp.ClientCapabilities | None,
    publish: Callable[[lsp.PublishDiagnosticsParams], None],
    request_refresh: Callable[[], None],
) -> Delivery | None:
    """Pick push over pull; return None when the client supports neither."""
    td = capabilities.text_document if capabilities is not None else None
    if td is not None and td.publish_diagnostics is not None:
        return PushDelivery(publish, bool(td.publish_diagnostics.version_support))
    if td is not None and td.diagnostic is not None:
        ws = capabilities.workspace
        refresh_support = bool(
            ws is not None and ws.diagnostics is not None and ws.diagnostics.refresh_support)
        return PullDelivery(request_refresh if refresh_support else None)
    return None
