"""
Validation orchestrator.

:class:`DiagnosticEngine` owns all per-session state: the document registry,
the active configuration and its version, the host and the delivery strategy.
LSP handlers translate protocol events into the ``did_*`` coroutines below;
everything else (version bookkeeping, deciding whether to run the validator,
retracting diagnostics) happens here.

State changes happen before the first ``await`` of each coroutine, so they
are applied in the order the events were dispatched.
"""
from __future__ import annotations

import asyncio
import logging
import re
import time
from typing import Callable

from lsprotocol import types as lsp

from glsllsp.config import (
    Configuration,
    is_shader_uri,
    is_validation_required,
    stage_for_uri,
    stage_mapping_changed,
)
from glsllsp.delivery import PULL, PUSH, Delivery
from glsllsp.document import (
    DiagnosticVersion,
    DocumentContent,
    DocumentDiagnostics,
    DocumentInfo,
    DocumentRegistry,
)
from glsllsp.handlers.diagnostics import parse_validator_output
from glsllsp.host import Host
from glsllsp.telemetry import Telemetry
from glsllsp.validator import build_command

logger = logging.getLogger(__name__)

_NEWLINE_RE = re.compile(r'\r\n|\r|\n')


def split_lines(text: str) -> list[str]:
    """Split *text* on the line terminators LSP recognises."""
    return _NEWLINE_RE.split(text)


class DiagnosticEngine:

    def __init__(
        self,
        host: Host,
        delivery: Delivery | None = None,
        get_open_text: Callable[[str], str | None] = lambda uri: None,
        configuration: Configuration | None = None,
    ):
        self.host = host
        self.delivery = delivery
        self.configuration = configuration or Configuration()
        self.configuration_version = 1
        self.telemetry = Telemetry()
        self.registry = DocumentRegistry(self._new_document_info)
        self._get_open_text = get_open_text

    def _new_document_info(self, uri: str) -> DocumentInfo:
        return DocumentInfo(
            uri=uri,
            document=DocumentContent(uri, self._get_open_text, self.host.get_document_content),
            diagnostics=DocumentDiagnostics(
                uri, lambda version: self._produce_diagnostics(uri, version)),
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def mode(self) -> str | None:
        return self.delivery.mode if self.delivery is not None else None

    def get_document_info(self, uri: str) -> DocumentInfo:
        return self.registry.get(uri)

    def current_version(self, di: DocumentInfo) -> DiagnosticVersion:
        return DiagnosticVersion(di.document.version, self.configuration_version)

    def should_validate(self, di: DocumentInfo) -> bool:
        diagnostics = self.configuration.diagnostics
        return (
            self.host.is_desktop()
            and diagnostics.enable
            and (diagnostics.workspace or di.document.is_opened())
        )

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    async def validate(self, di: DocumentInfo) -> list[lsp.Diagnostic]:
        """Run the validator on the current text of *di* and parse its output.

        Returns an empty list when the document has no shader stage or no
        validator is available.
        """
        if not self.host.is_desktop() or not self.host.is_validator_executable():
            return []
        config = self.configuration
        stage = stage_for_uri(di.uri, config)
        if stage is None:
            logger.debug('no shader stage for %s', di.uri)
            return []
        command = build_command(self.host.validator_path, stage, config)
        text = await di.document.get_text()
        start = time.perf_counter()
        output = await self.host.run_validator(command, text)
        self.telemetry.add_validation_measurement(time.perf_counter() - start)
        diagnostics = parse_validator_output(
            output, split_lines(text), config.diagnostics.mark_the_whole_line)
        logger.debug('validated %s as %s: %d diagnostics', di.uri, stage, len(diagnostics))
        return diagnostics

    async def _produce_diagnostics(self, uri: str, version: DiagnosticVersion) -> list[lsp.Diagnostic]:
        di = self.registry.get(uri)
        diagnostics = await self.validate(di)
        self._deliver(di, version, diagnostics)
        return diagnostics

    def _deliver(self, di: DocumentInfo, version: DiagnosticVersion,
                 diagnostics: list[lsp.Diagnostic]) -> None:
        # The record may have been evicted while the validator was running.
        if self.delivery is not None and self.registry.find(di.uri) is di:
            self.delivery.deliver(di, version, diagnostics)

    async def analyze_document(self, di: DocumentInfo, delay: float = 0) -> list[lsp.Diagnostic] | None:
        """Bring the diagnostics of *di* up to date, if it should be validated.

        With a *delay* (seconds) the request is dropped when the document
        changed again during the wait; the newer change brings its own request.
        """
        if not self.should_validate(di):
            return None
        version = self.current_version(di)
        if delay > 0:
            await asyncio.sleep(delay)
            if self.current_version(di) != version:
                logger.debug('skipping superseded validation of %s at %r', di.uri, version)
                return None
        diagnostics = await di.diagnostics.get_diagnostics(version)
        # No-op unless the display version was reset after the result was cached.
        self._deliver(di, version, diagnostics)
        return diagnostics

    async def analyze_all_documents(self) -> None:
        infos = list(self.registry)
        results = await asyncio.gather(
            *(self.analyze_document(di) for di in infos), return_exceptions=True)
        for di, result in zip(infos, results):
            if isinstance(result, Exception):
                logger.error('validation of %s failed', di.uri, exc_info=result)

    # ------------------------------------------------------------------
    # Retraction
    # ------------------------------------------------------------------

    def retract(self, di: DocumentInfo) -> None:
        if self.delivery is not None:
            self.delivery.retract(di, self.current_version(di))

    def _retract_shown(self, predicate: Callable[[DocumentInfo], bool]) -> None:
        for di in self.registry:
            if di.diagnostics.visible and predicate(di):
                self.retract(di)

    def remove_invalid_documents(self) -> None:
        """Forget closed documents that no longer have a shader extension."""
        for di in self.registry:
            if not di.document.is_opened() and not is_shader_uri(di.uri, self.configuration):
                if self.mode == PUSH and di.diagnostics.visible:
                    self.retract(di)
                self.registry.remove(di.uri)

    # ------------------------------------------------------------------
    # Document events
    # ------------------------------------------------------------------

    def _delay(self) -> float:
        return self.configuration.diagnostics.delay / 1000

    async def did_open(self, uri: str) -> None:
        di = self.registry.get(uri)
        di.document.set_opened(True)
        di.document.increase_version()
        await self.analyze_document(di)

    async def did_change(self, uri: str) -> None:
        di = self.registry.get(uri)
        di.document.increase_version()
        await self.analyze_document(di, delay=self._delay())

    async def did_close(self, uri: str) -> None:
        di = self.registry.get(uri)
        di.document.set_opened(False)
        # Unsaved edits are gone; the text now comes from disk.
        di.document.increase_version()
        if not self.configuration.diagnostics.workspace:
            if self.mode == PUSH:
                self.retract(di)
            return
        await self.analyze_document(di)

    # ------------------------------------------------------------------
    # File-system events (reported by the client's watcher)
    # ------------------------------------------------------------------

    async def did_create_file(self, uri: str) -> None:
        di = self.registry.get(uri)
        if not di.document.is_opened():
            await self.analyze_document(di)

    async def did_change_file(self, uri: str) -> None:
        di = self.registry.get(uri)
        if not di.document.is_opened():
            di.document.increase_version()
            await self.analyze_document(di)

    async def did_delete_file(self, uri: str) -> None:
        di = self.registry.find(uri)
        if di is None or di.document.is_opened():
            return
        if self.mode == PUSH and self.configuration.diagnostics.workspace:
            self.retract(di)
        self.registry.remove(uri)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    async def update_configuration(self, new: Configuration) -> None:
        old, self.configuration = self.configuration, new
        validation_changed = is_validation_required(old, new)
        workspace_changed = old.diagnostics.workspace != new.diagnostics.workspace
        if not validation_changed and not workspace_changed:
            return
        if validation_changed:
            self.configuration_version += 1
            logger.debug('configuration version is now %d', self.configuration_version)
        if stage_mapping_changed(old, new):
            self.remove_invalid_documents()

        if self.mode == PULL:
            self.delivery.refresh()
            return
        if self.mode != PUSH:
            return
        if not new.diagnostics.enable:
            if old.diagnostics.enable:
                self._retract_shown(lambda di: True)
            return
        if workspace_changed and not new.diagnostics.workspace:
            self._retract_shown(lambda di: not di.document.is_opened())
        elif workspace_changed:
            # Closed documents were retracted; let their results be pushed again.
            for di in self.registry:
                if not di.document.is_opened():
                    di.diagnostics.set_display_version(None)
        await self.analyze_all_documents()

    # ------------------------------------------------------------------
    # Pull requests
    # ------------------------------------------------------------------

    async def pull_document(self, uri: str, previous_result_id: str | None = None):
        """Answer a ``textDocument/diagnostic`` request for *uri*."""
        di = self.registry.get(uri)
        version = self.current_version(di)
        if self.should_validate(di):
            diagnostics = await di.diagnostics.get_diagnostics(version)
        else:
            diagnostics = []
        state = di.diagnostics
        if (previous_result_id is not None
                and previous_result_id == state.result_id
                and state.get_display_version() == version):
            return lsp.RelatedUnchangedDocumentDiagnosticReport(result_id=state.result_id)
        state.increase_sequence()
        state.set_display_version(version)
        return lsp.RelatedFullDocumentDiagnosticReport(items=diagnostics, result_id=state.result_id)

    async def pull_workspace(self, previous_result_ids: dict[str, str] | None = None):
        """Answer a ``workspace/diagnostic`` request.

        Open documents are left to ``textDocument/diagnostic``; a failure on
        one document drops it from the report instead of failing the request.
        """
        previous_result_ids = previous_result_ids or {}
        config = self.configuration
        if not (self.host.is_desktop() and config.diagnostics.enable and config.diagnostics.workspace):
            return lsp.WorkspaceDiagnosticReport(items=[])
        infos = [
            di for di in self.registry
            if not di.document.is_opened() and stage_for_uri(di.uri, config) is not None
        ]
        reports = await asyncio.gather(
            *(self.pull_document(di.uri, previous_result_ids.get(di.uri)) for di in infos),
            return_exceptions=True,
        )
        items = []
        for di, report in zip(infos, reports):
            if isinstance(report, Exception):
                logger.error('validation of %s failed', di.uri, exc_info=report)
            elif isinstance(report, lsp.RelatedUnchangedDocumentDiagnosticReport):
                items.append(lsp.WorkspaceUnchangedDocumentDiagnosticReport(
                    uri=di.uri, result_id=report.result_id, version=None))
            else:
                items.append(lsp.WorkspaceFullDocumentDiagnosticReport(
                    uri=di.uri, items=report.items, result_id=report.result_id, version=None))
        return lsp.WorkspaceDiagnosticReport(items=items)
