"""Tests for glsllsp.document — per-document state and the registry."""
from __future__ import annotations

import asyncio

import pytest

from glsllsp.document import (
    DiagnosticVersion,
    DocumentContent,
    DocumentDiagnostics,
    DocumentInfo,
    DocumentRegistry,
)
from glsllsp.exceptions import DocumentStateError

URI = 'file:///work/shader.frag'


class DiskReader:
    def __init__(self, text: str):
        self.text = text
        self.reads = 0

    async def __call__(self, uri: str) -> str:
        self.reads += 1
        await asyncio.sleep(0)
        return self.text


class TestDocumentContent:
    def test_initial_state(self):
        content = DocumentContent(URI, lambda uri: None, DiskReader(''))
        assert content.version == 1
        assert not content.is_opened()
        assert content.length is None

    def test_increase_version(self):
        content = DocumentContent(URI, lambda uri: None, DiskReader(''))
        assert content.increase_version() == 2
        assert content.version == 2

    def test_open_document_uses_live_text(self):
        async def scenario():
            reader = DiskReader('on disk')
            content = DocumentContent(URI, {URI: 'in editor'}.get, reader)
            content.set_opened(True)
            assert await content.get_text() == 'in editor'
            assert reader.reads == 0
            assert content.length == len('in editor')
        asyncio.run(scenario())

    def test_open_document_missing_from_table_raises(self):
        async def scenario():
            content = DocumentContent(URI, {}.get, DiskReader('on disk'))
            content.set_opened(True)
            with pytest.raises(DocumentStateError):
                await content.get_text()
        asyncio.run(scenario())

    def test_closed_document_read_once_per_version(self):
        async def scenario():
            reader = DiskReader('void main() {}')
            content = DocumentContent(URI, {}.get, reader)
            texts = await asyncio.gather(content.get_text(), content.get_text())
            assert texts == ['void main() {}'] * 2
            await content.get_text()
            assert reader.reads == 1
            content.increase_version()
            reader.text = 'void main() { }'
            assert await content.get_text() == 'void main() { }'
            assert reader.reads == 2
        asyncio.run(scenario())


class TestDocumentDiagnostics:
    def test_sequence_and_display_version(self):
        async def produce(version):
            return []
        state = DocumentDiagnostics(URI, produce)
        assert state.sequence == 0
        assert state.get_display_version() is None
        assert state.increase_sequence() == 1
        assert state.result_id == '1'
        state.set_display_version(DiagnosticVersion(2, 1))
        assert state.display_version == (2, 1)

    def test_get_diagnostics_caches_per_version(self):
        async def scenario():
            calls = []

            async def produce(version):
                calls.append(version)
                return [f'diag@{version.content_version}']

            state = DocumentDiagnostics(URI, produce)
            assert await state.get_diagnostics(DiagnosticVersion(3, 2)) == ['diag@3']
            assert await state.get_diagnostics(DiagnosticVersion(3, 2)) == ['diag@3']
            assert await state.get_diagnostics(DiagnosticVersion(4, 2)) == ['diag@4']
            assert calls == [DiagnosticVersion(3, 2), DiagnosticVersion(4, 2)]
        asyncio.run(scenario())


class TestDocumentRegistry:
    def _registry(self):
        async def produce(version):
            return []

        def factory(uri):
            return DocumentInfo(
                uri=uri,
                document=DocumentContent(uri, {}.get, DiskReader('')),
                diagnostics=DocumentDiagnostics(uri, produce),
            )
        return DocumentRegistry(factory)

    def test_records_created_lazily_once(self):
        registry = self._registry()
        assert registry.find(URI) is None
        di = registry.get(URI)
        assert registry.get(URI) is di
        assert URI in registry
        assert len(registry) == 1

    def test_remove(self):
        registry = self._registry()
        di = registry.get(URI)
        assert registry.remove(URI) is di
        assert URI not in registry
        assert registry.remove(URI) is None
        assert registry.get(URI) is not di

    def test_iteration_tolerates_removal(self):
        registry = self._registry()
        for name in ('a.vert', 'b.frag', 'c.comp'):
            registry.get(f'file:///work/{name}')
        for di in registry:
            registry.remove(di.uri)
        assert len(registry) == 0
