"""Shared fakes for the engine tests."""
from __future__ import annotations

import asyncio

import pytest

from glsllsp.config import Configuration, DiagnosticsConfiguration
from glsllsp.delivery import PullDelivery, PushDelivery
from glsllsp.engine import DiagnosticEngine
from glsllsp.host import Host

VALIDATOR = '/usr/bin/glslangValidator'


class FakeHost(Host):
    """Records validator runs instead of spawning processes.

    *output* is either the validator stdout or a callable mapping the shader
    text to it.  Events appended to ``gates`` hold back the next runs, one
    event per run, until they are set.
    """

    def __init__(self, output='', files=None, executable=True, desktop=True):
        self.output = output
        self.files = dict(files or {})
        self.executable = executable
        self.desktop = desktop
        self.commands: list[tuple[list[str], str]] = []
        self.reads: list[str] = []
        self.gates: list[asyncio.Event] = []

    def is_desktop(self):
        return self.desktop

    def is_validator_executable(self):
        return self.executable

    @property
    def validator_path(self):
        return VALIDATOR if self.executable else None

    async def get_document_content(self, uri):
        self.reads.append(uri)
        return self.files[uri]

    async def run_validator(self, command, text):
        self.commands.append((command, text))
        if self.gates:
            await self.gates.pop(0).wait()
        return self.output(text) if callable(self.output) else self.output


def quick_config(**diagnostics) -> Configuration:
    """Default configuration without the change debounce."""
    diagnostics.setdefault('delay', 0)
    return Configuration(diagnostics=DiagnosticsConfiguration(**diagnostics))


@pytest.fixture
def host():
    return FakeHost()


@pytest.fixture
def open_texts():
    return {}


@pytest.fixture
def published():
    return []


@pytest.fixture
def push_engine(host, open_texts, published):
    return DiagnosticEngine(
        host,
        delivery=PushDelivery(published.append),
        get_open_text=open_texts.get,
        configuration=quick_config(),
    )


@pytest.fixture
def refreshes():
    return []


@pytest.fixture
def pull_engine(host, open_texts, refreshes):
    return DiagnosticEngine(
        host,
        delivery=PullDelivery(lambda: refreshes.append(True)),
        get_open_text=open_texts.get,
        configuration=quick_config(),
    )
