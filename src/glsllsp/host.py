"""
Hosting environments.

A :class:`DesktopHost` may touch the file system and spawn the validator.
An :class:`EmbeddedHost` (a sandboxed or browser-like deployment) can do
neither; documents are tracked and versioned as usual, but reading closed
documents and validating return empty results.
"""
from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from pygls import uris

from glsllsp import validator

logger = logging.getLogger(__name__)


class Host:
    """Interface shared by both hosting environments."""

    def is_desktop(self) -> bool:
        raise NotImplementedError

    def is_validator_executable(self) -> bool:
        raise NotImplementedError

    @property
    def validator_path(self) -> str | None:
        return None

    async def get_document_content(self, uri: str) -> str:
        raise NotImplementedError

    async def run_validator(self, command: list[str], text: str) -> str:
        raise NotImplementedError


class DesktopHost(Host):
    """File system access plus validator processes run in a thread pool."""

    def __init__(self, validator_path: str | None = None, max_workers: int = 2):
        self._validator_path = validator_path
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix='glsllsp-validate')

    @classmethod
    def discover(cls) -> 'DesktopHost':
        path = validator.find_validator()
        if path is None:
            logger.info('glslangValidator not found; diagnostics are disabled')
        else:
            logger.info('using validator %s', path)
        return cls(validator_path=path)

    def is_desktop(self) -> bool:
        return True

    def is_validator_executable(self) -> bool:
        return self._validator_path is not None

    @property
    def validator_path(self) -> str | None:
        return self._validator_path

    async def get_document_content(self, uri: str) -> str:
        path = uris.to_fs_path(uri) or uri
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._executor,
            lambda: Path(path).read_text(encoding='utf-8', errors='replace'),
        )

    async def run_validator(self, command: list[str], text: str) -> str:
        return await validator.run_validator(command, text, self._executor)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False)


class EmbeddedHost(Host):
    """No file system, no subprocesses."""

    def is_desktop(self) -> bool:
        return False

    def is_validator_executable(self) -> bool:
        return False

    async def get_document_content(self, uri: str) -> str:
        return ''

    async def run_validator(self, command: list[str], text: str) -> str:
        return ''
