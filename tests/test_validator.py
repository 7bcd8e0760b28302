"""Tests for glsllsp.validator and glsllsp.host — validator discovery and invocation."""
from __future__ import annotations

import asyncio
import stat
import sys

from glsllsp.config import CompilerConfiguration, Configuration
from glsllsp.host import DesktopHost, EmbeddedHost
from glsllsp.validator import ENV_VAR, build_command, find_validator, run_validator

# Stand-in validator: echoes stdin back as a single diagnostic.
ECHO_SCRIPT = (
    "import sys; text = sys.stdin.read(); "
    "print(\"ERROR: 0:1: '\" + text.strip() + \"' : echoed\"); sys.exit(2)"
)


def _make_executable(path):
    path.write_text('#!/bin/sh\n', encoding='utf-8')
    path.chmod(path.stat().st_mode | stat.S_IXUSR)
    return path


class TestBuildCommand:
    def test_minimal(self):
        assert build_command('glslangValidator', 'frag', Configuration()) == [
            'glslangValidator', '--stdin', '-C', '-S', 'frag',
        ]

    def test_target_environment_and_version(self):
        config = Configuration(compiler=CompilerConfiguration(
            target_environment='vulkan1.2', glsl_version='460'))
        assert build_command('/opt/glslangValidator', 'comp', config) == [
            '/opt/glslangValidator', '--stdin', '-C', '-S', 'comp',
            '--target-env', 'vulkan1.2', '--glsl-version', '460',
        ]


class TestFindValidator:
    def test_env_var_wins(self, tmp_path, monkeypatch):
        exe = _make_executable(tmp_path / 'my-validator')
        monkeypatch.setenv(ENV_VAR, str(exe))
        assert find_validator() == str(exe)

    def test_searches_path(self, tmp_path, monkeypatch):
        exe = _make_executable(tmp_path / 'glslangValidator')
        monkeypatch.delenv(ENV_VAR, raising=False)
        monkeypatch.setenv('PATH', str(tmp_path))
        assert find_validator() == str(exe)

    def test_missing(self, tmp_path, monkeypatch):
        monkeypatch.setenv(ENV_VAR, str(tmp_path / 'nope'))
        monkeypatch.setenv('PATH', str(tmp_path))
        assert find_validator() is None


class TestRunValidator:
    def test_feeds_stdin_and_returns_stdout(self):
        output = asyncio.run(run_validator([sys.executable, '-c', ECHO_SCRIPT], 'void main() {}'))
        # A non-zero exit status is not an error.
        assert output.strip() == "ERROR: 0:1: 'void main() {}' : echoed"


class TestHosts:
    def test_desktop_host_reads_files(self, tmp_path):
        shader = tmp_path / 'a.frag'
        shader.write_text('void main() {}\n', encoding='utf-8')
        host = DesktopHost(validator_path=None)
        try:
            text = asyncio.run(host.get_document_content(shader.as_uri()))
        finally:
            host.shutdown()
        assert text == 'void main() {}\n'
        assert host.is_desktop()
        assert not host.is_validator_executable()

    def test_desktop_host_runs_validator(self):
        host = DesktopHost(validator_path=sys.executable)
        try:
            output = asyncio.run(host.run_validator([sys.executable, '-c', ECHO_SCRIPT], 'x'))
        finally:
            host.shutdown()
        assert "'x' : echoed" in output
        assert host.is_validator_executable()

    def test_embedded_host_is_inert(self):
        host = EmbeddedHost()
        assert not host.is_desktop()
        assert not host.is_validator_executable()
        assert asyncio.run(host.get_document_content('file:///a.frag')) == ''
        assert asyncio.run(host.run_validator(['glslangValidator'], 'x')) == ''

    def test_discover(self, tmp_path, monkeypatch):
        monkeypatch.delenv(ENV_VAR, raising=False)
        monkeypatch.setenv('PATH', str(tmp_path))
        host = DesktopHost.discover()
        try:
            assert host.validator_path is None
        finally:
            host.shutdown()
