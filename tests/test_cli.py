"""Tests for glsllsp.cli argument parsing."""
from __future__ import annotations

import pytest

from glsllsp.cli import _build_parser


class TestParser:
    def test_defaults(self):
        args = _build_parser().parse_args([])
        assert args.tcp is None
        assert not args.stdio
        assert not args.embedded
        assert args.log_level == 'WARNING'

    def test_tcp_and_embedded(self):
        args = _build_parser().parse_args(['--tcp', '2087', '--embedded', '--log-level', 'DEBUG'])
        assert args.tcp == 2087
        assert args.embedded
        assert args.log_level == 'DEBUG'

    def test_stdio_and_tcp_are_exclusive(self):
        with pytest.raises(SystemExit):
            _build_parser().parse_args(['--stdio', '--tcp', '1'])

    def test_help_names_validator_variable(self):
        assert 'GLSLLSP_VALIDATOR' in _build_parser().format_help()
