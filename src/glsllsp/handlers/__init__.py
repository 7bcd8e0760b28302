"""handlers/__init__.py — re-export handler functions for convenience."""
from .diagnostics import build_diagnostic, parse_validator_output

__all__ = ['build_diagnostic', 'parse_validator_output']
