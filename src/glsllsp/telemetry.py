"""
Telemetry payloads sent to the client via ``telemetry/event``.

Two kinds of event are produced: a usage ``report`` (sent on shutdown) and an
``error`` event for any exception escaping a request handler.  Stack traces
have every filesystem path replaced by ``<path>`` before leaving the server.
"""
from __future__ import annotations

import logging
import re
import traceback
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from glsllsp.engine import DiagnosticEngine

logger = logging.getLogger(__name__)

_PATH_RE = re.compile(r'(?:[a-zA-Z]:)?(?:[\\/][^\\/:*?"<>|\s]+)+[\\/]?')


def redact_paths(text: str) -> str:
    return _PATH_RE.sub('<path>', text)


def error_event(error: BaseException | str) -> dict | None:
    """Return an ``error`` telemetry payload for *error*, or None."""
    if isinstance(error, BaseException):
        stack = ''.join(traceback.format_exception(type(error), error, error.__traceback__))
        return _error_payload(redact_paths(str(error)), type(error).__name__,
                              redact_paths(stack))
    if isinstance(error, str):
        return _error_payload(redact_paths(error))
    return None


def _error_payload(message: str, name: str = '', stack_trace: str = '') -> dict:
    return {
        'type': 'error',
        'stringData': {
            'name': name,
            'message': message,
            'stackTrace': stack_trace,
        },
        'numberData': {},
    }


class Telemetry:
    """Validation counters for the usage report."""

    def __init__(self):
        self.validation_count = 0
        self.validation_time = 0.0

    def add_validation_measurement(self, seconds: float) -> None:
        self.validation_count += 1
        self.validation_time += seconds

    def report(self, engine: 'DiagnosticEngine') -> dict:
        document_count = 0
        loaded = 0
        length_sum = 0
        for di in engine.registry:
            document_count += 1
            if di.document.length is not None:
                length_sum += di.document.length
                loaded += 1
        config = engine.configuration
        return {
            'type': 'report',
            'stringData': {
                'configurationTargetEnvironment': config.compiler.target_environment,
                'configurationGlslVersion': config.compiler.glsl_version,
            },
            'numberData': {
                'documentCount': document_count,
                'averageDocumentLength': length_sum / loaded if loaded else 0,
                'configurationDiagnosticsEnabled': int(config.diagnostics.enable),
                'configurationWorkspaceDiagnostics': int(config.diagnostics.workspace),
                'configurationMarkTheWholeLine': int(config.diagnostics.mark_the_whole_line),
                'glslangExecutable': int(engine.host.is_validator_executable()),
                'validationCount': self.validation_count,
                'averageValidationTime': (self.validation_time / self.validation_count
                                          if self.validation_count else 0),
            },
        }
