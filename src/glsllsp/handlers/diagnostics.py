"""
Convert glslangValidator output into LSP Diagnostic objects.

glslang prints one message per line, e.g.::

    ERROR: 0:12: 'foo' : undeclared identifier
    WARNING: 0:3: '#extension' : extension not supported: GL_FOO
    ERROR: 1 compilation errors.  No code generated.

The reported columns are missing or unreliable, so the range is re-derived
from the quoted snippet: it is searched for on the (comment-stripped) source
line and used only when it occurs exactly once.  Otherwise the whole trimmed
line is marked.
"""
from __future__ import annotations

import re

from lsprotocol import types as lsp

SOURCE = 'glslang'

# Validator noise that is never worth showing to the user.
IGNORED_MESSAGES = (
    'No code generated',
    'Missing entry point',
    'compilation terminated',
)

# Group names: severity, line, snippet, description.  The ``0:`` before the
# line number is the string index glslang assigns to stdin.
_OUTPUT_LINE_RE = re.compile(
    r"^(?P<severity>[A-Za-z][\w -]*?)\s*:\s*"
    r"(?:(?:\d+|\S+?):(?P<line>\d+):\s*)?"
    r"(?:'(?P<snippet>.*?)'\s*:\s*)?"
    r"(?P<description>.+)$"
)

_IDENTIFIER_RE = re.compile(r'^\w+$')

# Block comments closed on this line, a block comment running past the end of
# the line, and line comments.
_COMMENT_RE = re.compile(r'/\*.*?\*/|/\*.*$|//.*$')

_SEVERITIES = (
    ('ERROR', lsp.DiagnosticSeverity.Error),
    ('WARNING', lsp.DiagnosticSeverity.Warning),
    ('UNIMPLEMENTED', lsp.DiagnosticSeverity.Information),
    ('NOTE', lsp.DiagnosticSeverity.Hint),
)


def get_severity(token: str) -> lsp.DiagnosticSeverity | None:
    upper = token.upper()
    for needle, severity in _SEVERITIES:
        if needle in upper:
            return severity
    return None


def is_ignored(description: str) -> bool:
    return any(msg in description for msg in IGNORED_MESSAGES)


def strip_comments(line: str) -> str:
    """Blank out comments on *line*, keeping every column where it was."""
    return _COMMENT_RE.sub(lambda m: ' ' * len(m.group(0)), line)


def _find_snippet(line: str, snippet: str) -> list[re.Match]:
    if _IDENTIFIER_RE.match(snippet):
        pattern = rf'\b{snippet}\b'
    else:
        # Used verbatim, regex metacharacters included.
        pattern = snippet
    try:
        return list(re.finditer(pattern, line))
    except re.error:
        return []


def _trimmed_range(line_index: int, line: str) -> lsp.Range:
    start = len(line) - len(line.lstrip())
    end = len(line.rstrip())
    return lsp.Range(
        start=lsp.Position(line=line_index, character=start),
        end=lsp.Position(line=line_index, character=max(start, end)),
    )


def get_range(
    line_index: int,
    line: str,
    snippet: str | None,
    mark_whole_line: bool,
) -> lsp.Range:
    if mark_whole_line:
        return lsp.Range(
            start=lsp.Position(line=line_index, character=0),
            end=lsp.Position(line=line_index, character=len(line)),
        )
    if snippet:
        matches = _find_snippet(strip_comments(line), snippet)
        if len(matches) == 1:
            m = matches[0]
            return lsp.Range(
                start=lsp.Position(line=line_index, character=m.start()),
                end=lsp.Position(line=line_index, character=m.end()),
            )
    return _trimmed_range(line_index, line)


def build_diagnostic(
    output_line: str,
    source_lines: list[str],
    mark_whole_line: bool = False,
) -> lsp.Diagnostic | None:
    """Return the diagnostic described by one line of validator output, if any."""
    m = _OUTPUT_LINE_RE.match(output_line.strip())
    if not m:
        return None
    description = m.group('description').strip()
    if is_ignored(description):
        return None

    line_index = int(m.group('line')) - 1 if m.group('line') else 0
    if not 0 <= line_index < len(source_lines):
        line_index = 0
    line = source_lines[line_index] if source_lines else ''

    snippet = m.group('snippet') or None
    message = f"'{snippet}' : {description}" if snippet else description

    return lsp.Diagnostic(
        range=get_range(line_index, line, snippet, mark_whole_line),
        message=message,
        severity=get_severity(m.group('severity')),
        source=SOURCE,
    )


def parse_validator_output(
    output: str,
    source_lines: list[str],
    mark_whole_line: bool = False,
) -> list[lsp.Diagnostic]:
    """Return LSP ``Diagnostic`` objects for every message in *output*."""
    diags: list[lsp.Diagnostic] = []
    for row in output.splitlines():
        diag = build_diagnostic(row, source_lines, mark_whole_line)
        if diag is not None:
            diags.append(diag)
    return diags
