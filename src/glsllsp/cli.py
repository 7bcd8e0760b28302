"""
glsllsp command line.

Serves LSP over stdio unless ``--tcp PORT`` is given.  Diagnostics come from
glslangValidator: the executable named by ``$GLSLLSP_VALIDATOR`` when set,
otherwise the first ``glslangValidator`` or ``glslang`` on ``PATH``.  Without
one the server still runs and reports nothing.
"""
from __future__ import annotations

import argparse
import sys

from glsllsp.validator import ENV_VAR


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog='glsllsp',
        description=(
            'GLSL language server. Runs glslangValidator on shader files '
            f'(set ${ENV_VAR} to choose the executable) and reports its output '
            'as LSP diagnostics.'
        ),
    )
    transport = p.add_mutually_exclusive_group()
    transport.add_argument(
        '--stdio',
        action='store_true',
        default=False,
        help='Speak LSP on stdin/stdout (the default)',
    )
    transport.add_argument(
        '--tcp',
        metavar='PORT',
        type=int,
        default=None,
        help='Listen on 127.0.0.1:PORT, e.g. to attach a debugger to the server',
    )
    p.add_argument(
        '--embedded',
        action='store_true',
        default=False,
        help='Never read shader files from disk or start glslangValidator; '
             'documents are tracked but not validated',
    )
    p.add_argument(
        '--version',
        action='store_true',
        default=False,
        help='Print the glsllsp version and exit',
    )
    p.add_argument(
        '--log-level',
        metavar='LEVEL',
        default='WARNING',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help='stderr log level; DEBUG shows every validator command line (default: WARNING)',
    )
    return p


def glsllsp() -> None:
    """Entry point for the ``glsllsp`` command."""
    import logging
    args = _build_parser().parse_args()
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(levelname)s %(name)s: %(message)s',
        stream=sys.stderr,
    )

    from glsllsp import __version__
    from glsllsp.server import server

    if args.version:
        print(f'glsllsp {__version__}')
        sys.exit(0)

    server.embedded = args.embedded

    if args.tcp is not None:
        server.start_tcp('127.0.0.1', args.tcp)
    else:
        server.start_io()


if __name__ == '__main__':
    glsllsp()
