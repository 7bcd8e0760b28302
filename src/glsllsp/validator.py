"""
glslangValidator discovery and invocation.

The validator reads the shader from stdin (``--stdin``) and needs the stage
spelled out with ``-S`` because there is no file name to infer it from.
Diagnostics are printed on stdout; the exit code only says whether there were
errors, so it is ignored.
"""
from __future__ import annotations

import asyncio
import logging
import os
import shutil
import subprocess
from concurrent.futures import Executor

from glsllsp.config import Configuration

logger = logging.getLogger(__name__)

ENV_VAR = 'GLSLLSP_VALIDATOR'
CANDIDATES = ('glslangValidator', 'glslang')

# Seconds before a validator run is considered hung.
TIMEOUT = 30


def find_validator() -> str | None:
    """Return the path of a usable validator executable, or None."""
    explicit = os.environ.get(ENV_VAR, '')
    if explicit:
        if os.path.isfile(explicit) and os.access(explicit, os.X_OK):
            return explicit
        logger.warning('%s=%r is not an executable file', ENV_VAR, explicit)
    for candidate in CANDIDATES:
        path = shutil.which(candidate)
        if path:
            return path
    return None


def build_command(executable: str, stage: str, config: Configuration) -> list[str]:
    """Return the argv used to validate a *stage* shader fed through stdin."""
    command = [executable, '--stdin', '-C', '-S', stage]
    if config.compiler.target_environment:
        command += ['--target-env', config.compiler.target_environment]
    if config.compiler.glsl_version:
        command += ['--glsl-version', config.compiler.glsl_version]
    return command


def _run(command: list[str], text: str) -> str:
    logger.debug('running %s', ' '.join(command))
    result = subprocess.run(
        command,
        input=text,
        capture_output=True,
        text=True,
        encoding='utf-8',
        errors='replace',
        timeout=TIMEOUT,
    )
    logger.debug('%s exited with %d', command[0], result.returncode)
    if result.stderr:
        logger.debug('%s stderr: %s', command[0], result.stderr.strip())
    return result.stdout


async def run_validator(command: list[str], text: str,
                        executor: Executor | None = None) -> str:
    """Run *command* with *text* on stdin and return its stdout.

    The process runs in *executor* (the loop's default executor when None)
    so the event loop stays free.  ``OSError`` from spawning and
    ``subprocess.TimeoutExpired`` propagate to the caller.
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(executor, _run, command, text)
