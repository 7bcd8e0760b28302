"""
Server configuration.

Settings come from the client's ``glsllsp`` configuration section, using the
same camelCase keys as the VS Code extension settings::

    {
      "diagnostics": {"enable": true, "markTheWholeLine": false,
                      "workspace": false, "delay": 300},
      "compiler": {"targetEnvironment": "", "glslVersion": ""},
      "fileExtensions": {"vertexShader": [".vert", ".vs"], ...}
    }

A ``.glsllsp.toml`` file in the workspace root with the same layout is used
when the client sends no settings.  Missing or malformed values fall back to
the defaults below.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

SECTION = 'glsllsp'
PROJECT_CONFIG_NAME = '.glsllsp.toml'

# Shader stage names as understood by ``glslangValidator -S``.
VERT = 'vert'
TESC = 'tesc'
TESE = 'tese'
GEOM = 'geom'
FRAG = 'frag'
COMP = 'comp'

STAGES = (VERT, TESC, TESE, GEOM, FRAG, COMP)


@dataclass(frozen=True)
class DiagnosticsConfiguration:
    enable: bool = True
    mark_the_whole_line: bool = False
    workspace: bool = False
    delay: int = 300           # milliseconds


@dataclass(frozen=True)
class CompilerConfiguration:
    target_environment: str = ''
    glsl_version: str = ''


@dataclass(frozen=True)
class FileExtensions:
    vertex_shader: tuple[str, ...] = ('.vert', '.vs')
    tessellation_control_shader: tuple[str, ...] = ('.tesc',)
    tessellation_evaluation_shader: tuple[str, ...] = ('.tese',)
    geometry_shader: tuple[str, ...] = ('.geom', '.gs')
    fragment_shader: tuple[str, ...] = ('.frag', '.fs')
    compute_shader: tuple[str, ...] = ('.comp',)
    general_shader: tuple[str, ...] = ('.glsl',)

    def stage_map(self) -> list[tuple[str, tuple[str, ...]]]:
        """Ordered ``(stage, extensions)`` pairs for the validatable stages."""
        return [
            (VERT, self.vertex_shader),
            (TESC, self.tessellation_control_shader),
            (TESE, self.tessellation_evaluation_shader),
            (GEOM, self.geometry_shader),
            (FRAG, self.fragment_shader),
            (COMP, self.compute_shader),
        ]

    def all_extensions(self) -> tuple[str, ...]:
        exts: list[str] = []
        for _, group in self.stage_map():
            exts.extend(group)
        exts.extend(self.general_shader)
        return tuple(exts)


@dataclass(frozen=True)
class Configuration:
    diagnostics: DiagnosticsConfiguration = field(default_factory=DiagnosticsConfiguration)
    compiler: CompilerConfiguration = field(default_factory=CompilerConfiguration)
    file_extensions: FileExtensions = field(default_factory=FileExtensions)

    @classmethod
    def from_settings(cls, settings) -> 'Configuration':
        """Build a configuration from a client settings mapping.

        Unknown keys are ignored; values of the wrong type are replaced by
        the default for that key.
        """
        if not isinstance(settings, dict):
            return cls()
        diag = _section(settings, 'diagnostics')
        comp = _section(settings, 'compiler')
        exts = _section(settings, 'fileExtensions')
        d, c, f = DiagnosticsConfiguration(), CompilerConfiguration(), FileExtensions()
        return cls(
            diagnostics=DiagnosticsConfiguration(
                enable=_bool(diag, 'enable', d.enable),
                mark_the_whole_line=_bool(diag, 'markTheWholeLine', d.mark_the_whole_line),
                workspace=_bool(diag, 'workspace', d.workspace),
                delay=_int(diag, 'delay', d.delay),
            ),
            compiler=CompilerConfiguration(
                target_environment=_str(comp, 'targetEnvironment', c.target_environment),
                glsl_version=_str(comp, 'glslVersion', c.glsl_version),
            ),
            file_extensions=FileExtensions(
                vertex_shader=_exts(exts, 'vertexShader', f.vertex_shader),
                tessellation_control_shader=_exts(
                    exts, 'tessellationControlShader', f.tessellation_control_shader),
                tessellation_evaluation_shader=_exts(
                    exts, 'tessellationEvaluationShader', f.tessellation_evaluation_shader),
                geometry_shader=_exts(exts, 'geometryShader', f.geometry_shader),
                fragment_shader=_exts(exts, 'fragmentShader', f.fragment_shader),
                compute_shader=_exts(exts, 'computeShader', f.compute_shader),
                general_shader=_exts(exts, 'generalShader', f.general_shader),
            ),
        )


# ---------------------------------------------------------------------------
# Settings coercion helpers
# ---------------------------------------------------------------------------

def _section(settings: dict, key: str) -> dict:
    value = settings.get(key)
    return value if isinstance(value, dict) else {}


def _bool(section: dict, key: str, default: bool) -> bool:
    value = section.get(key)
    return value if isinstance(value, bool) else default


def _int(section: dict, key: str, default: int) -> int:
    value = section.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return max(0, int(value))


def _str(section: dict, key: str, default: str) -> str:
    value = section.get(key)
    return value.strip() if isinstance(value, str) else default


def _exts(section: dict, key: str, default: tuple[str, ...]) -> tuple[str, ...]:
    value = section.get(key)
    if not isinstance(value, list):
        return default
    return tuple(v for v in value if isinstance(v, str) and v)


# ---------------------------------------------------------------------------
# Change classification
# ---------------------------------------------------------------------------

def stage_mapping_changed(old: Configuration, new: Configuration) -> bool:
    return old.file_extensions != new.file_extensions


def is_validation_required(old: Configuration, new: Configuration) -> bool:
    """Return True if *new* can produce different validator output than *old*."""
    return (
        old.diagnostics.enable != new.diagnostics.enable
        or old.diagnostics.mark_the_whole_line != new.diagnostics.mark_the_whole_line
        or old.compiler != new.compiler
        or stage_mapping_changed(old, new)
    )


def stage_for_uri(uri: str, config: Configuration) -> str | None:
    """Return the validator stage for *uri*, or None if it has no mapping."""
    for stage, exts in config.file_extensions.stage_map():
        if any(uri.endswith(ext) for ext in exts):
            return stage
    return None


def is_shader_uri(uri: str, config: Configuration) -> bool:
    """True for any configured shader extension, including general shaders."""
    return any(uri.endswith(ext) for ext in config.file_extensions.all_extensions())


# ---------------------------------------------------------------------------
# Project config file
# ---------------------------------------------------------------------------

def read_project_config(workspace_root: str | None) -> Configuration | None:
    """Parse ``.glsllsp.toml`` in *workspace_root*, or return None."""
    if not workspace_root:
        return None
    try:
        import tomllib  # Python 3.11+
    except ImportError:
        try:
            import tomli as tomllib  # fallback
        except ImportError:
            return None

    config_path = Path(workspace_root) / PROJECT_CONFIG_NAME
    if not config_path.exists():
        return None

    try:
        data = tomllib.loads(config_path.read_text(encoding='utf-8'))
    except (OSError, tomllib.TOMLDecodeError):
        logger.warning('ignoring unreadable %s', config_path, exc_info=True)
        return None
    return Configuration.from_settings(data)
