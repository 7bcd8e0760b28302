"""glsllsp – GLSL diagnostics language server backed by glslangValidator."""
try:
    from importlib.metadata import version, PackageNotFoundError
    try:
        __version__ = version('glsllsp')
    except PackageNotFoundError:
        __version__ = '0.0.0.dev0'
except ImportError:
    __version__ = '0.0.0.dev0'
