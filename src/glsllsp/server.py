"""
glsllsp Language Server.

Registers LSP capabilities and forwards document, file-system and
configuration events to the :class:`~glsllsp.engine.DiagnosticEngine`.
"""
from __future__ import annotations

import asyncio
import functools
import logging

from pygls import uris
from pygls.lsp.server import LanguageServer
from lsprotocol import types as lsp

from glsllsp import __version__
from glsllsp.config import SECTION, Configuration, is_shader_uri, read_project_config
from glsllsp.delivery import PULL, choose_delivery
from glsllsp.engine import DiagnosticEngine
from glsllsp.handlers.diagnostics import SOURCE
from glsllsp.host import DesktopHost, EmbeddedHost
from glsllsp.telemetry import error_event

logger = logging.getLogger(__name__)


class GlslLanguageServer(LanguageServer):
    """pygls server holding the session's engine.

    The engine is rebuilt on ``initialize`` once the client capabilities
    (push or pull diagnostics) and workspace root are known.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.embedded = False
        self.workspace_root: str | None = None
        self.supports_configuration = False
        self.engine = DiagnosticEngine(EmbeddedHost())
        self._tasks: set[asyncio.Task] = set()

    def open_text(self, uri: str) -> str | None:
        doc = self.workspace.text_documents.get(uri)
        return doc.source if doc is not None else None

    def spawn(self, coro) -> asyncio.Task:
        """Run *coro* in the background; failures are logged and reported."""
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error('background task failed', exc_info=exc)
            self.send_telemetry(error_event(exc))

    def send_telemetry(self, payload: dict | None) -> None:
        if payload is None:
            return
        try:
            self.protocol.notify(lsp.TELEMETRY_EVENT, payload)
        except Exception:
            # Protocol not connected (e.g. during unit tests)
            logger.debug('could not send telemetry event', exc_info=True)

    def request_refresh(self) -> None:
        self.workspace_diagnostic_refresh(None)


server = GlslLanguageServer(
    'glsllsp', __version__,
    text_document_sync_kind=lsp.TextDocumentSyncKind.Incremental,
)


def _reports_errors(func):
    """Send unexpected request-handler failures to telemetry, then re-raise."""
    @functools.wraps(func)
    async def wrapper(params):
        try:
            return await func(params)
        except Exception as e:
            server.send_telemetry(error_event(e))
            raise
    return wrapper


def _apply_log_level(raw: str | None) -> None:
    """Set the root logger level from a string like 'debug', 'warning', etc."""
    if not raw or not isinstance(raw, str):
        return
    level = getattr(logging, raw.upper(), None)
    if isinstance(level, int):
        logging.getLogger().setLevel(level)


def _configuration_from(settings, workspace_root: str | None) -> Configuration:
    """Client settings win; otherwise the project file; otherwise defaults."""
    if isinstance(settings, dict) and settings:
        _apply_log_level(settings.get('logLevel'))
        return Configuration.from_settings(settings)
    return read_project_config(workspace_root) or Configuration()


async def _refresh_configuration(settings=None) -> None:
    if server.supports_configuration:
        result = await server.workspace_configuration_async(
            lsp.ConfigurationParams(items=[lsp.ConfigurationItem(section=SECTION)])
        )
        settings = result[0] if result else None
    configuration = _configuration_from(settings, server.workspace_root)
    await server.engine.update_configuration(configuration)


def _shader_glob(configuration: Configuration) -> str:
    exts = sorted({ext.lstrip('.') for ext in configuration.file_extensions.all_extensions()})
    return '**/*.{' + ','.join(exts) + '}'


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

@server.feature(lsp.INITIALIZE)
def on_initialize(params: lsp.InitializeParams):
    workspace_root = None
    if params.root_uri:
        workspace_root = uris.to_fs_path(params.root_uri)
    server.workspace_root = workspace_root

    capabilities = params.capabilities
    server.supports_configuration = bool(
        capabilities.workspace is not None and capabilities.workspace.configuration)

    opts = getattr(params, 'initialization_options', None)
    raw_level = opts.get('logLevel') if isinstance(opts, dict) else getattr(opts, 'logLevel', None)
    _apply_log_level(raw_level)

    host = EmbeddedHost() if server.embedded else DesktopHost.discover()
    delivery = choose_delivery(
        capabilities, server.text_document_publish_diagnostics, server.request_refresh)
    if delivery is None:
        logger.warning('client supports neither push nor pull diagnostics')
    server.engine = DiagnosticEngine(
        host,
        delivery=delivery,
        get_open_text=server.open_text,
        configuration=_configuration_from(opts, workspace_root),
    )
    logger.debug('initialized: root=%s mode=%s', workspace_root, server.engine.mode)


@server.feature(lsp.INITIALIZED)
async def on_initialized(params: lsp.InitializedParams):
    ws = server.client_capabilities.workspace
    registrations = []
    if ws is not None and ws.did_change_configuration is not None \
            and ws.did_change_configuration.dynamic_registration:
        registrations.append(lsp.Registration(
            id='glsllsp-configuration',
            method=lsp.WORKSPACE_DID_CHANGE_CONFIGURATION,
            register_options=lsp.DidChangeConfigurationRegistrationOptions(section=SECTION),
        ))
    if ws is not None and ws.did_change_watched_files is not None \
            and ws.did_change_watched_files.dynamic_registration:
        registrations.append(lsp.Registration(
            id='glsllsp-watched-files',
            method=lsp.WORKSPACE_DID_CHANGE_WATCHED_FILES,
            register_options=lsp.DidChangeWatchedFilesRegistrationOptions(watchers=[
                lsp.FileSystemWatcher(glob_pattern=_shader_glob(server.engine.configuration)),
            ]),
        ))
    if registrations:
        await server.client_register_capability_async(
            lsp.RegistrationParams(registrations=registrations))
    if server.supports_configuration:
        await _refresh_configuration()


@server.feature(lsp.SHUTDOWN)
def on_shutdown(params):
    server.send_telemetry(server.engine.telemetry.report(server.engine))
    host = server.engine.host
    if isinstance(host, DesktopHost):
        host.shutdown()


@server.feature(lsp.WORKSPACE_DID_CHANGE_CONFIGURATION)
def did_change_configuration(params: lsp.DidChangeConfigurationParams):
    settings = getattr(params, 'settings', None) or {}
    section = settings.get(SECTION) if isinstance(settings, dict) else None
    server.spawn(_refresh_configuration(section))


@server.feature(lsp.WORKSPACE_DID_CHANGE_WATCHED_FILES)
def did_change_watched_files(params: lsp.DidChangeWatchedFilesParams):
    engine = server.engine
    for change in params.changes:
        if not is_shader_uri(change.uri, engine.configuration):
            continue
        if change.type == lsp.FileChangeType.Created:
            server.spawn(engine.did_create_file(change.uri))
        elif change.type == lsp.FileChangeType.Changed:
            server.spawn(engine.did_change_file(change.uri))
        elif change.type == lsp.FileChangeType.Deleted:
            server.spawn(engine.did_delete_file(change.uri))


# ---------------------------------------------------------------------------
# Text document synchronisation
# ---------------------------------------------------------------------------

@server.feature(lsp.TEXT_DOCUMENT_DID_OPEN)
def did_open(params: lsp.DidOpenTextDocumentParams):
    server.spawn(server.engine.did_open(params.text_document.uri))


@server.feature(lsp.TEXT_DOCUMENT_DID_CHANGE)
def did_change(params: lsp.DidChangeTextDocumentParams):
    server.spawn(server.engine.did_change(params.text_document.uri))


@server.feature(lsp.TEXT_DOCUMENT_DID_CLOSE)
def did_close(params: lsp.DidCloseTextDocumentParams):
    server.spawn(server.engine.did_close(params.text_document.uri))


# ---------------------------------------------------------------------------
# Pull diagnostics
# ---------------------------------------------------------------------------

@server.feature(
    lsp.TEXT_DOCUMENT_DIAGNOSTIC,
    lsp.DiagnosticOptions(
        identifier=SOURCE,
        inter_file_dependencies=False,
        workspace_diagnostics=True,
    ),
)
@_reports_errors
async def document_diagnostic(params: lsp.DocumentDiagnosticParams):
    if server.engine.mode != PULL:
        return lsp.RelatedFullDocumentDiagnosticReport(items=[])
    return await server.engine.pull_document(
        params.text_document.uri, params.previous_result_id)


@server.feature(lsp.WORKSPACE_DIAGNOSTIC)
@_reports_errors
async def workspace_diagnostic(params: lsp.WorkspaceDiagnosticParams):
    if server.engine.mode != PULL:
        return lsp.WorkspaceDiagnosticReport(items=[])
    previous = {p.uri: p.value for p in params.previous_result_ids}
    return await server.engine.pull_workspace(previous)
