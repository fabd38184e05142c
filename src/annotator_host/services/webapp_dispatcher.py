"""
Web-app request dispatching.

Serves the embedded web-apps of annotator modules:
- 'config' - post-installation configuration, finalized by /setConfig
- 'task' - per-task parameters, finalized by /setTaskParameters
- 'ext' - open-ended extras (visualizations, dictionary access, etc.)

Requests are of the form /{annotatorId}/{resource}, plus ?{taskId} for task
web-apps. Reserved resource names are answered by the host, names with a dot
are static resources packaged with the annotator, and everything else is
forwarded to the annotator itself.
"""

import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from importlib import resources
from typing import Any, BinaryIO
from urllib.parse import parse_qs, unquote_plus

from annotator_host.api.content_types import (
    ContentType,
    content_type_for_name,
    negotiate_content_type,
    with_charset,
)
from annotator_host.api.storage import AnnotatorStorage
from annotator_host.errors import (
    AnnotatorHostError,
    BadRequest,
    Forbidden,
    InternalError,
    InvalidConfiguration,
    NotFound,
    RequestException,
)
from annotator_host.models.descriptor import PluginDescriptor
from annotator_host.plugins.plugin_registry import PluginRegistry, RegistryEntry, RegistryKey

from .configurator import AsyncConfigurator
from .layer_reconciler import LayerReconciler

logger = logging.getLogger(__name__)

ENTRY_RESOURCE = "index.html"
GET_SCHEMA = "getSchema"
UTIL_JS = "util.js"
GET_STATUS = "getStatus"
GET_PERCENT_COMPLETE = "getPercentComplete"
GET_TASK_PARAMETERS = "getTaskParameters"
SET_CONFIG = "setConfig"
SET_TASK_PARAMETERS = "setTaskParameters"
TASK_ID_PARAMETER = "taskId"

HTML = with_charset("text/html")
JSON = with_charset("application/json")
TEXT = with_charset("text/plain")
JAVASCRIPT = with_charset("text/javascript")


class WebAppKind(Enum):
    """The web-apps an annotator may implement."""

    CONFIG = "config"
    TASK = "task"
    EXT = "ext"


@dataclass(frozen=True)
class WebAppSpec:
    """What distinguishes one kind of web-app from another."""

    kind: WebAppKind
    required_role: str
    finalize_resource: str | None
    context_scoped: bool

    def has_capability(self, descriptor: PluginDescriptor) -> bool:
        return bool(getattr(descriptor, f"has_{self.kind.value}_webapp"))

    @property
    def allowed_without_webapp(self) -> frozenset[str]:
        """Resources served even if the annotator has no web-app of this kind."""
        allowed = {GET_SCHEMA, GET_STATUS, GET_PERCENT_COMPLETE}
        if self.finalize_resource:
            allowed.add(self.finalize_resource)
        return frozenset(allowed)


WEBAPPS = {
    WebAppKind.CONFIG: WebAppSpec(WebAppKind.CONFIG, "admin", SET_CONFIG, False),
    WebAppKind.TASK: WebAppSpec(WebAppKind.TASK, "admin", SET_TASK_PARAMETERS, True),
    WebAppKind.EXT: WebAppSpec(WebAppKind.EXT, "edit", None, False),
}


@dataclass
class WebAppRequest:
    """
    An incoming web-app request.

    Attributes:
        method: HTTP method
        path: Path below the web-app's prefix, e.g. "/syllabifier/index.html"
        request_uri: Full request path, excluding the query string
        query_string: Raw (undecoded) query string
        headers: Request headers
        body: Request body stream
        roles: Roles of the authenticated caller
    """

    method: str
    path: str
    request_uri: str = ""
    query_string: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)
    body: BinaryIO | None = None
    roles: frozenset[str] = frozenset()

    def header(self, name: str) -> str | None:
        value = self.headers.get(name)
        if value is not None:
            return value
        lowered = name.lower()
        for key, header_value in self.headers.items():
            if key.lower() == lowered:
                return header_value
        return None

    @property
    def full_uri(self) -> str:
        """Request URI including the query string."""
        uri = self.request_uri or self.path
        if self.query_string:
            uri += "?" + self.query_string
        return uri

    def read_body(self) -> str:
        """
        Read the request body as text.

        Raises:
            BadRequest: If the body isn't UTF-8
        """
        if self.body is None:
            return ""
        try:
            return self.body.read().decode("utf-8")
        except UnicodeDecodeError as e:
            raise BadRequest("Request body is not valid UTF-8") from e


@dataclass
class WebAppResponse:
    """The response to a web-app request."""

    status: int = 200
    body: bytes | BinaryIO = b""
    content_type: ContentType = TEXT

    @classmethod
    def for_error(cls, error: AnnotatorHostError) -> "WebAppResponse":
        return cls(
            status=error.http_status,
            body=json.dumps(error.to_dict()).encode("utf-8"),
            content_type=JSON,
        )


def open_util_js() -> BinaryIO | None:
    """Open the helper script bundled with the host, if there is one."""
    script = resources.files("annotator_host").joinpath("static", UTIL_JS)
    if not script.is_file():
        return None
    return script.open("rb")


def flask_render(template: str, **context: Any) -> str:
    from flask import render_template

    return render_template(template, **context)


def task_parameters_restorer(storage: AnnotatorStorage) -> Callable[[RegistryKey, Any], None]:
    """
    Give new task-scoped instances the parameters previously saved for their task.

    Returns:
        Callback for PluginRegistry(on_new_instance=...)
    """
    def restore(key: RegistryKey, annotator: Any) -> None:
        if key.context_id is None:
            return
        try:
            parameters = storage.get_task_parameters(key.context_id)
            if parameters is not None:
                annotator.set_task_parameters(parameters)
        except Exception as e:
            logger.debug("%s - saved task parameters not restored: %s", key, e)

    return restore


class WebAppDispatcher:
    """Serves one kind of web-app for all installed annotators."""

    def __init__(
        self,
        kind: WebAppKind,
        registry: PluginRegistry,
        storage: AnnotatorStorage,
        configurator: AsyncConfigurator,
        reconciler: LayerReconciler | None = None,
        render: Callable[..., str] = flask_render,
        util_js: Callable[[], BinaryIO | None] = open_util_js,
        poll_interval_ms: int = 500,
    ) -> None:
        """
        Initialize the dispatcher.

        Args:
            kind: Which web-app this dispatcher serves
            registry: Live annotator instances for this web-app
            storage: Task parameter and layer persistence
            configurator: Applies configurations and task parameters
            reconciler: Reconciles output layers (defaults to one using storage)
            render: Renders a template name with context to HTML
            util_js: Opens the bundled helper script
            poll_interval_ms: How often the progress page polls
        """
        self.spec = WEBAPPS[kind]
        self.registry = registry
        self.storage = storage
        self.configurator = configurator
        self.reconciler = reconciler or LayerReconciler(storage)
        self.render = render
        self.util_js = util_js
        self.poll_interval_ms = poll_interval_ms

    @property
    def kind(self) -> WebAppKind:
        return self.spec.kind

    def dispatch(self, request: WebAppRequest) -> WebAppResponse:
        """
        Answer a web-app request.

        Never raises host errors; they're converted to responses.
        """
        try:
            return self._dispatch(request)
        except AnnotatorHostError as e:
            logger.info("%s %s - %s: %s", self.kind.value, request.path, type(e).__name__, e)
            return WebAppResponse.for_error(e)

    def _dispatch(self, request: WebAppRequest) -> WebAppResponse:
        if self.spec.required_role not in request.roles:
            raise Forbidden(f"The '{self.spec.required_role}' role is required.")

        plugin_id, resource = self._parse_path(request.path)
        context_id = self._context_id(request) if self.spec.context_scoped else None
        logger.debug("%s: annotatorId %s resource %s", self.kind.value, plugin_id, resource)

        entry = self.registry.get(plugin_id, context_id)
        key = RegistryKey(plugin_id, context_id)

        if not self.spec.has_capability(entry.descriptor) \
                and resource not in self.spec.allowed_without_webapp:
            raise NotFound(f"{plugin_id} has no {self.kind.value} web-app")

        if resource == GET_SCHEMA:
            return self._get_schema(entry)
        if resource == UTIL_JS:
            return self._get_util_js()
        if resource == GET_STATUS:
            return WebAppResponse(
                body=self.configurator.status(key, entry.instance).encode("utf-8"),
                content_type=TEXT,
            )
        if resource == GET_PERCENT_COMPLETE:
            return WebAppResponse(
                body=str(self.configurator.percent_complete(key, entry.instance)).encode(),
                content_type=TEXT,
            )
        if resource == SET_CONFIG and self.kind == WebAppKind.CONFIG:
            return self._set_config(key, entry, request)
        if self.kind == WebAppKind.TASK:
            if resource == GET_TASK_PARAMETERS:
                return self._get_task_parameters(context_id)
            if resource == SET_TASK_PARAMETERS:
                return self._set_task_parameters(context_id, entry, request)
        if "." in resource:
            return self._get_resource(entry, resource)
        return self._forward(entry, resource, request)

    # =========================================================================
    # REQUEST PARSING
    # =========================================================================

    @staticmethod
    def _parse_path(path: str) -> tuple[str, str]:
        plugin_id, _, resource = path.lstrip("/").partition("/")
        if not plugin_id:
            raise NotFound("No annotator specified")
        return plugin_id, resource or ENTRY_RESOURCE

    @staticmethod
    def _context_id(request: WebAppRequest) -> str:
        query = request.query_string
        if query and "=" not in query:
            task_id = unquote_plus(query)
        else:
            task_id = (parse_qs(query).get(TASK_ID_PARAMETER) or [""])[-1]
        if not task_id:
            raise BadRequest("No task specified")
        return task_id

    # =========================================================================
    # RESERVED RESOURCES
    # =========================================================================

    @staticmethod
    def _get_schema(entry: RegistryEntry) -> WebAppResponse:
        schema = entry.instance.get_schema()
        return WebAppResponse(
            body=json.dumps(schema.to_dict()).encode("utf-8"), content_type=JSON
        )

    def _get_util_js(self) -> WebAppResponse:
        stream = self.util_js()
        if stream is None:
            raise NotFound(f"No such resource: {UTIL_JS}")
        return WebAppResponse(body=stream, content_type=JAVASCRIPT)

    def _set_config(
        self, key: RegistryKey, entry: RegistryEntry, request: WebAppRequest
    ) -> WebAppResponse:
        config = request.read_body()
        html = self.render(
            "webapp/installing.html",
            poll_interval_ms=self.poll_interval_ms,
            finalize_resource=SET_CONFIG,
        )
        self.configurator.start_config(key, entry.instance, config)
        return WebAppResponse(body=html.encode("utf-8"), content_type=HTML)

    def _get_task_parameters(self, task_id: str) -> WebAppResponse:
        parameters = self.storage.get_task_parameters(task_id)
        if parameters is None:
            raise NotFound(f"No parameters for task {task_id}")
        content_type = JSON if parameters.startswith(("{", "[")) else TEXT
        return WebAppResponse(body=parameters.encode("utf-8"), content_type=content_type)

    def _set_task_parameters(
        self, task_id: str, entry: RegistryEntry, request: WebAppRequest
    ) -> WebAppResponse:
        logger.info("setTaskParameters: %s", task_id)
        parameters = request.read_body()
        try:
            self.configurator.apply_task_parameters(entry.instance, parameters)
        except InvalidConfiguration as e:
            html = self.render(
                "webapp/task_parameters.html",
                error=str(e) or type(e).__name__,
                finalize_resource=SET_TASK_PARAMETERS,
            )
            return WebAppResponse(status=400, body=html.encode("utf-8"), content_type=HTML)

        self.storage.save_task_parameters(task_id, parameters)
        result = self.reconciler.reconcile(entry.instance)
        if result.changed:
            logger.info(
                "Task %s: created layers %s, updated layers %s",
                task_id, result.created, result.updated,
            )

        html = self.render(
            "webapp/task_parameters.html", error=None, finalize_resource=SET_TASK_PARAMETERS
        )
        return WebAppResponse(body=html.encode("utf-8"), content_type=HTML)

    # =========================================================================
    # ANNOTATOR RESOURCES
    # =========================================================================

    def _get_resource(self, entry: RegistryEntry, resource: str) -> WebAppResponse:
        try:
            stream = entry.descriptor.get_resource(f"{self.kind.value}/{resource}")
        except OSError as e:
            logger.warning("%s - could not get resource %s: %s", entry.descriptor.plugin_id, resource, e)
            stream = None
        if stream is None:
            raise NotFound(f"No such resource: {resource}")
        return WebAppResponse(body=stream, content_type=content_type_for_name(resource))

    def _forward(
        self, entry: RegistryEntry, resource: str, request: WebAppRequest
    ) -> WebAppResponse:
        try:
            body = entry.instance.handle_request(
                request.method, request.full_uri, request.header("Content-Type"), request.body
            )
        except RequestException as e:
            logger.info("%s - RequestException: %s", request.path, e)
            message = e.message or type(e).__name__
            return WebAppResponse(
                status=e.http_status, body=message.encode("utf-8"), content_type=TEXT
            )
        except Exception as e:
            logger.exception("%s - annotator failed", request.path)
            raise InternalError(f"{entry.descriptor.plugin_id} failed: {e}") from e

        content_type = negotiate_content_type(request.header("Accept")) \
            or content_type_for_name(resource)
        return WebAppResponse(body=body if body is not None else b"", content_type=content_type)
