"""
Base class for annotator modules.

Provides status/progress plumbing and routing of web-app requests to methods
marked with @endpoint, so annotator modules only implement their own logic.
"""

import inspect
import json
import logging
import threading
from collections.abc import Callable
from typing import Any, BinaryIO
from urllib.parse import parse_qs, unquote, urlsplit

from annotator_host.errors import RequestException
from annotator_host.models.schema import Schema

logger = logging.getLogger(__name__)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def endpoint(method: Callable) -> Callable:
    """Mark an annotator method as callable from its web-apps."""
    method.is_endpoint = True
    return method


class BaseAnnotator:
    """
    Base annotator.

    Subclasses set annotator_id and version, and override the configuration
    hooks they need.
    """

    annotator_id: str = ""
    version: str | None = None
    output_layers: tuple[str, ...] = ()
    allows_manual_annotations: bool = False

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._status = ""
        self._percent_complete = 0
        self._running = False
        self._status_observers: list[Callable[[str], None]] = []
        self._schema = Schema()
        self._config: str | None = None
        self._task_parameters: str | None = None

    # =========================================================================
    # STATUS
    # =========================================================================

    @property
    def status(self) -> str:
        with self._lock:
            return self._status

    @status.setter
    def status(self, status: str) -> None:
        with self._lock:
            self._status = status
            observers = list(self._status_observers)
        for observer in observers:
            try:
                observer(status)
            except Exception:
                logger.exception("Status observer failed for %s", self.annotator_id)

    @property
    def percent_complete(self) -> int:
        with self._lock:
            return self._percent_complete

    @percent_complete.setter
    def percent_complete(self, percent: int) -> None:
        with self._lock:
            self._percent_complete = max(0, min(100, int(percent)))

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    @running.setter
    def running(self, running: bool) -> None:
        with self._lock:
            self._running = running

    @property
    def status_observers(self) -> list[Callable[[str], None]]:
        return self._status_observers

    # =========================================================================
    # SCHEMA AND CONFIGURATION
    # =========================================================================

    def get_schema(self) -> Schema:
        return self._schema

    def set_schema(self, schema: Schema) -> None:
        self._schema = schema

    def get_config(self) -> str | None:
        return self._config

    def set_config(self, config: str) -> None:
        self._config = config

    def get_task_parameters(self) -> str | None:
        return self._task_parameters

    def set_task_parameters(self, parameters: str) -> None:
        self._task_parameters = parameters

    def uninstall(self) -> None:
        self.version = None

    # =========================================================================
    # REQUEST ROUTING
    # =========================================================================

    def handle_request(
        self, method: str, uri: str, content_type: str | None, body: BinaryIO | None
    ) -> bytes:
        """
        Route a web-app request to an @endpoint method.

        The last segment of the URI path names the method. Query string
        parameters, and the fields of form-encoded bodies, are passed as
        keyword arguments. A method with a 'body' parameter receives the raw
        request body as text.

        Raises:
            RequestException: 404 for unknown endpoints, 400 for missing arguments
        """
        parts = urlsplit(uri)
        name = unquote(parts.path.rstrip("/").rsplit("/", 1)[-1])
        handler = getattr(self, name, None) if not name.startswith("_") else None
        if handler is None or not getattr(handler, "is_endpoint", False):
            raise RequestException(f"No such endpoint: {name}", 404)

        arguments: dict[str, str] = {
            key: values[-1] for key, values in parse_qs(parts.query).items()
        }
        raw_body = body.read().decode("utf-8") if body is not None else ""
        if content_type and content_type.split(";")[0].strip() == FORM_CONTENT_TYPE:
            arguments.update(
                {key: values[-1] for key, values in parse_qs(raw_body).items()}
            )
            raw_body = ""

        signature = inspect.signature(handler)
        kwargs: dict[str, Any] = {}
        for parameter in signature.parameters.values():
            if parameter.name == "body":
                kwargs["body"] = raw_body
            elif parameter.name in arguments:
                kwargs[parameter.name] = arguments[parameter.name]
            elif parameter.default is inspect.Parameter.empty:
                raise RequestException(f"Missing parameter: {parameter.name}", 400)

        return self._encode_result(handler(**kwargs))

    @staticmethod
    def _encode_result(result: Any) -> bytes:
        if result is None:
            return b""
        if isinstance(result, bytes):
            return result
        if isinstance(result, str):
            return result.encode("utf-8")
        return json.dumps(result).encode("utf-8")
