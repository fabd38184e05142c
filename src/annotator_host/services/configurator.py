"""
Application of annotator configurations and task parameters.

Configuring an annotator after installation can take a long time (e.g.
downloading dictionaries), so it happens in a background thread while the
caller polls for progress. Task parameters are applied synchronously so that
validation errors can be reported to the caller.
"""

import logging
import threading
from collections.abc import Callable, Hashable
from typing import Any

from annotator_host.errors import InvalidConfiguration
from annotator_host.plugins.annotator_protocol import AnnotatorPlugin

logger = logging.getLogger(__name__)


class ConfigurationRun:
    """
    Progress of one configuration being applied.

    The reported percentage never decreases, and only reaches 100 once the
    configuration has been applied (successfully or not).
    """

    def __init__(self, key: Hashable, annotator: AnnotatorPlugin) -> None:
        self.key = key
        self.annotator = annotator
        self._lock = threading.Lock()
        self._percent = 0
        self._finished = threading.Event()

    @property
    def percent_complete(self) -> int:
        with self._lock:
            if not self._finished.is_set():
                reported = int(self.annotator.percent_complete or 0)
                self._percent = max(self._percent, min(99, reported))
            return self._percent

    @property
    def status(self) -> str:
        return self.annotator.status or ""

    @property
    def finished(self) -> bool:
        return self._finished.is_set()

    def apply(self, config: str) -> None:
        """
        Apply the configuration.

        There's no caller left to tell about failures by the time this runs,
        so they're only logged.
        """
        try:
            self.annotator.set_config(config)
        except InvalidConfiguration as e:
            logger.error("%s - invalid config: %s : %s", self.key, e, config)
        except Exception:
            logger.exception("%s - could not apply config: %s", self.key, config)
        finally:
            with self._lock:
                self._percent = 100
                self._finished.set()


class AsyncConfigurator:
    """Starts configuration runs, and tracks the latest run per registry key."""

    def __init__(self, thread_factory: Callable[..., Any] = threading.Thread) -> None:
        """
        Initialize the configurator.

        Args:
            thread_factory: Creates a startable thread, given target, args, name and daemon
        """
        self.thread_factory = thread_factory
        self._lock = threading.Lock()
        self._runs: dict[Hashable, ConfigurationRun] = {}

    def start_config(
        self, key: Hashable, annotator: AnnotatorPlugin, config: str
    ) -> ConfigurationRun:
        """
        Apply a configuration in the background.

        Args:
            key: Registry key of the annotator instance
            annotator: The instance to configure
            config: The complete configuration (request body)

        Returns:
            The run, for progress reporting
        """
        run = ConfigurationRun(key, annotator)
        with self._lock:
            self._runs[key] = run

        thread = self.thread_factory(
            target=run.apply, args=(config,), name=f"configure-{key}", daemon=True
        )
        thread.start()
        logger.info("%s: configuration started", key)
        return run

    def get_run(self, key: Hashable, annotator: Any | None = None) -> ConfigurationRun | None:
        """
        Get the latest run for a key.

        Args:
            key: Registry key
            annotator: If given, only a run for this exact instance is returned
        """
        with self._lock:
            run = self._runs.get(key)
        if run is not None and annotator is not None and run.annotator is not annotator:
            return None
        return run

    def percent_complete(self, key: Hashable, annotator: AnnotatorPlugin) -> int:
        run = self.get_run(key, annotator)
        if run is not None:
            return run.percent_complete
        return int(annotator.percent_complete or 0)

    def status(self, key: Hashable, annotator: AnnotatorPlugin) -> str:
        run = self.get_run(key, annotator)
        if run is not None:
            return run.status
        return annotator.status or ""

    @staticmethod
    def apply_task_parameters(annotator: AnnotatorPlugin, parameters: str) -> None:
        """
        Apply task parameters synchronously.

        Raises:
            InvalidConfiguration: If the annotator rejects the parameters
        """
        annotator.set_task_parameters(parameters)
