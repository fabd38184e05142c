"""
Registry of live annotator instances.

Web-apps need the same annotator instance across the many requests a web-app
makes, so instances are cached per annotator ID (or per annotator ID and task
ID for task web-apps) and only replaced when a new version is installed.
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import NamedTuple, Protocol

from annotator_host.errors import NotFound
from annotator_host.models.descriptor import PluginDescriptor

from .annotator_protocol import AnnotatorPlugin
from .eviction import EvictionScheduler, EvictionToken

logger = logging.getLogger(__name__)


class DescriptorSource(Protocol):
    """Anything that can supply the current descriptor of an annotator."""

    def get_descriptor(self, annotator_id: str) -> PluginDescriptor | None:
        ...


class RegistryKey(NamedTuple):
    """Annotator ID, plus task ID for task-scoped entries."""

    plugin_id: str
    context_id: str | None = None

    def __str__(self) -> str:
        if self.context_id is None:
            return self.plugin_id
        return f"{self.plugin_id}?{self.context_id}"


@dataclass(eq=False)
class RegistryEntry:
    """A cached annotator instance, and the version it was created for."""

    descriptor: PluginDescriptor
    instance: AnnotatorPlugin
    version: str | None
    eviction: EvictionToken | None = None

    def is_stale(self, current: PluginDescriptor) -> bool:
        """
        Whether this entry must be replaced.

        It must if the instance has been uninstalled, or a different version
        is now installed.
        """
        return (
            self.version is None
            or getattr(self.instance, "version", None) is None
            or self.version != current.version
        )


class PluginRegistry:
    """
    Caches live annotator instances.

    Entries are replaced, never mutated, when the installed version changes.
    Task-scoped entries are evicted after a while if an EvictionScheduler is
    given.
    """

    def __init__(
        self,
        source: DescriptorSource,
        scheduler: EvictionScheduler | None = None,
        on_new_instance: Callable[[RegistryKey, AnnotatorPlugin], None] | None = None,
        name: str = "",
    ) -> None:
        """
        Initialize the registry.

        Args:
            source: Supplies current annotator descriptors
            scheduler: Evicts task-scoped entries (None = entries persist)
            on_new_instance: Called with each newly created instance, before
                it's made available
            name: Registry name for logging
        """
        self.source = source
        self.scheduler = scheduler
        self.on_new_instance = on_new_instance
        self.name = name
        # a single lock is enough: there's one active instance per annotator
        self._lock = threading.Lock()
        self._entries: dict[RegistryKey, RegistryEntry] = {}

    def get(self, plugin_id: str, context_id: str | None = None) -> RegistryEntry:
        """
        Get the live entry for an annotator, creating or replacing it if needed.

        Args:
            plugin_id: Annotator identifier
            context_id: Task ID for task-scoped entries

        Returns:
            The registry entry

        Raises:
            NotFound: If the annotator isn't installed
        """
        key = RegistryKey(plugin_id, context_id)

        with self._lock:
            descriptor = self.source.get_descriptor(plugin_id)
            entry = self._entries.get(key)

            if descriptor is None:
                if entry is not None:
                    del self._entries[key]
                    logger.info("%s: %s is no longer installed", self.name, key)
                raise NotFound(f"Annotator not installed: {plugin_id}")

            if entry is not None and not entry.is_stale(descriptor):
                return entry

            entry = self._create_entry(key, descriptor, replacing=entry)
            self._entries[key] = entry

            if self.scheduler is not None and context_id is not None:
                entry.eviction = self.scheduler.schedule(key, entry, self.remove_if_current)
            return entry

    def _create_entry(
        self, key: RegistryKey, descriptor: PluginDescriptor, replacing: RegistryEntry | None
    ) -> RegistryEntry:
        instance = descriptor.create_instance()
        if self.on_new_instance is not None:
            self.on_new_instance(key, instance)
        instance.status_observers.append(
            lambda status: logger.info("%s: %s", key.plugin_id, status)
        )

        if replacing is None:
            logger.info("%s: new instance of %s v%s", self.name, key, descriptor.version)
        else:
            logger.info(
                "%s: replacing %s v%s with v%s",
                self.name, key, replacing.version, descriptor.version,
            )
        return RegistryEntry(descriptor=descriptor, instance=instance, version=descriptor.version)

    def peek(self, plugin_id: str, context_id: str | None = None) -> RegistryEntry | None:
        """Get the cached entry, if any, without checking what's installed."""
        with self._lock:
            return self._entries.get(RegistryKey(plugin_id, context_id))

    def remove_if_current(self, key: RegistryKey, entry: RegistryEntry) -> bool:
        """
        Remove the entry for key, but only if it's exactly the given entry.

        Returns:
            True if the entry was removed
        """
        with self._lock:
            if self._entries.get(key) is entry:
                del self._entries[key]
                return True
            return False

    def keys(self) -> list[RegistryKey]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries
