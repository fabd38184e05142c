"""
Annotator module descriptor.

Supplied by the annotator catalog; immutable once obtained.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, BinaryIO


@dataclass(frozen=True)
class PluginDescriptor:
    """
    Metadata, capability flags and resource access for one annotator module.

    Attributes:
        plugin_id: Annotator identifier
        version: Version of the installed implementation (None once uninstalled)
        factory: Creates a new annotator instance
        resource_resolver: Opens a resource of the module's package, given a
            path relative to the package, or returns None
        has_config_webapp: Whether the module implements a 'config' web-app
        has_task_webapp: Whether the module implements a 'task' web-app
        has_ext_webapp: Whether the module implements an 'ext' web-app
        info: HTML description of the module
    """

    plugin_id: str
    version: str | None
    factory: Callable[[], Any]
    resource_resolver: Callable[[str], BinaryIO | None]
    has_config_webapp: bool = False
    has_task_webapp: bool = False
    has_ext_webapp: bool = False
    info: str = ""

    def create_instance(self) -> Any:
        """Create a new annotator instance bound to this descriptor."""
        return self.factory()

    def get_resource(self, path: str) -> BinaryIO | None:
        """
        Open a resource from the module's package.

        Args:
            path: Path relative to the package, e.g. "task/index.html"

        Returns:
            Binary stream, or None if there's no such resource
        """
        return self.resource_resolver(path)

    def to_dict(self) -> dict[str, Any]:
        """Summary for the administration API."""
        return {
            "annotatorId": self.plugin_id,
            "version": self.version,
            "hasConfigWebapp": self.has_config_webapp,
            "hasTaskWebapp": self.has_task_webapp,
            "hasExtWebapp": self.has_ext_webapp,
            "info": self.info,
        }
