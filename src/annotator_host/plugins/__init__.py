"""
Annotator module hosting.

Discovers installed annotator modules, and keeps live instances of them for
the web-apps the host exposes.
"""

from annotator_host.errors import InvalidConfiguration, RequestException

from .annotator_protocol import AnnotatorPlugin
from .base_annotator import BaseAnnotator, endpoint
from .eviction import EvictionScheduler, EvictionToken
from .plugin_loader import AnnotatorCatalog
from .plugin_registry import PluginRegistry, RegistryEntry, RegistryKey

__all__ = [
    'AnnotatorCatalog',
    'AnnotatorPlugin',
    'BaseAnnotator',
    'EvictionScheduler',
    'EvictionToken',
    'InvalidConfiguration',
    'PluginRegistry',
    'RegistryEntry',
    'RegistryKey',
    'RequestException',
    'endpoint',
]
