"""Data models shared between the host and annotator modules."""

from .descriptor import PluginDescriptor
from .schema import Alignment, Layer, Schema

__all__ = [
    "Alignment",
    "Layer",
    "PluginDescriptor",
    "Schema",
]
