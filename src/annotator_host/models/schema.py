"""
Layer schema models.

An annotator declares its output layers in its schema; the host compares
those declarations with the layer definitions it has persisted.
"""

from dataclasses import asdict, dataclass, field
from enum import IntEnum
from typing import Any


class Alignment(IntEnum):
    """How annotations on a layer align with the timeline."""

    NONE = 0  # tags
    INSTANT = 1  # points in time
    INTERVAL = 2  # spans of time


@dataclass
class Layer:
    """
    Definition of an annotation layer.

    Represents the structural rules annotations on a layer follow.
    """

    id: str
    parent_id: str | None = None
    description: str = ""
    type: str = "string"
    alignment: int = Alignment.NONE
    peers: bool = False
    peers_overlap: bool = False
    parent_includes: bool = True
    saturated: bool = True
    valid_labels: dict[str, str] = field(default_factory=dict)
    extra: str | None = None

    def differs_from(self, other: "Layer") -> bool:
        """
        Whether this declaration disagrees with a persisted definition.

        Labels are compared by key only. 'extra' is only compared when this
        layer sets it.

        Args:
            other: Persisted layer definition

        Returns:
            True if the persisted definition needs updating
        """
        return (
            self.type != other.type
            or int(self.alignment) != int(other.alignment)
            or self.peers != other.peers
            or self.peers_overlap != other.peers_overlap
            or self.parent_includes != other.parent_includes
            or self.saturated != other.saturated
            or set(self.valid_labels) != set(other.valid_labels)
            or (self.extra is not None and self.extra != other.extra)
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Layer":
        """
        Create Layer from storage dictionary.

        Args:
            data: Dictionary from storage (Firestore or local JSON)

        Returns:
            Layer instance
        """
        return cls(
            id=data["id"],
            parent_id=data.get("parent_id"),
            description=data.get("description", ""),
            type=data.get("type", "string"),
            alignment=int(data.get("alignment", Alignment.NONE)),
            peers=bool(data.get("peers", False)),
            peers_overlap=bool(data.get("peers_overlap", False)),
            parent_includes=bool(data.get("parent_includes", True)),
            saturated=bool(data.get("saturated", True)),
            valid_labels=dict(data.get("valid_labels") or {}),
            extra=data.get("extra"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert Layer to dictionary for storage/JSON serialization."""
        data = asdict(self)
        data["alignment"] = int(self.alignment)
        return data


@dataclass
class Schema:
    """Set of layers an annotator works with, and the key structural layers."""

    layers: dict[str, Layer] = field(default_factory=dict)
    participant_layer_id: str | None = None
    turn_layer_id: str | None = None
    utterance_layer_id: str | None = None
    word_layer_id: str | None = None

    def add_layer(self, layer: Layer) -> Layer:
        self.layers[layer.id] = layer
        return layer

    def get_layer(self, layer_id: str) -> Layer | None:
        return self.layers.get(layer_id)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Schema":
        return cls(
            layers={
                layer_id: Layer.from_dict(layer)
                for layer_id, layer in (data.get("layers") or {}).items()
            },
            participant_layer_id=data.get("participant_layer_id"),
            turn_layer_id=data.get("turn_layer_id"),
            utterance_layer_id=data.get("utterance_layer_id"),
            word_layer_id=data.get("word_layer_id"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "participant_layer_id": self.participant_layer_id,
            "turn_layer_id": self.turn_layer_id,
            "utterance_layer_id": self.utterance_layer_id,
            "word_layer_id": self.word_layer_id,
            "layers": {
                layer_id: layer.to_dict() for layer_id, layer in self.layers.items()
            },
        }
