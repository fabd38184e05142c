"""
Output layer reconciliation.

After task parameters are set, the layers an annotator declares as outputs
must exist with the structure the annotator expects.
"""

import dataclasses
import logging
from dataclasses import dataclass, field

from annotator_host.api.storage import AnnotatorStorage
from annotator_host.plugins.annotator_protocol import AnnotatorPlugin

logger = logging.getLogger(__name__)

EDITABLE = "editable"


@dataclass
class ReconcileResult:
    """IDs of the layers created and updated by a reconciliation."""

    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.created or self.updated)


class LayerReconciler:
    """Creates or updates persisted layers to match an annotator's outputs."""

    def __init__(self, storage: AnnotatorStorage) -> None:
        self.storage = storage

    def reconcile(self, annotator: AnnotatorPlugin) -> ReconcileResult:
        """
        Create missing output layers and update changed ones.

        Running this again with unchanged declarations writes nothing.

        Args:
            annotator: Annotator whose output layers to reconcile

        Returns:
            What was created/updated
        """
        result = ReconcileResult()
        schema = annotator.get_schema()
        editable = bool(getattr(annotator, "allows_manual_annotations", False))

        for layer_id in annotator.output_layers:
            declared = schema.get_layer(layer_id)
            if declared is None:
                logger.warning(
                    "%s declares output layer %s, which isn't in its schema",
                    annotator.annotator_id, layer_id,
                )
                continue
            if editable:
                declared = dataclasses.replace(declared, extra=EDITABLE)

            existing = self.storage.get_layer(layer_id)
            if existing is None:
                self.storage.new_layer(declared)
                result.created.append(layer_id)
                logger.info("Output layer %s created", layer_id)
            elif declared.differs_from(existing):
                self.storage.save_layer(declared)
                result.updated.append(layer_id)
                logger.info("Output layer %s updated", layer_id)

        return result
