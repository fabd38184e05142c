"""
Storage for task parameters and layer definitions.

Uses Firestore when GOOGLE_CLOUD_PROJECT is configured, and local JSON files
otherwise.
"""

import json
import logging
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any
from urllib.parse import quote

from annotator_host.errors import InternalError
from annotator_host.models.schema import Layer

logger = logging.getLogger(__name__)

TASK_PARAMETERS_COLLECTION = "annotator_task_parameters"
LAYERS_COLLECTION = "layers"


class AnnotatorStorage:
    """
    Persists annotator task parameters (keyed by task ID) and layer definitions.

    Supports both cloud (Firestore) and local storage modes.
    """

    def __init__(self, local_dir: str | Path = "data", project: str | None = None):
        """
        Initialize storage.

        Args:
            local_dir: Local directory for JSON files
            project: GCP project for Firestore (None = local storage)
        """
        self.local_dir = Path(local_dir)
        self._lock = threading.Lock()
        self.db = None

        if project:
            from google.cloud import firestore

            self.db = firestore.Client(project=project)
            logger.info("Annotator storage: Firestore (%s)", project)
        else:
            (self.local_dir / TASK_PARAMETERS_COLLECTION).mkdir(parents=True, exist_ok=True)
            (self.local_dir / LAYERS_COLLECTION).mkdir(parents=True, exist_ok=True)
            logger.info("Annotator storage: local JSON files (%s)", self.local_dir)

    @contextmanager
    def _storage_errors(self, action: str):
        try:
            yield
        except InternalError:
            raise
        except Exception as e:
            logger.error("Storage failure while trying to %s: %s", action, e)
            raise InternalError(f"Could not {action}: {e}") from e

    # =========================================================================
    # TASK PARAMETERS
    # =========================================================================

    def get_task_parameters(self, task_id: str) -> str | None:
        """Get the parameters saved for a task, if any."""
        with self._storage_errors(f"read parameters of task {task_id}"):
            document = self._get(TASK_PARAMETERS_COLLECTION, task_id)
            return document.get("parameters") if document else None

    def save_task_parameters(self, task_id: str, parameters: str) -> None:
        """Save (replacing any previous) parameters of a task."""
        with self._storage_errors(f"save parameters of task {task_id}"):
            self._set(
                TASK_PARAMETERS_COLLECTION, task_id,
                {"task_id": task_id, "parameters": parameters},
            )

    # =========================================================================
    # LAYERS
    # =========================================================================

    def get_layer(self, layer_id: str) -> Layer | None:
        with self._storage_errors(f"read layer {layer_id}"):
            document = self._get(LAYERS_COLLECTION, layer_id)
            return Layer.from_dict(document) if document else None

    def new_layer(self, layer: Layer) -> Layer:
        """
        Create a layer definition.

        Raises:
            InternalError: If the layer already exists, or can't be saved
        """
        with self._storage_errors(f"create layer {layer.id}"):
            if self._get(LAYERS_COLLECTION, layer.id) is not None:
                raise InternalError(f"Layer already exists: {layer.id}")
            self._set(LAYERS_COLLECTION, layer.id, layer.to_dict())
            return layer

    def save_layer(self, layer: Layer) -> Layer:
        """Update a layer definition."""
        with self._storage_errors(f"update layer {layer.id}"):
            self._set(LAYERS_COLLECTION, layer.id, layer.to_dict())
            return layer

    # =========================================================================
    # BACKENDS (Firestore or local JSON)
    # =========================================================================

    def _get(self, collection: str, document_id: str) -> dict[str, Any] | None:
        if self.db:
            doc = self.db.collection(collection).document(document_id).get()
            return doc.to_dict() if doc.exists else None

        path = self._local_path(collection, document_id)
        with self._lock:
            if not path.exists():
                return None
            with open(path, encoding="utf-8") as f:
                return json.load(f)

    def _set(self, collection: str, document_id: str, data: dict[str, Any]) -> None:
        if self.db:
            self.db.collection(collection).document(document_id).set(data)
            return

        path = self._local_path(collection, document_id)
        with self._lock:
            temp_path = path.with_suffix(".tmp")
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(temp_path, path)

    def _local_path(self, collection: str, document_id: str) -> Path:
        return self.local_dir / collection / f"{quote(document_id, safe='')}.json"
