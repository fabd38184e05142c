"""Business logic behind the annotator web-apps."""

from .configurator import AsyncConfigurator, ConfigurationRun
from .layer_reconciler import LayerReconciler, ReconcileResult
from .webapp_dispatcher import (
    WEBAPPS,
    WebAppDispatcher,
    WebAppKind,
    WebAppRequest,
    WebAppResponse,
    WebAppSpec,
)

__all__ = [
    "AsyncConfigurator",
    "ConfigurationRun",
    "LayerReconciler",
    "ReconcileResult",
    "WEBAPPS",
    "WebAppDispatcher",
    "WebAppKind",
    "WebAppRequest",
    "WebAppResponse",
    "WebAppSpec",
]
