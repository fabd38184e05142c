"""
Annotator host application.

Flask application factory wiring the annotator catalog, storage, registries
and web-app dispatchers together.
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime

from flask import Flask, jsonify
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from annotator_host import __version__
from annotator_host.api.auth import init_auth
from annotator_host.api.storage import AnnotatorStorage
from annotator_host.config import HostConfig
from annotator_host.plugins.eviction import EvictionScheduler
from annotator_host.plugins.plugin_loader import AnnotatorCatalog
from annotator_host.plugins.plugin_registry import PluginRegistry
from annotator_host.services.configurator import AsyncConfigurator
from annotator_host.services.layer_reconciler import LayerReconciler
from annotator_host.services.webapp_dispatcher import (
    WebAppDispatcher,
    WebAppKind,
    task_parameters_restorer,
)
from annotator_host.webapps.routes import SERVICES_KEY, webapps_bp

logger = logging.getLogger(__name__)


@dataclass
class HostServices:
    """Everything the routes need, shared by all requests."""

    config: HostConfig
    catalog: AnnotatorCatalog
    storage: AnnotatorStorage
    configurator: AsyncConfigurator
    scheduler: EvictionScheduler
    registries: dict[WebAppKind, PluginRegistry] = field(default_factory=dict)
    dispatchers: dict[WebAppKind, WebAppDispatcher] = field(default_factory=dict)

    def shutdown(self) -> None:
        self.scheduler.shutdown()


def build_services(
    config: HostConfig,
    catalog: AnnotatorCatalog | None = None,
    storage: AnnotatorStorage | None = None,
    configurator: AsyncConfigurator | None = None,
    scheduler: EvictionScheduler | None = None,
) -> HostServices:
    """
    Create the host's services.

    Collaborators default to ones built from config; tests pass their own.
    """
    catalog = catalog or AnnotatorCatalog(config.annotator_dir, config.disabled_annotators)
    storage = storage or AnnotatorStorage(
        config.storage_dir, project=config.google_cloud_project or None
    )
    configurator = configurator or AsyncConfigurator()
    scheduler = scheduler or EvictionScheduler(ttl=config.task_webapp_ttl)

    services = HostServices(
        config=config,
        catalog=catalog,
        storage=storage,
        configurator=configurator,
        scheduler=scheduler,
    )

    # 'config' and 'ext' instances live as long as the process, 'task'
    # instances (one per task) are evicted after a while
    services.registries = {
        WebAppKind.CONFIG: PluginRegistry(catalog, name="config"),
        WebAppKind.TASK: PluginRegistry(
            catalog,
            scheduler=scheduler,
            on_new_instance=task_parameters_restorer(storage),
            name="task",
        ),
        WebAppKind.EXT: PluginRegistry(catalog, name="ext"),
    }

    reconciler = LayerReconciler(storage)
    services.dispatchers = {
        kind: WebAppDispatcher(
            kind,
            registry,
            storage,
            configurator,
            reconciler=reconciler,
            poll_interval_ms=config.poll_interval_ms,
        )
        for kind, registry in services.registries.items()
    }
    return services


def create_app(config: HostConfig | None = None, **collaborators) -> Flask:
    """
    Create the annotator host application.

    Args:
        config: Host configuration (defaults to one read from the environment)
        **collaborators: catalog, storage, configurator and/or scheduler to
            use instead of the defaults

    Returns:
        Flask application
    """
    config = config or HostConfig()
    for error in config.validate():
        logger.warning("Configuration: %s", error)

    app = Flask(__name__)
    app.config["RATELIMIT_ENABLED"] = config.rate_limit_enabled

    init_auth(app, config)

    limiter = Limiter(
        key_func=get_remote_address,
        app=app,
        default_limits=config.rate_limits,
        storage_uri=config.rate_limit_storage_uri,
        strategy="fixed-window"
    )

    services = build_services(config, **collaborators)
    app.extensions[SERVICES_KEY] = services
    app.register_blueprint(webapps_bp)

    @app.route("/health", methods=["GET"])
    @limiter.exempt
    def health_check():
        """Health check endpoint."""
        return jsonify({
            "status": "healthy",
            "version": __version__,
            "timestamp": datetime.now(UTC).isoformat(),
            "annotators": len(services.catalog.list_descriptors()),
        })

    logger.info("Annotator host configured: %s", config.to_dict())
    return app
