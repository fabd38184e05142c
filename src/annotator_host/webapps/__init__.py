"""Flask routes for annotator web-apps and annotator administration."""

from .routes import webapps_bp

__all__ = ["webapps_bp"]
