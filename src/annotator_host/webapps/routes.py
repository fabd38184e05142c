"""
Flask routes for annotator web-apps.

Provides:
- /api/admin/annotator/config/<annotatorId>/... - 'config' web-apps (admin)
- /api/admin/annotator/task/<annotatorId>/...?<taskId> - 'task' web-apps (admin)
- /api/edit/annotator/ext/<annotatorId>/... - 'ext' web-apps (edit)
- /api/admin/annotators - List installed annotators, or upload one (POST)
- /api/admin/annotators/uploads/<uploadId> - Install or cancel an upload
- /api/admin/annotators/<annotatorId>/uninstall - Uninstall an annotator
"""

import logging

from flask import Blueprint, Response, current_app, g, jsonify, request
from werkzeug.wsgi import wrap_file

from annotator_host.api.auth import require_auth, require_role
from annotator_host.errors import AnnotatorHostError, BadRequest, NotFound
from annotator_host.services.webapp_dispatcher import (
    WebAppKind,
    WebAppRequest,
    WebAppResponse,
)

logger = logging.getLogger(__name__)

webapps_bp = Blueprint("webapps", __name__)

SERVICES_KEY = "annotator_host.services"
METHODS = ["GET", "POST", "PUT", "DELETE"]

PREFIXES = {
    WebAppKind.CONFIG: "/api/admin/annotator/config",
    WebAppKind.TASK: "/api/admin/annotator/task",
    WebAppKind.EXT: "/api/edit/annotator/ext",
}


def get_services():
    return current_app.extensions[SERVICES_KEY]


def _to_flask_response(response: WebAppResponse) -> Response:
    body = response.body
    if not isinstance(body, bytes):
        body = wrap_file(request.environ, body)
    return Response(
        body,
        status=response.status,
        content_type=str(response.content_type),
        direct_passthrough=not isinstance(response.body, bytes),
    )


def _dispatch(kind: WebAppKind) -> Response:
    prefix = PREFIXES[kind]
    webapp_request = WebAppRequest(
        method=request.method,
        path=request.path[len(prefix):],
        request_uri=request.path,
        query_string=request.query_string.decode("utf-8"),
        headers=request.headers,
        body=request.stream,
        roles=frozenset(g.roles),
    )
    dispatcher = get_services().dispatchers[kind]
    return _to_flask_response(dispatcher.dispatch(webapp_request))


# ---------------------------------------------------------------------------
# Web-apps
# ---------------------------------------------------------------------------


@webapps_bp.route(PREFIXES[WebAppKind.CONFIG], defaults={"subpath": ""}, methods=METHODS)
@webapps_bp.route(f"{PREFIXES[WebAppKind.CONFIG]}/<path:subpath>", methods=METHODS)
@require_auth
def config_webapp(subpath: str):
    """Serve an annotator's 'config' web-app."""
    return _dispatch(WebAppKind.CONFIG)


@webapps_bp.route(PREFIXES[WebAppKind.TASK], defaults={"subpath": ""}, methods=METHODS)
@webapps_bp.route(f"{PREFIXES[WebAppKind.TASK]}/<path:subpath>", methods=METHODS)
@require_auth
def task_webapp(subpath: str):
    """Serve an annotator's 'task' web-app."""
    return _dispatch(WebAppKind.TASK)


@webapps_bp.route(PREFIXES[WebAppKind.EXT], defaults={"subpath": ""}, methods=METHODS)
@webapps_bp.route(f"{PREFIXES[WebAppKind.EXT]}/<path:subpath>", methods=METHODS)
@require_auth
def ext_webapp(subpath: str):
    """Serve an annotator's 'ext' web-app."""
    return _dispatch(WebAppKind.EXT)


# ---------------------------------------------------------------------------
# Administration
# ---------------------------------------------------------------------------


@webapps_bp.route("/api/admin/annotators", methods=["GET"])
@require_role("admin")
def list_annotators():
    """
    List installed annotators.

    Example response:
    [
        {
            "annotatorId": "syllabifier",
            "version": "1.0",
            "hasConfigWebapp": false,
            "hasTaskWebapp": true,
            "hasExtWebapp": false,
            "info": "<p>Splits words into syllables.</p>"
        }
    ]
    """
    descriptors = get_services().catalog.list_descriptors()
    return jsonify([descriptor.to_dict() for descriptor in descriptors])


@webapps_bp.route("/api/admin/annotators/<annotator_id>/uninstall", methods=["POST"])
@require_role("admin")
def uninstall_annotator(annotator_id: str):
    """
    Uninstall an annotator.

    Returns:
        200: Annotator uninstalled
        404: Annotator not installed
    """
    try:
        get_services().catalog.uninstall(annotator_id)
    except NotFound as e:
        return jsonify(e.to_dict()), 404

    logger.info("Annotator %s uninstalled by %s", annotator_id, g.user)
    return jsonify({"message": "Annotator uninstalled.", "annotatorId": annotator_id})


@webapps_bp.route("/api/admin/annotators", methods=["POST"])
@require_role("admin")
def upload_annotator():
    """
    Receive an annotator module for installation.

    Expects a multipart upload of a .zip of the module directory. Nothing is
    installed until the upload is confirmed.

    Example response:
    {
        "message": "Annotator received.",
        "upload": "9f86d081884c7d65",
        "annotatorId": "syllabifier",
        "version": "1.1",
        "installedVersion": "1.0",
        "hasConfigWebapp": false,
        "hasTaskWebapp": true,
        "hasExtWebapp": false,
        "info": "<p>Splits words into syllables.</p>"
    }
    """
    if not request.files:
        return jsonify(BadRequest("No file uploaded").to_dict()), 400

    upload = next(iter(request.files.values()))
    try:
        received = get_services().catalog.receive(upload.filename or "upload", upload.stream)
    except AnnotatorHostError as e:
        return jsonify(e.to_dict()), e.http_status

    return jsonify({"message": "Annotator received.", **received.to_dict()})


@webapps_bp.route("/api/admin/annotators/uploads/<upload_id>", methods=["POST"])
@require_role("admin")
def confirm_upload(upload_id: str):
    """
    Install or cancel an uploaded annotator module.

    Form parameters:
        action: "install" or "cancel"

    Returns:
        200: Installed (with the URL of the next configuration step) or cancelled
        400: Missing or unknown action
        404: No such upload
    """
    action = request.form.get("action")
    catalog = get_services().catalog
    try:
        if action == "install":
            descriptor = catalog.install(upload_id)
        elif action == "cancel":
            catalog.cancel(upload_id)
            return jsonify({"message": "Installation cancelled."})
        else:
            raise BadRequest("Missing parameter: action" if not action else f"Unknown action: {action}")
    except AnnotatorHostError as e:
        return jsonify(e.to_dict()), e.http_status

    # annotators without a config web-app still need their configuration set
    config_url = f"{PREFIXES[WebAppKind.CONFIG]}/{descriptor.plugin_id}/"
    if not descriptor.has_config_webapp:
        config_url += "setConfig"

    logger.info("Annotator %s v%s installed by %s", descriptor.plugin_id, descriptor.version, g.user)
    return jsonify({
        "message": "Annotator installed.",
        "annotatorId": descriptor.plugin_id,
        "version": descriptor.version,
        "url": config_url,
    })
