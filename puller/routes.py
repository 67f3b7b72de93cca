"""
Flask application and HTTP endpoints of the image puller service.

Endpoints:
    - GET /api/docker/token            - Bearer token for a repository
    - GET /api/docker/manifest         - Manifest index (normalized)
    - GET /api/docker/manifest-detail  - Single-platform manifest
    - GET /api/docker/pull-image       - Download blobs, progress as Server-Sent Events
    - GET /api/docker/assemble-image   - Export cached blobs as a docker-loadable tar
    - GET /api/docker/search           - Docker Hub repository search
    - GET /api/docker/tags             - Docker Hub tag listing
    - GET /healthz                     - Liveness check
"""

import logging

from flask import Blueprint, Flask, Response, abort, current_app, jsonify, request
from pydantic import TypeAdapter, ValidationError
from werkzeug.exceptions import HTTPException

from . import auth, hub, manifest
from .assembler import ImageAssembler, archive_name
from .client import RegistryClient
from .config import config
from .downloader import DownloadManager
from .errors import AuthMissingError, InvalidRequestError, PullerError
from .models import Descriptor, ExportManifest, Layer
from .progress import PullSession
from .validation import (
    normalize_image_name,
    parse_json_param,
    validate_image_name,
    validate_reference,
    validate_tag,
)

logger = logging.getLogger(__name__)

bp = Blueprint("docker", __name__)

_layers_adapter = TypeAdapter(list[Layer])


class Services:
    """Collaborators shared by the request handlers of one app."""

    def __init__(self, cfg, client):
        self.cfg = cfg
        self.client = client
        self.downloader = DownloadManager(client, cfg.DOWNLOAD_DIR, cfg=cfg)
        self.assembler = ImageAssembler(client, cfg.DOWNLOAD_DIR, cfg.TMP_DIR, cfg=cfg)


def _services() -> Services:
    return current_app.extensions["puller"]


def _image_param(default: str | None = None) -> tuple[str, str]:
    """Return (raw, normalized) image name from the ``imageName`` query parameter."""
    raw = (request.args.get("imageName") or default or "").strip()
    image = normalize_image_name(raw)
    validate_image_name(image)
    return raw, image


def _validated(model, raw, name: str):
    try:
        if isinstance(model, TypeAdapter):
            return model.validate_python(raw)
        return model.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"Invalid {name}: {e}")
        raise InvalidRequestError(f"Invalid {name}: {e.errors()[0]['msg']}") from e


# -------------------------------
# Registry Endpoints
# -------------------------------


@bp.route("/api/docker/token")
def get_token():
    """
    Exchange a repository scope for a registry bearer token.

    Query:
        imageName: Repository (default "nginx"; bare names get the "library/" namespace)
        scope: Requested action (default "pull")

    Returns:
        {"token": str}
    """
    _, image = _image_param("nginx")
    scope = request.args.get("scope") or "pull"
    result = auth.get_token(_services().client, image, scope, cfg=_services().cfg)
    return jsonify({"token": result["token"]})


@bp.route("/api/docker/manifest")
def get_manifest():
    """
    Resolve the manifest index of a tag.

    Query:
        imageName, tag (default "latest"), token

    Returns:
        {"schemaVersion", "mediaType", "manifests": [{"digest", "mediaType", "platform", "size"}]}
    """
    _, image = _image_param()
    tag = request.args.get("tag") or "latest"
    validate_tag(tag)
    token = request.args.get("token", "")
    index = manifest.resolve_index(_services().client, image, tag, token, cfg=_services().cfg)
    return jsonify(index)


@bp.route("/api/docker/manifest-detail")
def get_manifest_detail():
    """
    Resolve the concrete manifest of one platform.

    Query:
        imageName, digest, token, mediaType (media type of the index entry)

    Returns:
        {"config", "layers", "mediaType", "schemaVersion"}

    Raises:
        400: missing digest or media type
        404: registry has no such manifest
        502: registry answered with a different manifest shape
    """
    _, image = _image_param()
    digest = request.args.get("digest", "")
    validate_reference(digest)
    media_type = request.args.get("mediaType", "")
    if not media_type:
        abort(400, "Missing parameter: mediaType")
    token = request.args.get("token", "")
    detail = manifest.resolve_detail(_services().client, image, digest, token, media_type, cfg=_services().cfg)
    return jsonify(detail)


@bp.route("/api/docker/pull-image")
def pull_image():
    """
    Download the blobs of an image into the cache, reporting progress as SSE.

    Query:
        imageName, token
        layers: JSON list of {"digest", "size", "mediaType"}
        config: optional JSON {"digest", "size", "mediaType"} of the config blob

    Returns:
        text/event-stream of progress events, ending with one summary or error event

    Raises:
        401: token missing
        400: layers/config not valid JSON descriptors
    """
    _, image = _image_param()
    token = request.args.get("token")
    if not token:
        logger.error(f"Pull of {image} requested without token")
        raise AuthMissingError("No token provided")

    layers = _validated(_layers_adapter, parse_json_param("layers", request.args.get("layers")), "layers")
    config_blob = None
    if request.args.get("config"):
        config_blob = _validated(Descriptor, parse_json_param("config", request.args.get("config")), "config")

    logger.info(f"Pull requested: image='{image}', layers={len(layers)}, config={config_blob is not None}")
    session = PullSession(_services().downloader, image, token, layers, config=config_blob).start()

    resp = Response(session.channel.stream(), mimetype="text/event-stream")
    resp.headers["Cache-Control"] = "no-cache"
    resp.headers["X-Accel-Buffering"] = "no"
    return resp


@bp.route("/api/docker/assemble-image")
def assemble_image():
    """
    Export an already pulled image as a legacy docker-loadable tar archive.

    Query:
        imageName, tag, token
        manifest: JSON {"config", "layers", "platform": {"architecture", "os"}}

    Returns:
        application/x-tar attachment "<image>-<tag>.tar"
    """
    raw_image, _ = _image_param()
    tag = request.args.get("tag") or "latest"
    validate_tag(tag)
    token = request.args.get("token", "")
    export = _validated(ExportManifest, parse_json_param("manifest", request.args.get("manifest")), "manifest")

    stream = _services().assembler.assemble(raw_image, tag, token, export)

    resp = Response(stream, mimetype="application/x-tar")
    resp.headers["Content-Disposition"] = f'attachment; filename="{archive_name(raw_image, tag)}"'
    logger.info(f"Streaming archive {archive_name(raw_image, tag)}")
    return resp


# -------------------------------
# Docker Hub Endpoints
# -------------------------------


@bp.route("/api/docker/search")
def search():
    """Search Docker Hub repositories (query, page, pageSize)."""
    result = hub.search_repositories(
        _services().client,
        request.args.get("query", ""),
        page=request.args.get("page", 1),
        page_size=request.args.get("pageSize", 10),
        cfg=_services().cfg,
    )
    return jsonify(result)


@bp.route("/api/docker/tags")
def tags():
    """List Docker Hub tags of a repository (imageName, query, page, pageSize)."""
    raw_image = (request.args.get("imageName") or "").strip()
    if raw_image:
        raw_image, _ = _image_param()
    result = hub.list_tags(
        _services().client,
        raw_image,
        query=request.args.get("query", ""),
        page=request.args.get("page", 1),
        page_size=request.args.get("pageSize", 10),
        cfg=_services().cfg,
    )
    return jsonify(result)


@bp.route("/healthz")
def healthz():
    return jsonify({"status": "ok"})


# -------------------------------
# Error Handlers
# -------------------------------


@bp.app_errorhandler(PullerError)
def handle_puller_error(e: PullerError):
    logger.error(f"{request.path} failed with {e.status_code}: {e.message}")
    return jsonify({"statusCode": e.status_code, "message": e.message}), e.status_code


@bp.app_errorhandler(HTTPException)
def handle_http_error(e: HTTPException):
    return jsonify({"statusCode": e.code, "message": e.description}), e.code


def create_app(cfg=None, client=None) -> Flask:
    """
    Create the Flask application.

    Args:
        cfg: Configuration (defaults to the global config from the environment)
        client: Outbound HTTP client; a proxy-aware ``RegistryClient`` is built if omitted

    Returns:
        Flask app with all endpoints registered
    """
    cfg = cfg or config
    client = client or RegistryClient(proxy_url=cfg.PROXY_URL, timeout=cfg.REQUEST_TIMEOUT)

    app = Flask(__name__)
    app.extensions["puller"] = Services(cfg, client)
    app.register_blueprint(bp)
    return app
