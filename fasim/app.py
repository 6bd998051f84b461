"""The HTTP application: routes, error responses and CORS."""

from __future__ import annotations

import json
from collections.abc import Callable
from http import HTTPStatus
from typing import Any

from flask import Flask, Response, jsonify, request

from fasim.db import Database
from fasim.handlers import ApiError, FacilityHandler, ItemHandler
from fasim.repositories import FacilityRepository, ItemRepository

ALLOWED_ORIGINS = ("http://localhost:3000", "http://localhost:8080")
ALLOWED_METHODS = ("GET", "POST", "PUT", "DELETE", "OPTIONS")
ALLOWED_HEADERS = ("Origin", "Content-Type", "Accept", "Authorization")


def _request_body() -> Any:
    data = request.get_data()
    if not data:
        return {}
    if request.mimetype != "application/json":
        raise ApiError(HTTPStatus.UNSUPPORTED_MEDIA_TYPE, "Unsupported Media Type")
    try:
        return json.loads(data)
    except ValueError as err:
        raise ApiError(HTTPStatus.BAD_REQUEST, str(err)) from err


def _respond(call: Callable[[], tuple[Any, int]]) -> Any:
    try:
        body, status = call()
    except ApiError as err:
        return jsonify(message=err.message), int(err.status)
    if body is None:
        return Response(status=int(status))
    return jsonify(body), int(status)


def _register(app: Flask, prefix: str, name: str, handler: Any) -> None:
    member = f"{prefix}/<raw_id>"
    app.add_url_rule(
        prefix, f"{name}_list", lambda: _respond(handler.list), methods=["GET"]
    )
    app.add_url_rule(
        prefix,
        f"{name}_create",
        lambda: _respond(lambda: handler.create(_request_body())),
        methods=["POST"],
    )
    app.add_url_rule(
        member,
        f"{name}_get",
        lambda raw_id: _respond(lambda: handler.get(raw_id)),
        methods=["GET"],
    )
    app.add_url_rule(
        member,
        f"{name}_update",
        lambda raw_id: _respond(lambda: handler.update(raw_id, _request_body())),
        methods=["PUT"],
    )
    app.add_url_rule(
        member,
        f"{name}_delete",
        lambda raw_id: _respond(lambda: handler.delete(raw_id)),
        methods=["DELETE"],
    )


def register_item_routes(app: Flask, handler: ItemHandler) -> None:
    """Register the /api/items routes."""
    _register(app, "/api/items", "items", handler)


def register_facility_routes(app: Flask, handler: FacilityHandler) -> None:
    """Register the /api/facilities routes."""
    _register(app, "/api/facilities", "facilities", handler)


def _preflight() -> Response | None:
    if request.method == "OPTIONS":
        return Response(status=HTTPStatus.NO_CONTENT)
    return None


def _apply_cors(response: Response) -> Response:
    origin = request.headers.get("Origin", "")
    preflight = request.method == "OPTIONS"
    response.vary.add("Origin")
    if preflight:
        response.vary.add("Access-Control-Request-Method")
        response.vary.add("Access-Control-Request-Headers")
    if origin in ALLOWED_ORIGINS:
        response.headers["Access-Control-Allow-Origin"] = origin
        if preflight:
            response.headers["Access-Control-Allow-Methods"] = ",".join(ALLOWED_METHODS)
            response.headers["Access-Control-Allow-Headers"] = ",".join(ALLOWED_HEADERS)
    return response


def _http_error(err: Exception) -> Any:
    code = getattr(err, "code", None)
    name = getattr(err, "name", None)
    if not isinstance(code, int) or not isinstance(name, str):
        # Not an HTTP error: let Flask turn it into a 500, which comes back here.
        raise err
    return jsonify(message=name), code


def _index() -> Any:
    return jsonify(
        message="Welcome to Factory Automation Simulator API",
        version="1.0.0",
        status="running",
    )


def create_app(database: Database) -> Flask:
    """Build the application serving items and facilities from ``database``."""
    app = Flask(__name__)
    app.json.sort_keys = False
    item_repo = ItemRepository(database)
    facility_repo = FacilityRepository(database)
    app.before_request(_preflight)
    app.after_request(_apply_cors)
    app.register_error_handler(Exception, _http_error)
    app.add_url_rule("/", "index", _index, methods=["GET"])
    register_item_routes(app, ItemHandler(item_repo))
    register_facility_routes(app, FacilityHandler(facility_repo, item_repo))
    return app