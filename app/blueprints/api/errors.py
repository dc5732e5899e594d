"""JSON error rendering for the API blueprint.

Every error leaves as ``{kind, message}``; unexpected exceptions are
logged with their traceback and never described to the client.
"""
import logging

import pydantic
from werkzeug.exceptions import HTTPException

from app.blueprints.api import api_bp
from app.errors import ServiceError

logger = logging.getLogger(__name__)


@api_bp.errorhandler(ServiceError)
def handle_service_error(e):
    if e.status_code >= 500:
        logger.error("%s: %s", e.kind, e.message)
    return e.to_dict(), e.status_code


@api_bp.errorhandler(pydantic.ValidationError)
def handle_payload_error(e):
    problems = []
    for err in e.errors():
        where = ".".join(str(part) for part in err["loc"]) or "body"
        problems.append(f"{where}: {err['msg']}")
    return {"kind": "validation_error", "message": "; ".join(problems)}, 400


@api_bp.errorhandler(HTTPException)
def handle_http_error(e):
    kind = (e.name or "error").lower().replace(" ", "_")
    return {"kind": kind, "message": e.description}, e.code


@api_bp.errorhandler(Exception)
def handle_unexpected(e):
    logger.exception("Unhandled API error")
    return {"kind": "internal_error", "message": "Internal server error"}, 500
