# Overview: Maps service errors to JSON error bodies and HTTP status codes.

from __future__ import annotations

from flask import current_app, jsonify
from werkzeug.exceptions import HTTPException

from ..extensions import db
from ..validation import (
    ConflictError,
    LamaGestError,
    NotFoundError,
    PersistenceError,
    TemporalConstraintError,
    ValidationError,
)

# InsufficientStockError and InvoiceStateError are ValidationError subclasses
STATUS_BY_ERROR = (
    (ValidationError, 400),
    (TemporalConstraintError, 400),
    (NotFoundError, 404),
    (ConflictError, 409),
    (PersistenceError, 500),
)


def status_for(exc: LamaGestError) -> int:
    for error_type, status in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 500


def ok(data=None, *, message: str | None = None, status: int = 200, **extra):
    body = {"success": True, "data": data}
    if message:
        body["message"] = message
    body.update(extra)
    return jsonify(body), status


def handle_lamagest_error(exc: LamaGestError):
    db.session.rollback()
    status = status_for(exc)
    if status >= 500:
        current_app.logger.exception("Storage failure: %s", exc.message)
    return jsonify(exc.to_dict()), status


def handle_unexpected_error(exc: Exception):
    if isinstance(exc, HTTPException):
        return jsonify({"success": False, "message": exc.description, "code": exc.name.upper().replace(" ", "_"),
                        "errors": [exc.description]}), exc.code
    db.session.rollback()
    current_app.logger.exception("Unexpected error")
    return jsonify({
        "success": False,
        "message": "Internal server error",
        "code": "INTERNAL_ERROR",
        "errors": ["Internal server error"],
    }), 500


def register_error_handlers(app) -> None:
    app.register_error_handler(LamaGestError, handle_lamagest_error)
    app.register_error_handler(Exception, handle_unexpected_error)
