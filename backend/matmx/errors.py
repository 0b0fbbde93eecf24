# Overview: Error taxonomy shared by services and routes, plus the Flask handlers that render it.

from __future__ import annotations

from flask import current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from .extensions import db


class ServiceError(Exception):
    """
    Base class for failures a workflow reports to its caller.

    status_code/code form the response convention: {"error": message, "code": code}.
    """
    status_code = 500
    code = "internal"

    def __init__(self, message: str = "", details: dict | None = None):
        super().__init__(message)
        self.message = message or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class UnauthorizedError(ServiceError):
    """No credential, or the credential is invalid/expired."""
    status_code = 401
    code = "unauthorized"


class PermissionDeniedError(ServiceError):
    """Authenticated, but the role or ownership gate said no."""
    status_code = 403
    code = "forbidden"


class NotFoundError(ServiceError):
    status_code = 404
    code = "not_found"


class ValidationError(ServiceError, ValueError):
    """400-level input problem."""
    status_code = 400
    code = "invalid_input"


class ConflictError(ServiceError, ValueError):
    """409-level uniqueness or business rule conflict (e.g., duplicate SKU)."""
    status_code = 409
    code = "conflict"


class InternalError(ServiceError):
    """Unexpected store or I/O failure (SMTP, filesystem)."""
    status_code = 500
    code = "internal"


def register_error_handlers(app) -> None:
    @app.errorhandler(ServiceError)
    def handle_service_error(exc: ServiceError):
        db.session.rollback()
        if isinstance(exc, InternalError):
            current_app.logger.error("Internal failure: %s", exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(HTTPException)
    def handle_http_exception(exc: HTTPException):
        code = {
            401: "unauthorized",
            403: "forbidden",
            404: "not_found",
            405: "method_not_allowed",
            413: "payload_too_large",
        }.get(exc.code, "invalid_input" if exc.code and exc.code < 500 else "internal")
        return jsonify({"error": exc.description, "code": code}), exc.code

    @app.errorhandler(SQLAlchemyError)
    def handle_store_error(exc: SQLAlchemyError):
        db.session.rollback()
        current_app.logger.exception("Database failure while handling request")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500

    @app.errorhandler(Exception)
    def handle_unexpected(exc: Exception):
        db.session.rollback()
        current_app.logger.exception("Unhandled error while handling request")
        return jsonify({"error": "Internal server error", "code": "internal"}), 500
