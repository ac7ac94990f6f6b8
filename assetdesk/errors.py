# assetdesk/errors.py
from __future__ import annotations

from typing import Any

from flask import Flask, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from .extensions import db


# =========================================================
# Error taxonomy
# =========================================================
class AppError(Exception):
    """Base for errors that map straight onto an HTTP status + JSON body."""

    status_code = 500
    default_message = "Unexpected server error."

    def __init__(
        self,
        message: str | None = None,
        *,
        errors: dict[str, list[str]] | None = None,
        field: str | None = None,
    ):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.errors = errors or {}
        self.field = field

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"message": self.message}
        if self.errors:
            body["errors"] = self.errors
        if self.field:
            body["field"] = self.field
        return body


class ValidationFailed(AppError):
    status_code = 400
    default_message = "Invalid data."


class ReferenceNotFound(AppError):
    # Referenced row is missing or soft-deleted at write time.
    status_code = 400
    default_message = "Referenced record does not exist."


class Forbidden(AppError):
    status_code = 403
    default_message = "You do not have permission to perform this action."


class NotFound(AppError):
    status_code = 404
    default_message = "Record not found."


class Conflict(AppError):
    status_code = 409
    default_message = "Record conflicts with an existing one."


class PayloadTooLarge(AppError):
    status_code = 413
    default_message = "Uploaded file is too large."


class ExportFailed(AppError):
    status_code = 500
    default_message = "Could not generate the export."


# =========================================================
# Flask wiring
# =========================================================
def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(AppError)
    def handle_app_error(exc: AppError):
        if exc.status_code >= 500:
            current_app.logger.error("%s: %s", type(exc).__name__, exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(SQLAlchemyError)
    def handle_db_error(exc: SQLAlchemyError):
        db.session.rollback()
        current_app.logger.exception("Database error")
        return jsonify({"message": "Unexpected database error."}), 500

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        # 404/405/413/429 raised by Flask/Werkzeug/Limiter
        return jsonify({"message": exc.description or exc.name}), exc.code or 500
