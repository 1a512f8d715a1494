from flask import jsonify
from sqlalchemy.exc import IntegrityError


class AppError(Exception):
    status_code = 400

    def __init__(self, message, status_code=None, payload=None):
        super().__init__(message)
        self.message = message
        self.payload = payload or {}
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        body = {"error": self.message}
        body.update(self.payload)
        return body


class NotFound(AppError):
    status_code = 404


class Conflict(AppError):
    status_code = 409


class InvalidAmount(AppError):
    status_code = 400


class PaymentConfigMissing(AppError):
    status_code = 400


class MandateInactive(AppError):
    status_code = 403


class ProcessorError(AppError):
    status_code = 500


class PersistenceError(AppError):
    """A local write failed, possibly after an external side effect."""

    status_code = 500


def register_error_handlers(app):
    @app.errorhandler(AppError)
    def handle_app_error(err):
        return jsonify(err.to_dict()), err.status_code

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(_err):
        app.logger.warning("Database integrity error")
        return jsonify({"error": "Conflict. Resource already exists."}), 409

    @app.errorhandler(400)
    def bad_request(_err):
        return jsonify({"error": "Bad request"}), 400

    @app.errorhandler(401)
    def unauthorized(_err):
        return jsonify({"error": "Unauthorized"}), 401

    @app.errorhandler(403)
    def forbidden(_err):
        return jsonify({"error": "Forbidden"}), 403

    @app.errorhandler(404)
    def not_found(_err):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(_err):
        return jsonify({"error": "Method Not Allowed"}), 405

    @app.errorhandler(429)
    def too_many_requests(_err):
        return jsonify({"error": "Too many requests"}), 429

    @app.errorhandler(500)
    def server_error(_err):
        app.logger.exception("Internal server error")
        return jsonify({"error": "Internal server error"}), 500
