# Overview: Base class for the typed errors the API maps to HTTP responses.

from flask import jsonify


class PosError(Exception):
    """Raised for business-rule failures that the caller can act on."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "code": type(self).__name__,
            "details": self.details,
        }


def error_response(exc: PosError):
    return jsonify(exc.to_dict()), exc.status_code
