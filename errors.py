"""
Error types for BloodLink
Core geocoding/storage failures plus the JSON API error family
"""
from flask import jsonify
from werkzeug.exceptions import HTTPException


# ============== CORE ERRORS ==============

class RemoteLookupFailure(Exception):
    """Network error, timeout or unusable response from the geocoding provider"""


class GeocodeNotFound(Exception):
    """Every geocoding fallback stage was exhausted without a coordinate"""

    def __init__(self, address):
        super().__init__(f"could not resolve address: {address!r}")
        self.address = address


class StoreWriteFailure(Exception):
    """A JSON store could not be flushed to disk"""


class CacheWriteFailure(StoreWriteFailure):
    pass


class DuplicateEmail(ValueError):
    def __init__(self, email):
        super().__init__(f"email already registered: {email!r}")
        self.email = email


class UserNotFound(LookupError):
    def __init__(self, user_id):
        super().__init__(f"user not found: {user_id!r}")
        self.user_id = user_id


# ============== API ERRORS ==============
# Raised inside routes; rendered as {"ok": false, "error": {"type", "message", "details"?}}

class APIError(Exception):
    status_code = 400
    default_message = "Request failed"

    def __init__(self, message=None, details=None, status_code=None):
        self.message = message or self.default_message
        super().__init__(self.message)
        self.details = details
        if status_code is not None:
            self.status_code = status_code

    def as_response(self):
        error = {"type": type(self).__name__, "message": self.message}
        if self.details:
            error["details"] = self.details
        return jsonify({"ok": False, "error": error}), self.status_code


class BadRequest(APIError):
    default_message = "Invalid request"


class Unauthorized(APIError):
    status_code = 401
    default_message = "Invalid credentials"


class NotFound(APIError):
    status_code = 404
    default_message = "User not found"


class Conflict(APIError):
    status_code = 409
    default_message = "Email already exists"


class AddressNotResolved(APIError):
    status_code = 422
    default_message = "Could not geocode address; please refine it"


def register_error_handlers(app):
    @app.errorhandler(APIError)
    def _api_error(err):
        return err.as_response()

    @app.errorhandler(GeocodeNotFound)
    def _geocode_not_found(err):
        app.logger.warning("Geocoding failed: %s", err)
        return AddressNotResolved(details={"address": err.address}).as_response()

    @app.errorhandler(DuplicateEmail)
    def _duplicate_email(err):
        return Conflict().as_response()

    @app.errorhandler(UserNotFound)
    def _user_not_found(err):
        return NotFound().as_response()

    @app.errorhandler(HTTPException)
    def _http_error(err):
        return APIError(err.description, status_code=err.code).as_response()

    @app.errorhandler(Exception)
    def _server_error(err):
        app.logger.exception("Unhandled error: %s", err)
        return jsonify({"ok": False, "error": {"type": "ServerError", "message": "server error"}}), 500
