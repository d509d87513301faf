"""
mdchecker - Custom Exceptions and Exception Handlers
"""
import structlog
from flask import jsonify
from werkzeug.exceptions import HTTPException

logger = structlog.get_logger('exceptions')

# Statuses the catalog uses when it is rate limiting or down
UNAVAILABLE_STATUSES = (429, 502, 503, 504)


class CheckerException(Exception):
    """Base exception for mdchecker"""
    def __init__(self, message: str, code: str = "CHECKER_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)

    def to_dict(self):
        return {
            'error': True,
            'code': self.code,
            'message': self.message
        }


class CatalogException(CheckerException):
    """Transport failure or unexpected HTTP status from the catalog"""
    def __init__(self, message: str, status: int = None, code: str = "CATALOG_ERROR"):
        self.status = status
        super().__init__(message, code=code)

    @classmethod
    def from_status(cls, status: int, endpoint: str):
        if status in UNAVAILABLE_STATUSES:
            return CatalogUnavailableException(f"Catalog unavailable for {endpoint} (status {status})", status)
        return cls(f"Unexpected status {status} from catalog {endpoint}", status)


class CatalogUnavailableException(CatalogException):
    """The catalog answered with a rate limit or service-unavailable status"""
    def __init__(self, message: str, status: int = 503):
        super().__init__(message, status=status, code="CATALOG_UNAVAILABLE")


class CatalogMalformedResponse(CatalogException):
    """The catalog answered 200 without the expected payload"""
    def __init__(self, message: str):
        super().__init__(message, status=200, code="CATALOG_MALFORMED")
        logger.warning(f"Malformed catalog response: {message}")


class StoreException(CheckerException):
    """Watermark store write failed"""
    def __init__(self, message: str):
        super().__init__(message, code="STORE_ERROR")
        logger.error(f"Store error: {message}")


class ControlPlaneException(CheckerException):
    """Invalid message on the control socket"""
    def __init__(self, message: str):
        super().__init__(message, code="CONTROL_PLANE_ERROR")


def register_exception_handlers(app):
    """Register exception handlers with Flask app"""

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        return jsonify({
            'error': True,
            'code': e.name.upper().replace(' ', '_'),
            'message': e.description
        }), e.code

    @app.errorhandler(CheckerException)
    def handle_checker_exception(e):
        logger.error(f"Unhandled {e.code}: {e.message}")
        return jsonify({'state': 'error'}), 500

    @app.errorhandler(Exception)
    def handle_generic_exception(e):
        logger.error(f"Unhandled exception: {e}", exc_info=True)
        return jsonify({'state': 'error'}), 500
