# geojson_api/errors.py

from typing import Any, Dict, List, Optional


class GeoJSONAPIError(Exception):
    """Base class for every error the API turns into an HTTP response."""

    status_code = 500
    public_message = "Internal error"

    def __init__(self, message: Optional[str] = None, details: Optional[List[Dict[str, Any]]] = None):
        self.message = message or self.public_message
        self.details = details
        super().__init__(self.message)

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class InputError(GeoJSONAPIError):
    status_code = 400
    public_message = "Bad request"


class PayloadTooLargeError(InputError):
    status_code = 413
    public_message = "Payload too large"


class ValidationError(InputError):
    """Raised when a decoded value is not an accepted GeoJSON document."""

    public_message = "Invalid GeoJSON"

    def __init__(self, details: List[Dict[str, Any]]):
        super().__init__(details=details)


class NotFoundError(GeoJSONAPIError):
    status_code = 404
    public_message = "Not found"


class StorageError(GeoJSONAPIError):
    # The underlying OS error is kept for the logs only, never for the caller
    def to_body(self) -> Dict[str, Any]:
        return {"error": self.public_message}


class InternalError(GeoJSONAPIError):
    def to_body(self) -> Dict[str, Any]:
        return {"error": self.public_message}
