"""
Error taxonomy shared by the aggregator, the box store and the HTTP layer.

Every error carries the HTTP status and the stable machine-readable code the
API responds with; ``main.py`` renders them as ``{code, message, errors?}``.
"""

from typing import Dict, List, Optional


class ApiError(Exception):
    status_code = 500
    code = "INTERNAL_SERVER_ERROR"
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self) -> Dict:
        return {"code": self.code, "message": self.message}


class BadInput(ApiError):
    status_code = 400
    code = "BAD_REQUEST"
    default_message = "Bad request"


class ValidationFailed(BadInput):
    default_message = "Invalid request body"

    def __init__(self, errors: List[Dict[str, str]], message: Optional[str] = None):
        super().__init__(message)
        self.errors = errors

    def to_payload(self) -> Dict:
        payload = super().to_payload()
        payload["errors"] = self.errors
        return payload


class Unauthorized(ApiError):
    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Unauthorized"


class NotFound(ApiError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Not found"


class InternalFailure(ApiError):
    pass
