import logging
from typing import Any, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from linkpost.config import settings

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """An expected failure with a status code and a machine-readable error."""

    def __init__(self, status_code: int, error: str, details: Any = None):
        super().__init__(error)
        self.status_code = status_code
        self.error = error
        self.details = details

    def to_dict(self) -> dict:
        body: dict = {"error": self.error}
        if self.details is not None:
            body["details"] = self.details
        return body


class ProviderError(Exception):
    """Non-2xx answer from the OAuth provider or its API."""

    def __init__(self, operation: str, status_code: int, body: str):
        super().__init__(f"{operation} failed with status {status_code}")
        self.operation = operation
        self.status_code = status_code
        self.body = body


def dev_details(exc: Exception) -> Optional[str]:
    """Return exception detail for responses, or None in production."""
    if settings.is_production:
        return None
    if isinstance(exc, ProviderError):
        return f"{exc}: {exc.body}"
    return str(exc) or exc.__class__.__name__


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def catch_unexpected_errors(request: Request, call_next):
    try:
        return await call_next(request)
    except Exception as e:
        logger.exception("[api] unhandled error on %s %s", request.method, request.url.path)
        content = {"error": "Internal server error"}
        details = dev_details(e)
        if details is not None:
            content["details"] = details
        return JSONResponse(status_code=500, content=content)
