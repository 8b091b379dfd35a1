"""
Error taxonomy shared by every record service.

Services raise these; ``register_exception_handlers`` renders them with the
same ``{"detail": ...}`` body FastAPI uses for ``HTTPException``.
"""

import logging
from typing import Sequence

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class RecordError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidArgument(RecordError):
    """Malformed identifier or a value the record cannot accept."""

    status_code = 400


class DuplicateKey(RecordError):
    """Another record already holds the same natural key."""

    status_code = 409

    def __init__(self, message: str, key: str, fields: Sequence[str] = ()):
        super().__init__(message)
        self.key = key
        self.fields = tuple(fields)


class NotFound(RecordError):
    status_code = 404


class StorageFailure(RecordError):
    """Any other database error. The message never carries driver details."""

    status_code = 500


async def record_error_handler(request: Request, exc: RecordError):
    if isinstance(exc, StorageFailure):
        logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RecordError, record_error_handler)
