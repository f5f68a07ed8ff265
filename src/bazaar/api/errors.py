"""Error responses for the catalog API.

Every error body uses the Result/Message structure:
{"messages": [{"code", "messageType", "text", "timestamp"}]}
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from enum import Enum

from fastapi import Request
from fastapi.responses import ORJSONResponse
from pydantic import BaseModel, Field

from bazaar.errors import (
    BazaarError,
    ConflictError,
    NotFoundError,
    StoreUnavailable,
    ValidationError,
)

logger = logging.getLogger(__name__)


class MessageType(str, Enum):
    """Type of message in error response."""

    ERROR = "Error"
    WARNING = "Warning"
    INFO = "Info"
    EXCEPTION = "Exception"


class Message(BaseModel):
    model_config = {"extra": "forbid", "populate_by_name": True}

    code: str
    message_type: MessageType = Field(alias="messageType")
    text: str
    timestamp: str | None = None


class Result(BaseModel):
    model_config = {"extra": "forbid"}

    messages: list[Message]


STATUS_CODES: dict[type[BazaarError], int] = {
    ValidationError: 400,
    NotFoundError: 404,
    ConflictError: 409,
    StoreUnavailable: 503,
}


def error_result(code: str, text: str, message_type: MessageType = MessageType.ERROR) -> Result:
    return Result(
        messages=[
            Message(
                code=code,
                messageType=message_type,
                text=text,
                timestamp=datetime.now(UTC).isoformat(),
            )
        ]
    )


def status_for(exc: BazaarError) -> int:
    for exc_type, status_code in STATUS_CODES.items():
        if isinstance(exc, exc_type):
            return status_code
    return 500


async def bazaar_exception_handler(request: Request, exc: BazaarError) -> ORJSONResponse:
    """Exception handler for domain errors."""
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(f"{exc.code}: {exc.text}", extra={"path": request.url.path})
    message_type = MessageType.EXCEPTION if status_code >= 500 else MessageType.ERROR
    return ORJSONResponse(
        status_code=status_code,
        content=error_result(exc.code, exc.text, message_type).model_dump(by_alias=True),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    """Exception handler for unexpected errors."""
    logger.exception("Unhandled error", extra={"path": request.url.path})
    return ORJSONResponse(
        status_code=500,
        content=error_result(
            "InternalServerError", "An unexpected error occurred", MessageType.EXCEPTION
        ).model_dump(by_alias=True),
    )
