"""Error responses for fleetdesk.

Every error is rendered as a Result envelope:

    {"messages": [{"code": "NotFound", "messageType": "Error", "text": "...", "timestamp": "..."}]}
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from enum import Enum

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from fleetdesk.cache.errors import InvalidKeyPatternError

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
    """Result wrapper for errors."""

    model_config = {"extra": "forbid"}

    messages: list[Message]


def _result(code: str, text: str, message_type: MessageType = MessageType.ERROR) -> Result:
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


class ApiError(HTTPException):
    """Base exception for API errors."""

    def __init__(
        self,
        status_code: int,
        code: str,
        text: str,
        message_type: MessageType = MessageType.ERROR,
    ):
        self.code = code
        self.text = text
        self.message_type = message_type
        super().__init__(status_code=status_code, detail=text)

    def to_result(self) -> Result:
        return _result(self.code, self.text, self.message_type)


class NotFoundError(ApiError):
    """Resource not found (404)."""

    def __init__(self, resource_type: str, identifier: str):
        super().__init__(
            status_code=404,
            code="NotFound",
            text=f"{resource_type} with identifier '{identifier}' not found",
        )


class ConflictError(ApiError):
    """Resource already exists (409)."""

    def __init__(self, resource_type: str, identifier: str):
        super().__init__(
            status_code=409,
            code="Conflict",
            text=f"{resource_type} with identifier '{identifier}' already exists",
        )


class BadRequestError(ApiError):
    """Invalid request (400)."""

    def __init__(self, text: str):
        super().__init__(
            status_code=400,
            code="BadRequest",
            text=text,
        )


class UnauthorizedError(ApiError):
    def __init__(self, text: str = "Authentication required"):
        super().__init__(status_code=401, code="Unauthorized", text=text)


class ForbiddenError(ApiError):
    def __init__(self, text: str = "Access denied"):
        super().__init__(status_code=403, code="Forbidden", text=text)


_STATUS_CODES = {
    400: "BadRequest",
    401: "Unauthorized",
    403: "Forbidden",
    404: "NotFound",
    405: "MethodNotAllowed",
    409: "Conflict",
    422: "UnprocessableEntity",
}


async def api_exception_handler(request: Request, exc: ApiError) -> JSONResponse:
    """Exception handler for API errors."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_result().model_dump(by_alias=True),
        headers=exc.headers,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Wrap plain HTTP exceptions (auth dependencies, routing) in the envelope."""
    code = _STATUS_CODES.get(exc.status_code, "Error")
    return JSONResponse(
        status_code=exc.status_code,
        content=_result(code, str(exc.detail)).model_dump(by_alias=True),
        headers=getattr(exc, "headers", None),
    )


async def invalid_pattern_handler(request: Request, exc: InvalidKeyPatternError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content=_result("InvalidPattern", str(exc)).model_dump(by_alias=True),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """One message per failed field, located by its dotted path."""
    messages: list[Message] = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        text = f"{location}: {error.get('msg', 'invalid value')}"
        messages.extend(_result("ValidationError", text).messages)
    return JSONResponse(
        status_code=422,
        content=Result(messages=messages).model_dump(by_alias=True),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Exception handler for unexpected errors."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content=_result(
            "InternalServerError",
            "An unexpected error occurred",
            MessageType.EXCEPTION,
        ).model_dump(by_alias=True),
    )
