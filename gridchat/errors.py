"""Chat domain errors and their HTTP translation."""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse


class ChatError(Exception):
    """Base class for errors raised by the store and registry."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(ChatError):
    """Rejected input: blank or over-long body, missing field."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(ChatError):
    """Room, message or member does not exist."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(ChatError):
    """Reserved for writes that clash with existing state.

    Duplicate likes and like races are not conflicts: the store reports them
    as a ``False`` result.
    """

    status_code = status.HTTP_409_CONFLICT


class TransientConnectionError(ChatError):
    """The live socket dropped. Only raised inside the client reconnect loop."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ChatError, chat_error_handler)
