"""Error taxonomy for PlantLife and its HTTP mapping."""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse


class PlantLifeError(Exception):
    """Base exception for PlantLife errors."""

    def __init__(self, message: str, error_type: str = "plantlife_error"):
        self.message = message
        self.error_type = error_type
        super().__init__(message)


class ValidationError(PlantLifeError):
    """Raised for malformed or oversized input, including moderation rejections."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message, "validation_error")
        self.field = field


class NotFoundError(PlantLifeError):
    """Raised when a referenced user, post or record does not exist."""

    def __init__(self, resource: str, resource_id: str | None = None):
        if resource_id is None:
            message = f"{resource} not found"
        else:
            message = f"{resource} {resource_id} not found"
        super().__init__(message, "not_found")
        self.resource = resource
        self.resource_id = resource_id


class ConflictError(PlantLifeError):
    """Raised on a uniqueness violation (phone, handle, pending request)."""

    def __init__(self, message: str):
        super().__init__(message, "conflict")


class ForbiddenError(PlantLifeError):
    """Raised when the actor lacks rights for the operation."""

    def __init__(self, message: str):
        super().__init__(message, "forbidden")


class InvalidOperationError(PlantLifeError):
    """Raised for operations that make no sense, e.g. following yourself."""

    def __init__(self, message: str):
        super().__init__(message, "invalid_operation")


class UnauthenticatedError(PlantLifeError):
    """Raised when a mutator is called without a caller identity."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, "unauthenticated")


STATUS_MAP = {
    "validation_error": status.HTTP_400_BAD_REQUEST,
    "not_found": status.HTTP_404_NOT_FOUND,
    "conflict": status.HTTP_409_CONFLICT,
    "forbidden": status.HTTP_403_FORBIDDEN,
    "invalid_operation": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "unauthenticated": status.HTTP_401_UNAUTHORIZED,
}


def error_body(error: PlantLifeError) -> dict:
    """Problem-details body for an error."""
    code = STATUS_MAP.get(error.error_type, status.HTTP_500_INTERNAL_SERVER_ERROR)
    return {
        "type": f"https://plantlife.app/errors/{error.error_type}",
        "title": error.error_type.replace("_", " ").title(),
        "status": code,
        "detail": error.message,
    }


async def plantlife_error_handler(request: Request, error: PlantLifeError) -> JSONResponse:
    """Convert PlantLifeError into a JSON response."""
    body = error_body(error)
    headers = None
    if isinstance(error, UnauthenticatedError):
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(status_code=body["status"], content=body, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PlantLifeError, plantlife_error_handler)
