# api/errors.py
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class ServiceError(Exception):
    """An API failure with a category the client can act on."""

    category = "internal"
    status_code = 500

    def __init__(self, message):
        self.message = message
        super().__init__(message)


class Unauthenticated(ServiceError):
    category = "unauthenticated"
    status_code = 401


class InvalidArgument(ServiceError):
    category = "invalid-argument"
    status_code = 400


class NotFound(ServiceError):
    category = "not-found"
    status_code = 404


class Internal(ServiceError):
    category = "internal"
    status_code = 500


def error_body(category, message):
    return {"error": {"status": category, "message": message}}


async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(error_body(exc.category, exc.message), status_code=exc.status_code)


async def validation_error_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    where = ".".join(str(p) for p in first.get("loc", ()))
    message = f"{where}: {first.get('msg', 'invalid request')}" if where else "Invalid request"
    return JSONResponse(error_body(InvalidArgument.category, message), status_code=400)


def register_error_handlers(app: FastAPI):
    """Render ServiceError and request validation failures as categorized JSON errors."""
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
