"""
Translate exceptions into JSON `{error, code}` responses.

Application errors keep their own status. Stripe and database errors get a
dedicated mapping; anything else is a 500 whose message and traceback are only
exposed outside production.
"""
import logging
import traceback

import stripe
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from dreamcatcher.core.config import settings
from dreamcatcher.core.exceptions import AppError

logger = logging.getLogger(__name__)


def _user_id(request: Request):
    return getattr(request.state, "user_id", None) or "anonymous"


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    else:
        logger.info(
            "%s %s -> %s (%s) user=%s",
            request.method, request.url.path, exc.status_code, exc.code, _user_id(request),
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg"),
            "code": err.get("type"),
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Invalid payload", "code": "VALIDATION_ERROR", "details": details},
    )


async def stripe_error_handler(request: Request, exc: stripe.StripeError) -> JSONResponse:
    logger.warning("Stripe error on %s %s: %s", request.method, request.url.path, exc.user_message or exc)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "Payment processing error",
            "code": "STRIPE_ERROR",
            "message": exc.user_message or str(exc),
        },
    )


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.warning("Constraint violation on %s %s: %s", request.method, request.url.path, exc.orig)
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"error": "Resource already exists", "code": "CONFLICT_ERROR"},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s (user=%s)", request.method, request.url.path, _user_id(request))
    if settings.is_production:
        content = {"error": "Internal server error", "code": "INTERNAL_ERROR"}
    else:
        content = {
            "error": str(exc) or exc.__class__.__name__,
            "code": "INTERNAL_ERROR",
            "stack": traceback.format_exception(type(exc), exc, exc.__traceback__),
        }
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(stripe.StripeError, stripe_error_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
