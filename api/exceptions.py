"""
API Exception Handlers: Domain Error → HTTP Error Mapping

Centralized exception handling for clean error responses.
Maps domain-specific exceptions to appropriate HTTP status codes.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from core.exceptions import (
    ConfigurationException,
    ContentEngineException,
    ContentGenerationException,
    LLMException,
    LLMRateLimitError,
    LLMTimeoutError,
    ValidationException,
)
from infrastructure.monitoring import get_logger

logger = get_logger(__name__)


def _error_response(
    request: Request,
    status_code: int,
    error: str,
    detail: Any,
    headers: Optional[Dict[str, str]] = None,
    error_code: Optional[str] = None,
) -> JSONResponse:
    content = {
        "error": error,
        "detail": detail,
        "timestamp": datetime.utcnow().isoformat(),
        "request_id": getattr(request.state, "request_id", None),
    }
    if error_code:
        content["error_code"] = error_code
    return JSONResponse(status_code=status_code, content=content, headers=headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors."""
    return _error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Validation Error",
        jsonable_encoder(exc.errors()),
    )


async def domain_validation_handler(request: Request, exc: ValidationException):
    """Handle request-level validation failures raised by services."""
    return _error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Validation Error",
        exc.message,
        error_code=exc.error_code,
    )


async def generation_error_handler(request: Request, exc: ContentGenerationException):
    """Handle templates the pipeline cannot process."""
    return _error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Generation Error",
        exc.message,
        error_code=exc.error_code,
    )


async def configuration_error_handler(request: Request, exc: ConfigurationException):
    """Handle missing or invalid service configuration."""
    logger.error("configuration_error", error=exc.message, context=exc.context)
    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Configuration Error",
        exc.message,
        error_code=exc.error_code,
    )


async def rate_limit_handler(request: Request, exc: LLMRateLimitError):
    """Handle model rate limiting; the caller decides on backoff."""
    headers = {"Retry-After": str(exc.retry_after)} if exc.retry_after else None
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        headers=headers,
        content={
            "error": "Rate Limited",
            "detail": exc.message,
            "error_code": exc.error_code,
            "retry_after": exc.retry_after,
            "rate_limit_headers": exc.rate_limit_headers,
            "timestamp": datetime.utcnow().isoformat(),
            "request_id": getattr(request.state, "request_id", None),
        },
    )


async def timeout_handler(request: Request, exc: LLMTimeoutError):
    """Handle model deadline expiry."""
    return _error_response(
        request,
        status.HTTP_504_GATEWAY_TIMEOUT,
        "Model Timeout",
        exc.message,
        error_code=exc.error_code,
    )


async def llm_error_handler(request: Request, exc: LLMException):
    """Handle transport and provider failures."""
    logger.warning("llm_error", error_type=type(exc).__name__, error=exc.message)
    return _error_response(
        request,
        status.HTTP_502_BAD_GATEWAY,
        "Model Error",
        exc.message,
        error_code=exc.error_code,
    )


async def engine_error_handler(request: Request, exc: ContentEngineException):
    """Fallback for any other application error."""
    logger.error("unhandled_engine_error", **exc.to_dict())
    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Internal Error",
        exc.message,
        error_code=exc.error_code,
    )


def add_exception_handlers(app: FastAPI):
    """Add all exception handlers to the FastAPI app."""
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ValidationException, domain_validation_handler)
    app.add_exception_handler(ContentGenerationException, generation_error_handler)
    app.add_exception_handler(ConfigurationException, configuration_error_handler)
    app.add_exception_handler(LLMRateLimitError, rate_limit_handler)
    app.add_exception_handler(LLMTimeoutError, timeout_handler)
    app.add_exception_handler(LLMException, llm_error_handler)
    app.add_exception_handler(ContentEngineException, engine_error_handler)
