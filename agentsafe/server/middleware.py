"""
HTTP middleware for the Agent-SAFE Grid server.

Request ids, error mapping, request logging and API-key authentication.
"""

import asyncio
import hmac
import logging
import time
from typing import TYPE_CHECKING, Awaitable, Callable, Iterable

if TYPE_CHECKING:
    from aiohttp import web

from agentsafe.exceptions import (
    AgentSafeError,
    ConfigurationError,
    IntegrityError,
    PolicyViolation,
    UpstreamError,
    ValidationError,
)
from agentsafe.models.base import generate_uuid

Handler = Callable[["web.Request"], Awaitable["web.StreamResponse"]]
Middleware = Callable[["web.Request", Handler], Awaitable["web.StreamResponse"]]

logger = logging.getLogger("agentsafe.server")


def error_status(error: AgentSafeError) -> int:
    """Map an Agent-SAFE exception to an HTTP status code."""
    if isinstance(error, (ValidationError, ConfigurationError)):
        return 400
    if isinstance(error, PolicyViolation):
        return 403
    if isinstance(error, UpstreamError):
        return 504 if error.timed_out else 502
    if isinstance(error, IntegrityError):
        return 409
    return 500


def error_body(
    error_type: str, message: str, request_id: str, details: dict | None = None
) -> dict:
    return {
        "error": {
            "type": error_type,
            "message": message,
            "details": details or {},
            "request_id": request_id,
        }
    }


def create_request_id_middleware() -> Middleware:
    """
    Create middleware that ensures every request has a unique ID.

    The request ID is taken from the X-Request-ID header if present,
    otherwise a new UUID is generated.
    """
    from aiohttp import web

    @web.middleware
    async def request_id_middleware(
        request: web.Request,
        handler: Handler,
    ) -> web.StreamResponse:
        request_id = request.headers.get("X-Request-ID") or generate_uuid()
        request["request_id"] = request_id

        try:
            response = await handler(request)
        except web.HTTPException as e:
            e.headers["X-Request-ID"] = request_id
            raise
        response.headers["X-Request-ID"] = request_id
        return response

    return request_id_middleware


def create_error_handler_middleware() -> Middleware:
    """
    Create error handling middleware.

    Converts exceptions to JSON error bodies of the form
    ``{"error": {"type", "message", "details"}}``.
    """
    from aiohttp import web

    @web.middleware
    async def error_handler_middleware(
        request: web.Request,
        handler: Handler,
    ) -> web.StreamResponse:
        request_id = request.get("request_id", "unknown")
        try:
            return await handler(request)

        except web.HTTPException:
            raise

        except AgentSafeError as e:
            status = error_status(e)
            if status >= 500:
                logger.warning(f"{e.__class__.__name__}: {e.message} [{request_id[:8]}]")
            else:
                logger.info(f"{e.__class__.__name__}: {e.message} [{request_id[:8]}]")
            return web.json_response(
                error_body(e.__class__.__name__, e.message, request_id, e.details),
                status=status,
            )

        except asyncio.CancelledError:
            raise

        except Exception as e:
            logger.exception(f"Unhandled exception: {e} [{request_id[:8]}]")
            return web.json_response(
                error_body("InternalError", "An internal error occurred", request_id),
                status=500,
            )

    return error_handler_middleware


def create_request_logging_middleware(log_level: int = logging.INFO) -> Middleware:
    """
    Create request logging middleware.

    Logs method, path, status and duration of each request. Bodies are
    never logged.
    """
    from aiohttp import web

    @web.middleware
    async def request_logging_middleware(
        request: web.Request,
        handler: Handler,
    ) -> web.StreamResponse:
        start_time = time.perf_counter()
        status = 500
        try:
            response = await handler(request)
            status = response.status
            return response
        except web.HTTPException as e:
            status = e.status
            raise
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            request_id = request.get("request_id", "unknown")
            logger.log(
                log_level,
                f"{request.method} {request.path} {status} "
                f"{duration_ms:.2f}ms [{request_id[:8]}]",
            )

    return request_logging_middleware


def create_api_key_middleware(
    api_keys: Iterable[str],
    header_name: str = "X-API-Key",
    exempt_paths: Iterable[str] = ("/v1/health",),
) -> Middleware:
    """
    Create API-key authentication middleware.

    Requests to non-exempt paths must carry one of ``api_keys`` in
    ``header_name``. With no keys configured every request passes.
    """
    from aiohttp import web

    keys = [k for k in api_keys if k]
    exempt = set(exempt_paths)

    @web.middleware
    async def api_key_middleware(
        request: web.Request,
        handler: Handler,
    ) -> web.StreamResponse:
        if not keys or request.path in exempt:
            return await handler(request)

        presented = request.headers.get(header_name, "")
        if not any(hmac.compare_digest(presented, key) for key in keys):
            request_id = request.get("request_id", "unknown")
            logger.warning(f"Rejected unauthenticated request to {request.path}")
            return web.json_response(
                error_body(
                    "AuthenticationError",
                    f"Missing or invalid {header_name} header",
                    request_id,
                ),
                status=401,
            )
        return await handler(request)

    return api_key_middleware
