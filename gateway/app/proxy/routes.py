"""
Proxy Routes - Generation Request Forwarding
============================================

Endpoints:
----------
- /generate: Forward a generation request to the upstream model API

Every HTTP method is routed to the handler so that non-POST requests get
the gateway's own ``{"error": "Method Not Allowed"}`` body rather than the
framework default.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ..errors import ServiceMisconfigured
from ..models import ErrorResponse, GenerateResponse, InboundRequest
from .handler import GenerateHandler

router = APIRouter()

ROUTED_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"]


def get_generate_handler(request: Request) -> GenerateHandler:
    """Dependency returning the handler built during application startup."""
    handler = getattr(request.app.state, "generate_handler", None)
    if handler is None:
        raise ServiceMisconfigured(reason="generate handler not initialized")
    return handler


@router.api_route(
    "/generate",
    methods=ROUTED_METHODS,
    response_model=GenerateResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        405: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def generate(
    request: Request,
    handler: GenerateHandler = Depends(get_generate_handler),
) -> JSONResponse:
    """
    Authenticate (when enabled), validate and forward a generation request.

    Request body::

        {"parts": [{"text": "hello"}], "systemInstruction": "be terse"}

    Returns ``{"text": ...}`` on success, ``{"error": ..., "details"?: ...}``
    otherwise.
    """
    inbound = InboundRequest.from_parts(
        request.method,
        dict(request.headers),
        await request.body(),
    )
    result = await handler.handle(inbound)
    return JSONResponse(status_code=result.status_code, content=result.body)
