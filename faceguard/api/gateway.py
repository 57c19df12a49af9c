"""
Gateway endpoints that forward capture requests to a remote recognition backend.
"""

from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import JSONResponse

from faceguard.api.access import error_response_for, get_correlation_id
from faceguard.clients.recognition_client import RecognitionClient, UpstreamResponse
from faceguard.exceptions import UpstreamUnavailableError

logger = structlog.get_logger()
router = APIRouter(prefix="/gateway/api", tags=["gateway"])


def get_recognition_client(request: Request) -> Optional[RecognitionClient]:
    return getattr(request.app.state, "recognition_client", None)


async def _forward(operation: str, payload: Dict[str, Any], request: Request, client: Optional[RecognitionClient]):
    correlation_id = get_correlation_id(request)

    try:
        if client is None:
            raise UpstreamUnavailableError("No recognition backend is configured (set UPSTREAM_URL)")
        upstream: UpstreamResponse = await getattr(client, operation)(payload)
    except UpstreamUnavailableError as e:
        logger.error("Recognition backend unavailable", operation=operation, error=e.message)
        return error_response_for(e, correlation_id)

    logger.info("Forwarded request to recognition backend", operation=operation, status_code=upstream.status_code)
    return JSONResponse(status_code=upstream.status_code, content=upstream.body)


@router.post("/register")
async def forward_register(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    client: Optional[RecognitionClient] = Depends(get_recognition_client)
):
    """Forward a registration to the recognition backend."""
    return await _forward("register", payload, request, client)


@router.post("/recognize")
async def forward_recognize(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    client: Optional[RecognitionClient] = Depends(get_recognition_client)
):
    """Forward a verification to the recognition backend."""
    return await _forward("recognize", payload, request, client)
