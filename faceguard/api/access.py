"""
Access-control API endpoints for face registration, verification and capture triggering.
"""

import asyncio
import time
from datetime import datetime
from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from faceguard.exceptions import (
    AccessControlError,
    EmptyRegistryError,
    NoFaceDetectedError,
    UpstreamUnavailableError,
    UserNotFoundError,
    ValidationError
)
from faceguard.models.api_models import (
    DeleteUserResponse,
    ErrorResponse,
    RecognizeRequest,
    RecognizeResponse,
    RegisterRequest,
    RegisterResponse,
    TriggerResponse,
    UserListResponse,
    UserSummary
)
from faceguard.observability import (
    get_trace_context,
    record_registration_metrics,
    record_trigger_metrics,
    record_verification_metrics,
    trace_function
)
from faceguard.services.access_service import DENIED_MESSAGE, AccessControlService
from faceguard.services.notifier import EventBroadcaster
from faceguard.services.trigger_gate import TriggerGate

logger = structlog.get_logger()
router = APIRouter(prefix="/api", tags=["access-control"])
events_router = APIRouter(tags=["events"])

DEFAULT_REQUEST_TIMEOUT = 30.0


def get_access_service(request: Request) -> AccessControlService:
    return request.app.state.access_service


def get_trigger_gate(request: Request) -> TriggerGate:
    return request.app.state.trigger_gate


def get_notifier(request: Request) -> EventBroadcaster:
    return request.app.state.notifier


def get_request_timeout(request: Request) -> float:
    settings = getattr(request.app.state, "settings", None)
    return getattr(settings, "request_timeout", DEFAULT_REQUEST_TIMEOUT)


def get_correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", "unknown")


def create_error_response(
    error_type: str,
    message: str,
    correlation_id: str,
    status_code: int = 500,
    details: Optional[Dict[str, Any]] = None
) -> JSONResponse:
    """Create standardized error response."""
    error_response = ErrorResponse(
        error=error_type,
        message=message,
        details=details or None,
        correlation_id=correlation_id,
        timestamp=datetime.utcnow()
    )
    return JSONResponse(
        status_code=status_code,
        content=error_response.model_dump(mode="json")
    )


def error_status_code(error: Exception) -> int:
    """Map a workflow exception to its HTTP status code."""
    if isinstance(error, (ValidationError, NoFaceDetectedError, EmptyRegistryError)):
        return 400
    if isinstance(error, UserNotFoundError):
        return 404
    if isinstance(error, UpstreamUnavailableError):
        return 503
    if isinstance(error, asyncio.TimeoutError):
        return 504
    return 500


def error_response_for(error: Exception, correlation_id: str) -> JSONResponse:
    status_code = error_status_code(error)
    if isinstance(error, AccessControlError):
        return create_error_response(
            type(error).__name__, error.message, correlation_id, status_code, error.details
        )
    if isinstance(error, asyncio.TimeoutError):
        return create_error_response(
            "TimeoutError", "The request took too long to process", correlation_id, status_code
        )
    return create_error_response(
        "InternalServerError", "An unexpected error occurred", correlation_id, status_code
    )


@router.post("/register", response_model=RegisterResponse)
@trace_function("registration_endpoint")
async def register_user(
    payload: RegisterRequest,
    request: Request,
    service: AccessControlService = Depends(get_access_service)
):
    """
    Register a user's face.

    Detects the face in the captured frame, extracts its descriptor and stores
    it under a newly generated user id. Connected observers receive a
    `user_registered` event.
    """
    correlation_id = get_correlation_id(request)
    start_time = time.time()

    logger.info("Registration request received", name=payload.name)

    try:
        record = await asyncio.wait_for(
            service.register(payload.name, payload.image),
            timeout=get_request_timeout(request)
        )
    except Exception as e:
        record_registration_metrics(False, time.time() - start_time, type(e).__name__)
        log = logger.warning if isinstance(e, AccessControlError) else logger.error
        log(
            "Registration failed",
            name=payload.name,
            error=str(e),
            error_type=type(e).__name__,
            **get_trace_context()
        )
        return error_response_for(e, correlation_id)

    record_registration_metrics(True, time.time() - start_time)
    logger.info("Registration completed successfully", user_id=record.id, name=record.name)

    return RegisterResponse(success=True, user=UserSummary(**record.to_public()))


async def _verify(payload: RecognizeRequest, request: Request, service: AccessControlService):
    correlation_id = get_correlation_id(request)
    start_time = time.time()

    logger.info("Verification request received")

    try:
        outcome = await asyncio.wait_for(
            service.verify(payload.image),
            timeout=get_request_timeout(request)
        )
    except Exception as e:
        record_verification_metrics(False, time.time() - start_time, None, type(e).__name__)
        log = logger.warning if isinstance(e, AccessControlError) else logger.error
        log("Verification failed", error=str(e), error_type=type(e).__name__, **get_trace_context())
        return error_response_for(e, correlation_id)

    record_verification_metrics(outcome.matched, time.time() - start_time, outcome.distance)
    logger.info(
        "Verification completed",
        success=outcome.matched,
        distance=round(outcome.distance, 4),
        confidence=round(outcome.confidence, 4)
    )

    if outcome.matched:
        return RecognizeResponse(
            success=True,
            user=UserSummary(**outcome.user.to_public()),
            confidence=outcome.confidence
        )
    return RecognizeResponse(success=False, message=DENIED_MESSAGE, confidence=outcome.confidence)


@router.post("/recognize", response_model=RecognizeResponse, response_model_exclude_none=True)
@trace_function("verification_endpoint")
async def recognize_face(
    payload: RecognizeRequest,
    request: Request,
    service: AccessControlService = Depends(get_access_service)
):
    """
    Verify a captured face against all registered users.

    A face that matches nobody is a normal 200 response with `success: false`.
    """
    return await _verify(payload, request, service)


@router.post("/verify", response_model=RecognizeResponse, response_model_exclude_none=True)
async def verify_face(
    payload: RecognizeRequest,
    request: Request,
    service: AccessControlService = Depends(get_access_service)
):
    """Alias of `/api/recognize`."""
    return await _verify(payload, request, service)


@router.get("/trigger-capture", response_model=TriggerResponse, response_model_exclude_none=True)
async def get_trigger(gate: TriggerGate = Depends(get_trigger_gate)) -> TriggerResponse:
    """Return the last accepted trigger timestamp; pollers compare it to the last one they saw."""
    return TriggerResponse(timestamp=gate.peek())


@router.post("/trigger-capture", response_model=TriggerResponse, response_model_exclude_none=True)
async def fire_trigger(
    gate: TriggerGate = Depends(get_trigger_gate),
    notifier: EventBroadcaster = Depends(get_notifier)
) -> TriggerResponse:
    """
    Request a capture from the hardware button or the UI.

    Repeated calls inside the cooldown window return the previous timestamp.
    Accepted triggers are also pushed to observers as `capture_requested`.
    """
    timestamp, accepted = gate.try_fire()
    record_trigger_metrics(accepted)

    if accepted:
        logger.info("Capture triggered", timestamp=timestamp)
        await notifier.publish_capture_requested(timestamp)
    else:
        logger.info("Capture trigger debounced", timestamp=timestamp)

    return TriggerResponse(success=True, message="Capture triggered", timestamp=timestamp)


@router.get("/users", response_model=UserListResponse)
async def list_users(service: AccessControlService = Depends(get_access_service)) -> UserListResponse:
    """List registered users (identity only, never descriptors)."""
    return UserListResponse(
        users=[UserSummary(**record.to_public()) for record in service.list_users()]
    )


@router.delete("/users/{user_id}", response_model=DeleteUserResponse)
async def delete_user(
    user_id: str,
    request: Request,
    service: AccessControlService = Depends(get_access_service)
):
    """Remove a registered user."""
    correlation_id = get_correlation_id(request)

    try:
        record = await service.delete_user(user_id)
    except Exception as e:
        log = logger.warning if isinstance(e, AccessControlError) else logger.error
        log("User deletion failed", user_id=user_id, error=str(e))
        return error_response_for(e, correlation_id)

    logger.info("User deleted", user_id=record.id, name=record.name)
    return DeleteUserResponse(success=True, user=UserSummary(**record.to_public()))


@events_router.websocket("/ws/events")
async def events_channel(websocket: WebSocket):
    """
    Real-time observer channel.

    Sends a `connected` acknowledgment, then every broadcast event as JSON.
    Messages sent by the observer are ignored.
    """
    notifier: EventBroadcaster = websocket.app.state.notifier
    await notifier.connect(websocket)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    except WebSocketDisconnect:
        pass
    finally:
        await notifier.disconnect(websocket)
