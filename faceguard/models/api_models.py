"""Pydantic models for API requests and responses."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class RegisterRequest(BaseModel):
    """Request model for user registration endpoint.

    Fields are optional at the schema level so that missing values are
    reported by the registration workflow with field-level detail.
    """

    name: Optional[str] = Field(None, description="Display name of the user")
    image: Optional[str] = Field(None, description="Base64 encoded image (raw or data URL)")


class RecognizeRequest(BaseModel):
    """Request model for face verification endpoint."""

    image: Optional[str] = Field(None, description="Base64 encoded image (raw or data URL)")


class UserSummary(BaseModel):
    """Public identity of a registered user."""

    id: str
    name: str


class RegisterResponse(BaseModel):
    """Response model for user registration endpoint."""

    success: bool = Field(..., description="Whether registration succeeded")
    user: UserSummary

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "success": True,
            "user": {"id": "k3j9x0q2mz", "name": "Alice"}
        }
    })


class RecognizeResponse(BaseModel):
    """Response model for face verification endpoint.

    A denied verification is still a successful call: `success` is false
    and `message` carries the denial reason.
    """

    success: bool = Field(..., description="Whether access was granted")
    user: Optional[UserSummary] = Field(None, description="Matched user (only on success)")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Display confidence, not a probability")
    message: Optional[str] = Field(None, description="Denial message (only on failure)")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "success": True,
            "user": {"id": "k3j9x0q2mz", "name": "Alice"},
            "confidence": 0.82
        }
    })


class TriggerResponse(BaseModel):
    """Response model for the trigger-capture endpoint."""

    timestamp: int = Field(..., ge=0, description="Last accepted trigger time in epoch milliseconds")
    success: Optional[bool] = None
    message: Optional[str] = None


class UserListResponse(BaseModel):
    """Response model for the registered users listing."""

    users: List[UserSummary]


class DeleteUserResponse(BaseModel):
    """Response model for user deletion."""

    success: bool
    user: UserSummary


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str = Field(..., description="Service health status")
    modelsLoaded: Dict[str, bool] = Field(..., description="Detector component load status")
    users: int = Field(..., ge=0, description="Number of registered users")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "status": "ok",
            "modelsLoaded": {
                "faceDetector": True,
                "faceLandmark": True,
                "faceRecognition": True
            },
            "users": 3
        }
    })


class ErrorResponse(BaseModel):
    """Standard error response model."""

    error: str = Field(..., description="Error type or category")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error context")
    correlation_id: str = Field(..., description="Request correlation ID for tracing")
    timestamp: datetime = Field(..., description="Error timestamp")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "error": "NoFaceDetectedError",
            "message": "Could not detect a face in the provided image",
            "details": None,
            "correlation_id": "req_1700000000000",
            "timestamp": "2024-01-01T12:00:00Z"
        }
    })
