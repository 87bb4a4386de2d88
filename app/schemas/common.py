"""Standard API envelope shared by every endpoint."""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ResponseMeta(BaseModel):
    timestamp: datetime = Field(..., description="Server time the response was created")
    request_id: str = Field(..., description="Correlation id of the request")
    api_version: str = Field(default="v1", description="API version")


class ApiResponse(BaseModel):
    """Envelope for successful responses."""

    status: bool = Field(default=True, description="Whether the operation succeeded")
    message: str = Field(..., description="Human-readable status message")
    data: Dict[str, Any] = Field(default_factory=dict, description="Response payload")
    meta: ResponseMeta


class ErrorDetail(BaseModel):
    """Problem details (RFC 7807) returned for failures."""

    title: str = Field(..., description="Error type, e.g. 'Not Found'")
    status: int = Field(..., description="HTTP status code")
    detail: str = Field(..., description="Human-readable error message")
    instance: Optional[str] = Field(None, description="Request path")
    request_id: str = Field(..., description="Correlation id of the request")
    timestamp: datetime
