from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional

from ideabox.models.api_key import Service


class APIKeyCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    service: Service
    secret: str = Field(..., min_length=1)


class APIKeyResponse(BaseModel):
    id: str
    name: str
    service: str
    is_active: bool
    key_preview: str  # Last 4 chars, e.g., "...abcd"
    created_by: Optional[str] = None
    created_at: datetime
    last_used_at: Optional[datetime] = None


class APIKeySecret(BaseModel):
    id: str
    secret: str


class ServiceStatus(BaseModel):
    service: str
    supported: bool
    active_key_id: Optional[str] = None


class ServicesResponse(BaseModel):
    services: list[ServiceStatus]


class ConnectionTestRequest(BaseModel):
    model: Optional[str] = Field(None, min_length=1)  # service default when omitted


class ConnectionTestResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    model_available: Optional[bool] = None
