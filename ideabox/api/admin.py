from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ideabox.api.deps import get_ai_service, get_credential_store
from ideabox.core.ai_providers import ADAPTERS
from ideabox.core.ai_service import AIService
from ideabox.core.auth import require_admin
from ideabox.core.credentials import CredentialRecord, CredentialStore
from ideabox.core.usage import TIMEFRAMES, list_usage_logs
from ideabox.database import get_db
from ideabox.models.api_key import Service
from ideabox.models.user import User
from ideabox.schemas.api_key import (
    APIKeyCreate,
    APIKeyResponse,
    APIKeySecret,
    ConnectionTestRequest,
    ConnectionTestResponse,
    ServiceStatus,
    ServicesResponse,
)
from ideabox.schemas.usage import UsageLogResponse

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


def _to_response(record: CredentialRecord, store: CredentialStore) -> dict:
    """Response dict with a masked preview instead of the secret."""
    return {
        "id": record.id,
        "name": record.name,
        "service": record.service,
        "is_active": record.is_active,
        "key_preview": store.preview(record),
        "created_by": record.created_by,
        "created_at": record.created_at,
        "last_used_at": record.last_used_at,
    }


# --- API Key Management ---


@router.get("/api-keys", response_model=List[APIKeyResponse])
def list_api_keys(
    service: Optional[Service] = None,
    store: CredentialStore = Depends(get_credential_store),
):
    """List stored API keys, newest first (keys are masked)."""
    records = store.list(service.value if service else None)
    return [_to_response(r, store) for r in records]


@router.post("/api-keys", response_model=APIKeyResponse, status_code=status.HTTP_201_CREATED)
def create_api_key(
    data: APIKeyCreate,
    store: CredentialStore = Depends(get_credential_store),
    current_user: Optional[User] = Depends(require_admin),
):
    """Store a new API key (encrypted). Active if its service has no active key yet."""
    try:
        record = store.create(
            data.name,
            data.service,
            data.secret,
            created_by=current_user.id if current_user else None,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    return _to_response(record, store)


@router.post("/api-keys/{key_id}/activate", response_model=APIKeyResponse)
def activate_api_key(key_id: str, store: CredentialStore = Depends(get_credential_store)):
    """Make this key the only active key of its service."""
    return _to_response(store.activate(key_id), store)


@router.get("/api-keys/{key_id}/secret", response_model=APIKeySecret)
def reveal_api_key(key_id: str, store: CredentialStore = Depends(get_credential_store)):
    """Plaintext secret for copy-to-clipboard."""
    return {"id": key_id, "secret": store.reveal(key_id)}


@router.post(
    "/api-keys/{key_id}/test",
    response_model=ConnectionTestResponse,
    responses={400: {"model": ConnectionTestResponse}},
)
def test_api_key(
    key_id: str,
    data: Optional[ConnectionTestRequest] = None,
    service: AIService = Depends(get_ai_service),
):
    """Check a key against the provider's model listing.

    200 when the provider accepts the key, 400 with success=false otherwise.
    model_available tells whether the given (or default) model is listed.
    """
    result = service.test_connection(key_id, model=data.model if data else None)
    return JSONResponse(
        status_code=status.HTTP_200_OK if result.success else status.HTTP_400_BAD_REQUEST,
        content=ConnectionTestResponse(**result.to_dict()).model_dump(),
    )


@router.delete("/api-keys/{key_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_api_key(key_id: str, store: CredentialStore = Depends(get_credential_store)):
    """Delete an API key. No other key is promoted in its place."""
    store.delete(key_id)
    return None


@router.get("/services", response_model=ServicesResponse)
def list_services(store: CredentialStore = Depends(get_credential_store)):
    """Every service with its active key id."""
    active = store.active_key_ids()
    return ServicesResponse(services=[
        ServiceStatus(service=s.value, supported=s in ADAPTERS, active_key_id=active[s.value])
        for s in Service
    ])


# --- Usage Logs ---


@router.get("/usage-logs", response_model=List[UsageLogResponse])
def get_usage_logs(
    timeframe: str = Query("week"),
    search: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """Recent AI usage, newest first."""
    if timeframe not in TIMEFRAMES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown timeframe '{timeframe}'. Available: {list(TIMEFRAMES)}",
        )
    return list_usage_logs(db, timeframe=timeframe, search=search, limit=limit)
