"""Shared FastAPI dependencies: per-request credential store and AI service."""

from fastapi import Depends
from sqlalchemy.orm import Session

from ideabox.config import settings
from ideabox.core.ai_service import AIService
from ideabox.core.credentials import CredentialStore, SqlCredentialRepository
from ideabox.core.usage import SqlUsageRecorder
from ideabox.database import get_db


def get_credential_store(db: Session = Depends(get_db)) -> CredentialStore:
    return CredentialStore(SqlCredentialRepository(db), settings.ENCRYPTION_SECRET)


def get_ai_service(
    db: Session = Depends(get_db),
    credentials: CredentialStore = Depends(get_credential_store),
) -> AIService:
    return AIService(credentials, recorder=SqlUsageRecorder(db))
