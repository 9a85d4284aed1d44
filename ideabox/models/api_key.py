from sqlalchemy import Column, String, DateTime, Boolean, Index, text
from datetime import datetime, UTC
import uuid
import enum

from ideabox.database import Base


class Service(str, enum.Enum):
    openai = "openai"
    perplexity = "perplexity"
    anthropic = "anthropic"
    google = "google"
    custom = "custom"  # reserved, no adapter


class APIKey(Base):
    __tablename__ = "api_keys"
    __table_args__ = (
        Index("ix_api_keys_service_active", "service", "is_active"),
        # At most one active key per service, enforced by the database
        Index(
            "uq_api_keys_one_active",
            "service",
            unique=True,
            sqlite_where=text("is_active"),
            postgresql_where=text("is_active"),
        ),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    service = Column(String(50), nullable=False)
    encrypted_key = Column(String(1000), nullable=False)
    is_active = Column(Boolean, default=False, nullable=False)
    created_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC))
    last_used_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<APIKey(id={self.id}, service={self.service}, active={self.is_active})>"
