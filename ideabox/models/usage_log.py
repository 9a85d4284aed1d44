from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey, Integer, Text
from datetime import datetime, UTC
import uuid

from ideabox.database import Base


class UsageLog(Base):
    """One row per dispatch attempt. Rows are never updated."""

    __tablename__ = "ai_usage_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    operation = Column(String(100), nullable=False)
    service = Column(String(50), nullable=False)
    model = Column(String(100), nullable=True)
    tokens_used = Column(Integer, nullable=True)
    successful = Column(Boolean, nullable=False, default=False)
    error = Column(Text, nullable=True)
    api_key_id = Column(String(36), ForeignKey("api_keys.id", ondelete="SET NULL"), nullable=True)
    user_id = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), index=True)

    def __repr__(self):
        return f"<UsageLog(id={self.id}, operation={self.operation}, ok={self.successful})>"
