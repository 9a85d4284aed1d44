from sqlalchemy import Column, String, DateTime, Boolean
from datetime import datetime, UTC
import uuid

from ideabox.database import Base


class User(Base):
    """Local mirror of an account owned by the external auth provider."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, nullable=False, index=True)
    is_active = Column(Boolean, default=True)
    is_admin = Column(Boolean, default=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC))

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email})>"
