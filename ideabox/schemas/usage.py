from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Optional


class UsageLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    operation: str
    service: str
    model: Optional[str] = None
    tokens_used: Optional[int] = None
    successful: bool
    error: Optional[str] = None
    api_key_id: Optional[str] = None
    user_id: Optional[str] = None
    created_at: datetime
