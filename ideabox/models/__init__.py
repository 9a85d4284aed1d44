from ideabox.models.api_key import APIKey, Service
from ideabox.models.usage_log import UsageLog
from ideabox.models.user import User

__all__ = ["APIKey", "Service", "UsageLog", "User"]
