"""Authentication: JWT verification and the admin guard.

Tokens are issued by the external auth provider and signed with JWT_SECRET.
Admin status is cached per user for ADMIN_CACHE_TTL seconds; sign-in and
sign-out invalidate the entry.
"""

from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from ideabox.config import settings
from ideabox.core.cache import get_cache
from ideabox.database import get_db
from ideabox.models.user import User

# tokenUrl only feeds the Swagger UI; tokens come from the auth provider
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)

ADMIN_CACHE_PREFIX = "admin_status:"


def decode_token(token: str) -> dict:
    """Decode and validate a JWT token. Raises JWTError on failure."""
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])


def user_from_token(token: Optional[str], db: Session) -> User:
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        payload = decode_token(token)
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    user = db.query(User).filter(User.id == user_id, User.is_active == True).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )
    return user


def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> Optional[User]:
    """Current user from the bearer token, or None when AUTH_ENABLED is False."""
    if not settings.AUTH_ENABLED:
        return None
    return user_from_token(token, db)


def is_admin(user: User) -> bool:
    cache = get_cache()
    key = ADMIN_CACHE_PREFIX + user.id
    cached = cache.get(key)
    if cached is not None:
        return cached == "1"
    value = bool(user.is_admin)
    cache.set(key, "1" if value else "0", ttl=settings.ADMIN_CACHE_TTL)
    return value


def invalidate_admin_status(user_id: str) -> None:
    get_cache().delete(ADMIN_CACHE_PREFIX + user_id)


def require_admin(
    current_user: Optional[User] = Depends(get_current_user),
) -> Optional[User]:
    """Require admin privileges. No-op when AUTH_ENABLED is False."""
    if current_user is not None and not is_admin(current_user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return current_user
