"""Session hooks called by the frontend around sign-in and sign-out.

The external auth provider owns credentials; these endpoints only refresh
the cached admin status for the bearer of the token.
"""

from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ideabox.core.auth import user_from_token, invalidate_admin_status, is_admin, oauth2_scheme
from ideabox.database import get_db

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/session")
def start_session(token: Optional[str] = Depends(oauth2_scheme), db: Session = Depends(get_db)):
    """After sign-in: drop any stale admin status and report the fresh one."""
    user = user_from_token(token, db)
    invalidate_admin_status(user.id)
    return {"user_id": user.id, "email": user.email, "is_admin": is_admin(user)}


@router.delete("/session", status_code=status.HTTP_204_NO_CONTENT)
def end_session(token: Optional[str] = Depends(oauth2_scheme), db: Session = Depends(get_db)):
    """On sign-out: forget the cached admin status."""
    user = user_from_token(token, db)
    invalidate_admin_status(user.id)
    return None
