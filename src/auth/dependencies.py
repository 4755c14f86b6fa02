import secrets
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from src.config import settings
from src.database import get_db
from src.auth.utils import verify_token
from src.auth.service import UserService
from src.auth.schemas import Actor

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)

def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)):
    """Get current authenticated user"""
    credentials_exception = _credentials_exception()
    token_data = verify_token(token, credentials_exception)

    user = UserService.get_user_by_id(db, user_id=token_data["user_id"])
    if user is None:
        raise credentials_exception

    return user

def get_optional_user(
    token: Optional[str] = Depends(optional_oauth2_scheme),
    db: Session = Depends(get_db)
):
    """Current user when a bearer token is sent, None for guest requests"""
    if not token:
        return None
    return get_current_user(token, db)

def get_actor(
    current_user = Depends(get_optional_user),
    guest_email: Optional[str] = Header(None, alias="X-Guest-Email"),
    db: Session = Depends(get_db)
) -> Actor:
    """Identity used to authorise booking transitions"""
    if current_user is None:
        return Actor(guest_email=guest_email)
    return Actor(user_id=current_user.id, is_admin=UserService.is_admin(db, current_user.id))

def require_admin(current_user = Depends(get_current_user), db: Session = Depends(get_db)):
    """Require admin role for access"""
    if not UserService.is_admin(db, current_user.id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not enough permissions"
        )
    return current_user

def require_admin_or_cron(
    cron_token: Optional[str] = Header(None, alias="X-Cron-Token"),
    token: Optional[str] = Depends(optional_oauth2_scheme),
    db: Session = Depends(get_db)
) -> Actor:
    """Admin users or schedulers presenting the shared cron secret"""
    if cron_token and settings.CRON_SECRET and secrets.compare_digest(cron_token, settings.CRON_SECRET):
        return Actor.system()
    if not token:
        raise _credentials_exception()
    user = require_admin(get_current_user(token, db), db)
    return Actor(user_id=user.id, is_admin=True)
