from typing import Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from .auth_utils import decode_access_token
from .database import get_db
from .errors import AuthenticationError, PermissionDenied
from .models.user import User
from .policy import is_administrator

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def _load_active_user(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.user_id == user_id).first()
    if not user:
        raise AuthenticationError("Invalid token - user not found", code="USER_NOT_FOUND")
    if not user.is_active:
        raise AuthenticationError("Account is deactivated", code="ACCOUNT_DEACTIVATED")
    return user


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    """Decode the bearer token and fetch the current user; fails closed."""
    user_id = decode_access_token(token)
    return _load_active_user(db, user_id)


def get_optional_user(
    token: Optional[str] = Depends(optional_oauth2_scheme),
    db: Session = Depends(get_db),
) -> Optional[User]:
    """Same as get_current_user, but anonymous callers get None instead of an error."""
    if not token:
        return None
    try:
        return _load_active_user(db, decode_access_token(token))
    except AuthenticationError:
        return None


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if not is_administrator(current_user):
        raise PermissionDenied("Admin access required", code="INSUFFICIENT_PERMISSIONS")
    return current_user
