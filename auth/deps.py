from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError
from sqlalchemy.orm import Session, selectinload

from auth.security import decode_access_token
from Connections.db_sql import get_db
from Models.auth_models import User

bearer = HTTPBearer(auto_error=False)

PROFILE_NOT_FOUND = "Profile not found. Please contact the administrator."


def load_user(db: Session, user_id: int) -> User | None:
    return (
        db.query(User)
        .options(selectinload(User.profile), selectinload(User.role_row))
        .filter(User.user_id == user_id)
        .first()
    )


def user_from_token(db: Session, token: str) -> User:
    """Resolve a bearer token to an active user with profile and role loaded.

    The role is read from the database on every call, never from the token,
    so a role change applies to the very next request.
    """
    try:
        payload = decode_access_token(token)
        user_id = int(payload["sub"])
    except (JWTError, KeyError, TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")

    return active_user(db, user_id)


def active_user(db: Session, user_id: int) -> User:
    """Load an account that may still act: active, with profile and role."""
    user = load_user(db, user_id)
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User disabled or not found")
    if user.profile is None or user.role_row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=PROFILE_NOT_FOUND)
    return user


def get_current_user(
        creds: HTTPAuthorizationCredentials = Depends(bearer),
        db: Session = Depends(get_db),
) -> User:
    if not creds:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return user_from_token(db, creds.credentials)


def get_optional_user(
        creds: HTTPAuthorizationCredentials = Depends(bearer),
        db: Session = Depends(get_db),
) -> User | None:
    if not creds:
        return None
    try:
        return user_from_token(db, creds.credentials)
    except HTTPException:
        return None


def require_roles(*allowed):
    def _guard(user: User = Depends(get_current_user)):
        if user.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return user

    return _guard
