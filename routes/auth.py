from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import (
    APIRouter, Body, Depends, HTTPException, Path, Query, Request, Response, status
)
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from auth.deps import (
    PROFILE_NOT_FOUND, get_current_user, get_optional_user, load_user, require_roles,
)
from auth.guard import decide_path, ROUTE_ROLES
from auth.security import (
    hash_password, verify_password,
    create_access_token, hash_refresh_token,
    make_refresh_token, refresh_exp,
)
from Connections.db_sql import get_db
from Models.auth_models import (
    AuthAudit, Profile, RefreshToken, User, UserRole,
    ROLE_ADMIN, ROLE_HOD, ROLE_PRINCIPAL, ROLE_STUDENT,
)
from Schemas.auth_schemas import (
    AccessOut, ChangeRoleIn, LoginIn, RefreshIn, RegisterIn,
    TokenOut, UserOut, UserStatsOut, _user_to_schema,
)
from utils.complaint_feed import ComplaintFeed, get_feed
from utils.date_utils import utcnow

router = APIRouter()
logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"
EMAIL_TAKEN = "Email already registered"


# ---------------- Helpers ---------------- #
def _client_meta(request: Request) -> dict:
    return {
        "user_agent": request.headers.get("user-agent", "")[:255],
        "ip": (request.client.host if request.client else None),
    }


def _audit(db: Session, request: Request, event: str, user_id: Optional[int] = None,
           details: Optional[str] = None) -> None:
    db.add(AuthAudit(user_id=user_id, event=event, details=(details or "")[:255] or None,
                     **_client_meta(request)))


def _issue_tokens(db: Session, request: Request, u: User) -> TokenOut:
    access = create_access_token(str(u.user_id), u.role)
    raw, digest = make_refresh_token()
    db.add(RefreshToken(
        user_id=u.user_id,
        token_hash=digest,
        expires_at=refresh_exp(),
        **_client_meta(request),
    ))
    return TokenOut(access_token=access, refresh_token=raw, user=_user_to_schema(u))


def _extract_refresh_token(request: Request, data: Optional[RefreshIn]) -> Optional[str]:
    """
    Accept refresh token from (priority order):
    1) body: {"refresh_token": "..."}
    2) cookie: refresh_token / refreshToken
    3) header: X-Refresh-Token: <token>
    4) header: Authorization: Refresh <token>
    """
    if data and data.refresh_token:
        t = data.refresh_token.strip()
        if t:
            return t

    for key in ("refresh_token", "refreshToken"):
        v = request.cookies.get(key)
        if v and v.strip():
            return v.strip()

    xrt = request.headers.get("X-Refresh-Token")
    if xrt and xrt.strip():
        return xrt.strip()

    auth = request.headers.get("Authorization")
    if auth:
        scheme, _, token = auth.partition(" ")
        if scheme.lower() == "refresh" and token.strip():
            return token.strip()

    return None


def _email_taken(db: Session, email: str) -> bool:
    return db.query(User.user_id).filter(User.email == email).first() is not None


def _get_user_or_404(db: Session, user_id: int) -> User:
    u = load_user(db, user_id)
    if not u:
        raise HTTPException(404, "User not found")
    return u


# ---------------- Identity ---------------- #
@router.post("/register", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def register(data: RegisterIn, request: Request, db: Session = Depends(get_db)):
    if _email_taken(db, data.email):
        raise HTTPException(409, EMAIL_TAKEN)
    u = User(email=data.email, password_hash=hash_password(data.password))
    u.profile = Profile(email=data.email, name=data.name, branch=data.branch)
    u.role_row = UserRole(role=ROLE_STUDENT)
    db.add(u)
    try:
        db.flush()
        _audit(db, request, "REGISTER", u.user_id)
        db.commit()
    except IntegrityError:
        # a concurrent registration won the unique email index
        db.rollback()
        raise HTTPException(409, EMAIL_TAKEN)
    db.refresh(u)
    logger.info("Registered %s (%s)", data.email, data.branch)
    # registration never signs the caller in
    return _user_to_schema(u)


@router.post("/login", response_model=TokenOut)
def login(data: LoginIn, request: Request, db: Session = Depends(get_db)):
    u = (
        db.query(User)
        .options(selectinload(User.profile), selectinload(User.role_row))
        .filter(User.email == data.email)
        .first()
    )
    if not u or not verify_password(data.password, u.password_hash):
        _audit(db, request, "LOGIN_FAILED", u.user_id if u else None, data.email)
        db.commit()
        raise HTTPException(401, INVALID_CREDENTIALS)
    if not u.is_active:
        _audit(db, request, "LOGIN_FAILED", u.user_id, "inactive")
        db.commit()
        raise HTTPException(401, "User disabled")
    if u.profile is None or u.role_row is None:
        # credentials were fine, the profile/role pair is missing
        _audit(db, request, "LOGIN_FAILED", u.user_id, "profile missing")
        db.commit()
        raise HTTPException(404, PROFILE_NOT_FOUND)

    u.last_active = utcnow()
    out = _issue_tokens(db, request, u)
    _audit(db, request, "LOGIN_SUCCESS", u.user_id)
    db.commit()
    return out


@router.post("/refresh", response_model=TokenOut)
def refresh(
        request: Request,
        data: RefreshIn | None = Body(None),
        db: Session = Depends(get_db),
):
    token = _extract_refresh_token(request, data)
    if not token:
        raise HTTPException(401, "Missing refresh token (body/cookie/X-Refresh-Token/Authorization: Refresh)")

    rt = db.query(RefreshToken).filter(
        RefreshToken.token_hash == hash_refresh_token(token),
        RefreshToken.revoked.is_(False),
    ).first()
    if not rt:
        raise HTTPException(401, "Invalid refresh token")
    if rt.expires_at <= utcnow():
        raise HTTPException(401, "Refresh expired")

    user = load_user(db, rt.user_id)
    if not user or not user.is_active:
        raise HTTPException(401, "User inactive or missing")
    if user.profile is None or user.role_row is None:
        raise HTTPException(404, PROFILE_NOT_FOUND)

    # rotate
    rt.revoked = True
    user.last_active = utcnow()
    out = _issue_tokens(db, request, user)
    _audit(db, request, "REFRESH", user.user_id)
    db.commit()
    return out


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
        request: Request,
        data: RefreshIn | None = Body(None),
        db: Session = Depends(get_db),
):
    token = _extract_refresh_token(request, data)
    if token:
        rt = db.query(RefreshToken).filter(RefreshToken.token_hash == hash_refresh_token(token)).first()
        if rt and not rt.revoked:
            rt.revoked = True
            _audit(db, request, "LOGOUT", rt.user_id)
            db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/me", response_model=UserOut)
def me(user: User = Depends(get_current_user)):
    return _user_to_schema(user)


@router.get("/access", response_model=AccessOut)
def access(
        path: str = Query(..., description="Front-end route, e.g. /all-complaints"),
        user: User | None = Depends(get_optional_user),
):
    decision = decide_path(path, user)
    allowed = ROUTE_ROLES.get(path)
    return AccessOut(
        path=path,
        decision=decision.action.value,
        location=decision.location,
        allowed_roles=list(allowed) if allowed else None,
    )


# ---------------- Users (admin) ---------------- #
@router.get("/users", response_model=List[UserOut])
def list_users(
        q: Optional[str] = Query(None, description="Matches name, email or branch"),
        db: Session = Depends(get_db),
        _=Depends(require_roles(ROLE_ADMIN)),
):
    query = (
        db.query(User)
        .join(Profile, Profile.user_id == User.user_id)
        .options(selectinload(User.profile), selectinload(User.role_row))
    )
    if q and q.strip():
        like = f"%{q.strip().lower()}%"
        query = query.filter(or_(
            func.lower(Profile.name).like(like),
            func.lower(Profile.email).like(like),
            func.lower(Profile.branch).like(like),
        ))
    users = query.order_by(User.created_at.desc(), User.user_id.desc()).all()
    return [_user_to_schema(u) for u in users if u.role_row is not None]


@router.get("/users/stats", response_model=UserStatsOut)
def user_stats(
        db: Session = Depends(get_db),
        _=Depends(require_roles(ROLE_ADMIN)),
):
    counts = dict(db.query(UserRole.role, func.count(UserRole.user_id)).group_by(UserRole.role).all())
    return UserStatsOut(
        students=counts.get(ROLE_STUDENT, 0),
        hods=counts.get(ROLE_HOD, 0),
        admins=counts.get(ROLE_ADMIN, 0) + counts.get(ROLE_PRINCIPAL, 0),
        total=sum(counts.values()),
    )


@router.get("/users/{user_id}", response_model=UserOut)
def get_user(
        user_id: int = Path(...),
        db: Session = Depends(get_db),
        _=Depends(require_roles(ROLE_ADMIN)),
):
    u = _get_user_or_404(db, user_id)
    if u.profile is None or u.role_row is None:
        raise HTTPException(404, PROFILE_NOT_FOUND)
    return _user_to_schema(u)


@router.patch("/users/{user_id}/role", response_model=UserOut)
def change_role(
        payload: ChangeRoleIn,
        request: Request,
        user_id: int = Path(...),
        db: Session = Depends(get_db),
        admin: User = Depends(require_roles(ROLE_ADMIN)),
        feed: ComplaintFeed = Depends(get_feed),
):
    if user_id == admin.user_id:
        raise HTTPException(400, "You cannot change your own role")
    u = _get_user_or_404(db, user_id)
    if u.profile is None:
        raise HTTPException(404, PROFILE_NOT_FOUND)

    previous = u.role
    if u.role_row is None:
        u.role_row = UserRole(role=payload.role)
    else:
        u.role_row.role = payload.role
    _audit(db, request, "ROLE_CHANGED", u.user_id, f"{previous} -> {payload.role} by {admin.user_id}")
    db.commit()
    db.refresh(u)
    logger.info("Role of user %s changed %s -> %s", u.user_id, previous, payload.role)
    # open views of this user must re-derive their scope
    feed.publish("role_changed", u.user_id)
    return _user_to_schema(u)


@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
        request: Request,
        user_id: int = Path(...),
        db: Session = Depends(get_db),
        admin: User = Depends(require_roles(ROLE_ADMIN)),
        feed: ComplaintFeed = Depends(get_feed),
):
    if user_id == admin.user_id:
        raise HTTPException(400, "You cannot delete your own account")
    u = _get_user_or_404(db, user_id)
    db.delete(u)  # cascades to profile, role and refresh tokens
    _audit(db, request, "USER_DELETED", user_id, f"by {admin.user_id}")
    db.commit()
    logger.info("User %s deleted by %s", user_id, admin.user_id)
    feed.publish("user_deleted", user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
