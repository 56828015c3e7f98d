import datetime
from typing import List, Optional
from pydantic import BaseModel, EmailStr, constr, field_validator

from Models.auth_models import ALL_ROLES, User

MIN_PASSWORD_LEN = 6


def _normalize_email(v):
    if isinstance(v, str):
        return v.strip().lower()
    return v


def _normalize_role_label(v: str | None) -> str | None:
    if v is None:
        return None
    v = v.strip().lower()
    if not v:
        return None
    if v in {"head-of-department", "head_of_department", "head of department"}:
        v = "hod"
    return v


# ---------- Requests ----------
class RegisterIn(BaseModel):
    email: EmailStr
    password: constr(min_length=MIN_PASSWORD_LEN)
    name: constr(strip_whitespace=True, min_length=1, max_length=120)
    branch: constr(strip_whitespace=True, min_length=1, max_length=120)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        return _normalize_email(v)


class LoginIn(BaseModel):
    email: EmailStr
    password: str

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        return _normalize_email(v)


class RefreshIn(BaseModel):
    refresh_token: Optional[str] = None


class ChangeRoleIn(BaseModel):
    role: str

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: str) -> str:
        nv = _normalize_role_label(v)
        if nv is None or nv not in ALL_ROLES:
            raise ValueError(f"invalid role: {v!r}. Allowed: {list(ALL_ROLES)}")
        return nv


# ---------- Responses ----------
class UserOut(BaseModel):
    user_id: int
    email: str
    name: str
    branch: str
    role: str
    is_active: bool
    created_at: datetime.datetime
    last_active: Optional[datetime.datetime] = None


class TokenOut(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: UserOut


class UserStatsOut(BaseModel):
    students: int
    hods: int
    admins: int
    total: int


class AccessOut(BaseModel):
    path: str
    decision: str
    location: Optional[str] = None
    allowed_roles: Optional[List[str]] = None


# ---------- Helper ----------
def _user_to_schema(u: User) -> UserOut:
    p = u.profile
    return UserOut(
        user_id=u.user_id,
        email=p.email,
        name=p.name,
        branch=p.branch,
        role=u.role,
        is_active=u.is_active,
        created_at=u.created_at,
        last_active=u.last_active,
    )
