# Models/auth_models.py
from sqlalchemy.orm import relationship
from sqlalchemy import (
    Column, BigInteger, String, Boolean, DateTime, ForeignKey, Enum, func
)

from Models.base import Base, PK_TYPE

ROLE_STUDENT = "student"
ROLE_HOD = "hod"
ROLE_ADMIN = "admin"
ROLE_PRINCIPAL = "principal"
ALL_ROLES = (ROLE_STUDENT, ROLE_HOD, ROLE_ADMIN, ROLE_PRINCIPAL)
STAFF_ROLES = (ROLE_HOD, ROLE_ADMIN, ROLE_PRINCIPAL)


class User(Base):
    """Identity record: credentials only. Display data lives on Profile."""
    __tablename__ = "users"
    user_id = Column(PK_TYPE, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)
    last_active = Column(DateTime, nullable=True)

    profile = relationship(
        "Profile", uselist=False, back_populates="user", cascade="all, delete-orphan"
    )
    role_row = relationship(
        "UserRole", uselist=False, back_populates="user", cascade="all, delete-orphan"
    )
    refresh_tokens = relationship(
        "RefreshToken", back_populates="user", cascade="all, delete-orphan"
    )

    @property
    def role(self):
        return self.role_row.role if self.role_row else None


class Profile(Base):
    __tablename__ = "profiles"
    user_id = Column(BigInteger, ForeignKey("users.user_id", ondelete="CASCADE"), primary_key=True)
    email = Column(String(255), nullable=False, index=True)
    name = Column(String(120), nullable=False)
    branch = Column(String(120), nullable=False, index=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)
    user = relationship("User", back_populates="profile")


class UserRole(Base):
    # user_id as primary key: exactly one role per identity
    __tablename__ = "user_roles"
    user_id = Column(BigInteger, ForeignKey("users.user_id", ondelete="CASCADE"), primary_key=True)
    role = Column(Enum(*ALL_ROLES, name="user_role_enum"), nullable=False, default=ROLE_STUDENT)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)
    user = relationship("User", back_populates="role_row")


class RefreshToken(Base):
    __tablename__ = "refresh_tokens"
    id = Column(PK_TYPE, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = Column(String(64), unique=True, nullable=False, index=True)  # 64-char SHA256 hex
    expires_at = Column(DateTime, nullable=False)
    revoked = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    user_agent = Column(String(255))
    ip = Column(String(45))
    user = relationship("User", back_populates="refresh_tokens")


class AuthAudit(Base):
    __tablename__ = "auth_audit"
    id = Column(PK_TYPE, primary_key=True, autoincrement=True)
    # no FK: audit rows outlive deleted users
    user_id = Column(BigInteger, nullable=True, index=True)
    event = Column(String(50), nullable=False)  # LOGIN_SUCCESS, LOGIN_FAILED, LOGOUT, etc.
    details = Column(String(255))
    ip = Column(String(45))
    user_agent = Column(String(255))
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
