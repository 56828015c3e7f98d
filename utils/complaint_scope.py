# utils/complaint_scope.py
"""
Role-scoped complaint reads.

The scope table is the record-level access rule for complaints:

    student            author_email == own email
    hod                branch == own branch
    admin / principal  unscoped

Every read path (list, stats, single fetch, resolve, live snapshots) goes
through ``scoped_query`` so a client cannot widen what it sees.
"""

from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from Models.auth_models import ROLE_ADMIN, ROLE_HOD, ROLE_PRINCIPAL, ROLE_STUDENT, User
from Models.complaints_models import (
    Complaint, STATUS_ESCALATED, STATUS_PENDING, STATUS_RESOLVED,
)


def scope_clauses(user: User) -> list:
    role = user.role
    if role == ROLE_STUDENT:
        return [Complaint.author_email == user.profile.email]
    if role == ROLE_HOD:
        return [Complaint.branch == user.profile.branch]
    if role in (ROLE_ADMIN, ROLE_PRINCIPAL):
        return []
    # unknown role sees nothing
    return [Complaint.id.is_(None)]


def is_visible(complaint: Complaint, user: User) -> bool:
    role = user.role
    if role == ROLE_STUDENT:
        return complaint.author_email == user.profile.email
    if role == ROLE_HOD:
        return complaint.branch == user.profile.branch
    return role in (ROLE_ADMIN, ROLE_PRINCIPAL)


def scoped_query(user: User, status: Optional[str] = None, category: Optional[str] = None):
    stmt = select(Complaint).where(*scope_clauses(user))
    if status:
        stmt = stmt.where(Complaint.status == status)
    if category:
        stmt = stmt.where(Complaint.category == category)
    return stmt.order_by(Complaint.created_at.desc(), Complaint.id.desc())


def list_visible(
        db: Session,
        user: User,
        status: Optional[str] = None,
        category: Optional[str] = None,
) -> List[Complaint]:
    return list(db.execute(scoped_query(user, status, category)).scalars().all())


def get_visible(db: Session, user: User, complaint_id: int) -> Optional[Complaint]:
    c = db.get(Complaint, complaint_id)
    if c is None or not is_visible(c, user):
        return None
    return c


def scoped_stats(db: Session, user: User) -> dict:
    stmt = (
        select(Complaint.status, func.count(Complaint.id))
        .where(*scope_clauses(user))
        .group_by(Complaint.status)
    )
    counts = {s: n for s, n in db.execute(stmt).all()}
    total = sum(counts.values())
    resolved = counts.get(STATUS_RESOLVED, 0)
    return {
        "total": total,
        "pending": counts.get(STATUS_PENDING, 0),
        "resolved": resolved,
        "escalated": counts.get(STATUS_ESCALATED, 0),
        "resolution_rate": round(resolved / total * 100) if total else 0,
    }
