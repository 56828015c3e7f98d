# Models/complaints_models.py
from sqlalchemy import Column, String, Text, DateTime, Enum, Index

from Models.base import Base, PK_TYPE

CATEGORIES = (
    "Academic",
    "Infrastructure",
    "Faculty",
    "Hostel",
    "Library",
    "Canteen",
    "Sports",
    "Administration",
    "Other",
)

STATUS_PENDING = "Pending"
STATUS_RESOLVED = "Resolved"
# kept for the data model; nothing transitions a complaint into it
STATUS_ESCALATED = "Escalated"
STATUSES = (STATUS_PENDING, STATUS_RESOLVED, STATUS_ESCALATED)


class Complaint(Base):
    __tablename__ = "complaints"

    id = Column(PK_TYPE, primary_key=True, autoincrement=True)
    author_email = Column(String(255), nullable=False)
    author_name = Column(String(120), nullable=False)
    category = Column(Enum(*CATEGORIES, name="complaint_category_enum"), nullable=False)
    description = Column(Text, nullable=False)
    status = Column(Enum(*STATUSES, name="complaint_status_enum"),
                    nullable=False, default=STATUS_PENDING)
    branch = Column(String(120), nullable=False)
    attachment_url = Column(String(1024))
    created_at = Column(DateTime, nullable=False)
    resolved_at = Column(DateTime)
    resolved_by = Column(String(120))

    __table_args__ = (
        Index("idx_complaints_author", "author_email"),
        Index("idx_complaints_branch", "branch"),
        Index("idx_complaints_created", "created_at"),
    )
