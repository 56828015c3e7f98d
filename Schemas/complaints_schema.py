# Schemas/complaints_schema.py
from pydantic import BaseModel, ConfigDict, AnyHttpUrl, constr, field_validator
from typing import Literal, Optional, List
from datetime import datetime

from Models.complaints_models import CATEGORIES, STATUSES

MIN_DESCRIPTION_LEN = 20

CategoryLiteral = Literal[CATEGORIES]
StatusLiteral = Literal[STATUSES]


class ComplaintCreate(BaseModel):
    category: CategoryLiteral
    description: constr(min_length=MIN_DESCRIPTION_LEN)
    attachment_url: Optional[AnyHttpUrl] = None

    @field_validator("attachment_url", mode="before")
    @classmethod
    def blank_url_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class ComplaintOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    author_email: str
    author_name: str
    category: str
    description: str
    status: str
    branch: str
    attachment_url: Optional[str] = None
    created_at: datetime
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None


class ComplaintStatsOut(BaseModel):
    total: int
    pending: int
    resolved: int
    escalated: int
    resolution_rate: int


class ComplaintSnapshot(BaseModel):
    """One full result set pushed over the live subscription."""
    items: List[ComplaintOut]
    total: int
