# backend/hrdc/apps/help/schemas.py

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from .models import HelpQueryStatus


class HelpQueryCreate(BaseModel):
    """
    Help form. name / email default to the employee's profile when omitted.
    """

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    query_type: str = Field("General", min_length=1, max_length=50)
    subject: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=1000)


class HelpQueryRead(BaseModel):
    id: int
    employee_id: int
    employee_name: Optional[str] = None
    name: str
    email: str
    query_type: str
    subject: str
    message: str
    status: HelpQueryStatus
    viewed_by_admin: bool
    resolved_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True

    @classmethod
    def from_query(cls, query) -> "HelpQueryRead":
        read = cls.model_validate(query)
        employee = getattr(query, "employee", None)
        if employee is not None:
            read.employee_name = employee.full_name
        return read


class HelpQueryStatusUpdate(BaseModel):
    status: HelpQueryStatus


class UnviewedCount(BaseModel):
    count: int
