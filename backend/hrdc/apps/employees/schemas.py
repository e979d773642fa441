# backend/hrdc/apps/employees/schemas.py

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class EmployeeBase(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=128)
    middle_name: Optional[str] = Field(None, max_length=128)
    last_name: str = Field(..., min_length=1, max_length=128)
    department: str = Field(..., min_length=1, max_length=128)
    designation: str = Field(..., min_length=1, max_length=128)
    institute: Optional[str] = Field(None, max_length=255)
    employee_type: str = Field(
        ...,
        max_length=64,
        description="Free text such as 'Technical', 'Non-Technical' or 'Administrative'.",
    )
    phone_number: Optional[str] = Field(None, max_length=32)
    alternate_phone: Optional[str] = Field(None, max_length=32)
    join_date: Optional[date] = None
    left_date: Optional[date] = None


class EmployeeCreate(EmployeeBase):
    """Creates the login account and the HR profile together."""

    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)


class EmployeeUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=128)
    middle_name: Optional[str] = None
    last_name: Optional[str] = Field(None, min_length=1, max_length=128)
    department: Optional[str] = None
    designation: Optional[str] = None
    institute: Optional[str] = None
    employee_type: Optional[str] = None
    phone_number: Optional[str] = None
    alternate_phone: Optional[str] = None
    join_date: Optional[date] = None
    left_date: Optional[date] = None
    email: Optional[EmailStr] = None


class EmployeeRead(EmployeeBase):
    id: int
    user_id: int
    email: Optional[str] = None
    full_name: str
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
