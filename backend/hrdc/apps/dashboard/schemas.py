# backend/hrdc/apps/dashboard/schemas.py

from __future__ import annotations

from typing import List

from pydantic import BaseModel

from hrdc.apps.training.schemas import TrainingProgramRead


class AdminDashboard(BaseModel):
    total_employees: int
    active_trainings: int
    upcoming_trainings: int
    total_registrations: int
    pending_registrations: int
    certificates_issued: int
    pending_feedback: int
    new_help_queries: int
    unread_notifications: int
    completion_rate: float


class EmployeeDashboard(BaseModel):
    upcoming_trainings: List[TrainingProgramRead]
    in_progress_trainings: List[TrainingProgramRead]
    completed_trainings: List[TrainingProgramRead]
    certificates_count: int
    pending_registrations: int
    pending_feedback: int
    unread_notifications: int
