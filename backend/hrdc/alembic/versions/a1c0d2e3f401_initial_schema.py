"""
Initial HRDC schema: users, employees, training programs, registrations,
attendance, certificates, feedback, notifications and the email log.

Revision ID: a1c0d2e3f401
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "a1c0d2e3f401"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(with_updated: bool = True):
    columns = [sa.Column("created_at", sa.DateTime(timezone=True), nullable=False)]
    if with_updated:
        columns.append(sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False))
    return columns


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column(
            "role",
            sa.Enum("ADMIN", "EMPLOYEE", name="account_role_enum", native_enum=False),
            nullable=False,
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("is_web_notification_enabled", sa.Boolean(), nullable=False),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_role", "users", ["role"])
    op.create_index("ix_users_is_active", "users", ["is_active"])
    op.create_index("idx_users_role_active", "users", ["role", "is_active"])

    op.create_table(
        "employees",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("first_name", sa.String(length=128), nullable=False),
        sa.Column("middle_name", sa.String(length=128), nullable=True),
        sa.Column("last_name", sa.String(length=128), nullable=False),
        sa.Column("department", sa.String(length=128), nullable=False),
        sa.Column("designation", sa.String(length=128), nullable=False),
        sa.Column("institute", sa.String(length=255), nullable=True),
        sa.Column("employee_type", sa.String(length=64), nullable=False),
        sa.Column("phone_number", sa.String(length=32), nullable=True),
        sa.Column("alternate_phone", sa.String(length=32), nullable=True),
        sa.Column("join_date", sa.Date(), nullable=True),
        sa.Column("left_date", sa.Date(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_employees_id", "employees", ["id"])
    op.create_index("ix_employees_user_id", "employees", ["user_id"], unique=True)
    op.create_index("ix_employees_is_active", "employees", ["is_active"])
    op.create_index("idx_employees_active_department", "employees", ["is_active", "department"])

    op.create_table(
        "training_programs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("trainer_name", sa.String(length=255), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("from_time", sa.Time(), nullable=False),
        sa.Column("to_time", sa.Time(), nullable=False),
        sa.Column("valid_till", sa.Date(), nullable=True),
        sa.Column("venue", sa.String(length=255), nullable=True),
        sa.Column("eligibility_type", sa.String(length=128), nullable=True),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("mode", sa.String(length=32), nullable=False),
        sa.Column(
            "status",
            sa.Enum("SCHEDULED", "COMPLETED", "CANCELLED", name="training_status_enum", native_enum=False),
            nullable=False,
        ),
        sa.Column("marks_out_of", sa.Integer(), nullable=True),
        sa.Column("is_marks_entry", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.Column("updated_by_user_id", sa.Integer(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_training_programs_id", "training_programs", ["id"])
    op.create_index("ix_training_programs_start_date", "training_programs", ["start_date"])
    op.create_index("ix_training_programs_status", "training_programs", ["status"])
    op.create_index("ix_training_programs_is_active", "training_programs", ["is_active"])
    op.create_index("idx_training_programs_active_start", "training_programs", ["is_active", "start_date"])

    op.create_table(
        "training_registrations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("employee_id", sa.Integer(), sa.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "training_id",
            sa.Integer(),
            sa.ForeignKey("training_programs.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("applied", sa.Boolean(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("PENDING", "APPROVED", "REJECTED", name="registration_status_enum", native_enum=False),
            nullable=False,
        ),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("marks", sa.Integer(), nullable=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("decided_by_user_id", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_training_registrations_id", "training_registrations", ["id"])
    op.create_index("ix_training_registrations_employee_id", "training_registrations", ["employee_id"])
    op.create_index("ix_training_registrations_training_id", "training_registrations", ["training_id"])
    op.create_index("ix_training_registrations_status", "training_registrations", ["status"])
    op.create_index("ix_training_registrations_is_active", "training_registrations", ["is_active"])
    op.create_index(
        "idx_training_reg_training_status",
        "training_registrations",
        ["training_id", "status", "is_active"],
    )
    op.create_index("idx_training_reg_employee_active", "training_registrations", ["employee_id", "is_active"])

    op.create_table(
        "training_attendance",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "registration_id",
            sa.Integer(),
            sa.ForeignKey("training_registrations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("attendance_date", sa.Date(), nullable=False),
        sa.Column("is_present", sa.Boolean(), nullable=False),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        *_timestamps(with_updated=False),
        sa.UniqueConstraint("registration_id", "attendance_date", name="uq_training_attendance_reg_date"),
    )
    op.create_index("ix_training_attendance_id", "training_attendance", ["id"])
    op.create_index("ix_training_attendance_registration_id", "training_attendance", ["registration_id"])

    op.create_table(
        "training_certificates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "registration_id",
            sa.Integer(),
            sa.ForeignKey("training_registrations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("is_generated", sa.Boolean(), nullable=False),
        sa.Column("issue_date", sa.Date(), nullable=True),
        sa.Column("certificate_path", sa.String(length=512), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_training_certificates_id", "training_certificates", ["id"])
    op.create_index(
        "ix_training_certificates_registration_id",
        "training_certificates",
        ["registration_id"],
        unique=True,
    )

    op.create_table(
        "feedback_questions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("question_text", sa.Text(), nullable=False),
        sa.Column(
            "question_type",
            sa.Enum("RATING", "TEXT", name="feedback_question_type_enum", native_enum=False),
            nullable=False,
        ),
        sa.Column("is_common", sa.Boolean(), nullable=False),
        sa.Column(
            "training_id",
            sa.Integer(),
            sa.ForeignKey("training_programs.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(with_updated=False),
    )
    op.create_index("ix_feedback_questions_id", "feedback_questions", ["id"])
    op.create_index("ix_feedback_questions_training_id", "feedback_questions", ["training_id"])

    op.create_table(
        "training_feedback",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "registration_id",
            sa.Integer(),
            sa.ForeignKey("training_registrations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "question_id",
            sa.Integer(),
            sa.ForeignKey("feedback_questions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("rating_value", sa.Numeric(3, 1), nullable=True),
        sa.Column("response_text", sa.Text(), nullable=True),
        *_timestamps(with_updated=False),
        sa.UniqueConstraint("registration_id", "question_id", name="uq_training_feedback_reg_question"),
    )
    op.create_index("ix_training_feedback_id", "training_feedback", ["id"])
    op.create_index("ix_training_feedback_registration_id", "training_feedback", ["registration_id"])
    op.create_index("ix_training_feedback_question_id", "training_feedback", ["question_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=True),
        sa.Column("target_role", sa.String(length=32), nullable=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "(user_id IS NULL) <> (target_role IS NULL)",
            name="ck_notifications_single_target",
        ),
    )
    op.create_index("ix_notifications_id", "notifications", ["id"])
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index("ix_notifications_target_role", "notifications", ["target_role"])
    op.create_index("ix_notifications_is_read", "notifications", ["is_read"])
    op.create_index("ix_notifications_created_at", "notifications", ["created_at"])
    op.create_index(
        "ix_notifications_user_active_created",
        "notifications",
        ["user_id", "is_active", "created_at"],
    )
    op.create_index(
        "ix_notifications_role_active_created",
        "notifications",
        ["target_role", "is_active", "created_at"],
    )

    op.create_table(
        "email_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("recipient", sa.String(length=255), nullable=False),
        sa.Column("subject", sa.String(length=255), nullable=False),
        sa.Column("template_key", sa.String(length=128), nullable=False),
        sa.Column(
            "training_id",
            sa.Integer(),
            sa.ForeignKey("training_programs.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "status",
            sa.Enum("QUEUED", "SENT", "FAILED", "SKIPPED_NO_PROVIDER", name="email_status_enum", native_enum=False),
            nullable=False,
        ),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("context_json", sa.JSON(), nullable=True),
        sa.Column("correlation_id", sa.String(length=64), nullable=True),
    )
    op.create_index("ix_email_logs_id", "email_logs", ["id"])
    op.create_index("ix_email_logs_created_at", "email_logs", ["created_at"])
    op.create_index("ix_email_logs_recipient", "email_logs", ["recipient"])
    op.create_index("ix_email_logs_template_key", "email_logs", ["template_key"])
    op.create_index("ix_email_logs_status", "email_logs", ["status"])
    op.create_index("ix_email_logs_correlation_id", "email_logs", ["correlation_id"])
    op.create_index("ix_email_logs_training_created", "email_logs", ["training_id", "created_at"])
    op.create_index("ix_email_logs_status_created", "email_logs", ["status", "created_at"])


def downgrade() -> None:
    op.drop_table("email_logs")
    op.drop_table("notifications")
    op.drop_table("training_feedback")
    op.drop_table("feedback_questions")
    op.drop_table("training_certificates")
    op.drop_table("training_attendance")
    op.drop_table("training_registrations")
    op.drop_table("training_programs")
    op.drop_table("employees")
    op.drop_table("users")
