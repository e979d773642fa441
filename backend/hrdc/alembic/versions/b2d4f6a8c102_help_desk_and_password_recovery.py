"""add help queries, password recovery codes and notification training link

Revision ID: b2d4f6a8c102
Revises: a1c0d2e3f401
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "b2d4f6a8c102"
down_revision: Union[str, Sequence[str], None] = "a1c0d2e3f401"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    with op.batch_alter_table("notifications") as batch_op:
        batch_op.add_column(sa.Column("training_id", sa.Integer(), nullable=True))
        batch_op.create_foreign_key(
            "fk_notifications_training",
            "training_programs",
            ["training_id"],
            ["id"],
            ondelete="SET NULL",
        )
        batch_op.create_index("ix_notifications_training_id", ["training_id"])

    op.create_table(
        "help_queries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "employee_id",
            sa.Integer(),
            sa.ForeignKey("employees.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("query_type", sa.String(length=50), nullable=False),
        sa.Column("subject", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "OPEN",
                "IN_PROGRESS",
                "RESOLVED",
                "CLOSED",
                name="help_query_status_enum",
                native_enum=False,
            ),
            nullable=False,
        ),
        sa.Column("viewed_by_admin", sa.Boolean(), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_help_queries_id", "help_queries", ["id"])
    op.create_index("ix_help_queries_employee_id", "help_queries", ["employee_id"])
    op.create_index("ix_help_queries_created_at", "help_queries", ["created_at"])
    op.create_index("idx_help_queries_active_status", "help_queries", ["is_active", "status"])
    op.create_index("idx_help_queries_active_viewed", "help_queries", ["is_active", "viewed_by_admin"])

    op.create_table(
        "password_reset_otps",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("otp_hash", sa.String(length=255), nullable=False),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failed_attempts", sa.Integer(), nullable=False),
    )
    op.create_index("ix_password_reset_otps_id", "password_reset_otps", ["id"])
    op.create_index("ix_password_reset_otps_user_id", "password_reset_otps", ["user_id"])
    op.create_index(
        "idx_password_reset_otps_user_expires",
        "password_reset_otps",
        ["user_id", "expires_at"],
    )


def downgrade() -> None:
    op.drop_table("password_reset_otps")
    op.drop_table("help_queries")
    with op.batch_alter_table("notifications") as batch_op:
        batch_op.drop_index("ix_notifications_training_id")
        batch_op.drop_constraint("fk_notifications_training", type_="foreignkey")
        batch_op.drop_column("training_id")
