"""create bookings

Revision ID: 20261019_03
Revises: 20261019_02
Create Date: 2026-10-19 09:20:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261019_03"
down_revision: Union[str, None] = "20261019_02"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), sa.Identity(), primary_key=True, nullable=False),
        sa.Column("student_id", sa.Integer(), nullable=False),
        sa.Column("tutor_id", sa.Integer(), nullable=False),
        sa.Column("subject", sa.String(length=120), nullable=False),
        sa.Column("session_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="pending_payment"),
        sa.Column("reschedule_requester_role", sa.String(length=20), nullable=True),
        sa.Column("payment_session_id", sa.String(length=255), nullable=True),
        sa.Column("feedback_submitted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("meeting_url", sa.String(length=1000), nullable=True),
        sa.Column("meeting_start_url", sa.String(length=2000), nullable=True),
        sa.Column("meeting_id", sa.String(length=64), nullable=True),
        sa.Column("meeting_password", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["student_id"], ["users.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["tutor_id"], ["users.id"], ondelete="RESTRICT"),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"], unique=False)
    op.create_index("ix_bookings_student_id", "bookings", ["student_id"], unique=False)
    op.create_index("ix_bookings_tutor_id", "bookings", ["tutor_id"], unique=False)
    op.create_index("ix_bookings_session_date", "bookings", ["session_date"], unique=False)
    op.create_index("ix_bookings_status", "bookings", ["status"], unique=False)
    op.create_index("ix_bookings_payment_session_id", "bookings", ["payment_session_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_bookings_payment_session_id", table_name="bookings")
    op.drop_index("ix_bookings_status", table_name="bookings")
    op.drop_index("ix_bookings_session_date", table_name="bookings")
    op.drop_index("ix_bookings_tutor_id", table_name="bookings")
    op.drop_index("ix_bookings_student_id", table_name="bookings")
    op.drop_index("ix_bookings_id", table_name="bookings")
    op.drop_table("bookings")
