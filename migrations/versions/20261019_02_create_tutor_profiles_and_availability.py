"""create tutor profiles and availability slots

Revision ID: 20261019_02
Revises: 20261019_01
Create Date: 2026-10-19 09:10:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261019_02"
down_revision: Union[str, None] = "20261019_01"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "tutor_profiles",
        sa.Column("id", sa.Integer(), sa.Identity(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("bio", sa.Text(), nullable=False),
        sa.Column("hourly_rate", sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column("subjects", sa.JSON(), nullable=False),
        sa.Column("qualifications", sa.JSON(), nullable=False),
        sa.Column("experience_years", sa.Integer(), nullable=True),
        sa.Column("teaching_style", sa.String(length=1000), nullable=True),
        sa.Column("is_online", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_in_person", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", name="uq_tutor_profiles_user_id"),
        sa.CheckConstraint("hourly_rate > 0", name="ck_tutor_profiles_hourly_rate_positive"),
    )
    op.create_index("ix_tutor_profiles_id", "tutor_profiles", ["id"], unique=False)

    # no unique (date, start_time) constraint: the editing workflow rejects duplicates
    op.create_table(
        "availability_slots",
        sa.Column("id", sa.Integer(), sa.Identity(), primary_key=True, nullable=False),
        sa.Column("tutor_profile_id", sa.Integer(), nullable=False),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["tutor_profile_id"], ["tutor_profiles.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_availability_slots_id", "availability_slots", ["id"], unique=False)
    op.create_index(
        "ix_availability_slots_tutor_profile_id", "availability_slots", ["tutor_profile_id"], unique=False
    )
    op.create_index("ix_availability_slots_date", "availability_slots", ["date"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_availability_slots_date", table_name="availability_slots")
    op.drop_index("ix_availability_slots_tutor_profile_id", table_name="availability_slots")
    op.drop_index("ix_availability_slots_id", table_name="availability_slots")
    op.drop_table("availability_slots")
    op.drop_index("ix_tutor_profiles_id", table_name="tutor_profiles")
    op.drop_table("tutor_profiles")
