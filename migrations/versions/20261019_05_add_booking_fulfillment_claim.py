"""add booking fulfillment claim

Revision ID: 20261019_05
Revises: 20261019_04
Create Date: 2026-10-19 15:40:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261019_05"
down_revision: Union[str, None] = "20261019_04"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column("bookings", sa.Column("fulfillment_claim_token", sa.String(length=36), nullable=True))
    op.add_column("bookings", sa.Column("fulfillment_claimed_at", sa.DateTime(timezone=True), nullable=True))


def downgrade() -> None:
    op.drop_column("bookings", "fulfillment_claimed_at")
    op.drop_column("bookings", "fulfillment_claim_token")
