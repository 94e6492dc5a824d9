"""add burn tracking to bonus_payments

Revision ID: 0002_bonus_payment_burn
Revises: 0001_initial_schema
Create Date: 2026-10-20

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = "0002_bonus_payment_burn"
down_revision: Union[str, Sequence[str], None] = "0001_initial_schema"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    bind = op.get_bind()
    insp = inspect(bind)
    cols = {c["name"] for c in insp.get_columns("bonus_payments")}

    with op.batch_alter_table("bonus_payments") as batch_op:
        if "burn_reason" not in cols:
            batch_op.add_column(sa.Column("burn_reason", sa.Text(), nullable=True))
        if "burned_at" not in cols:
            batch_op.add_column(sa.Column("burned_at", sa.DateTime(timezone=False), nullable=True))


def downgrade() -> None:
    with op.batch_alter_table("bonus_payments") as batch_op:
        batch_op.drop_column("burned_at")
        batch_op.drop_column("burn_reason")
