"""create assistant_sessions table

Revision ID: 0001
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "assistant_sessions",
        sa.Column("id", sa.String(length=128), nullable=False),
        sa.Column("dashboard", sa.String(length=128), nullable=False),
        sa.Column(
            "messages",
            postgresql.JSONB(),
            server_default=sa.text("'[]'::jsonb"),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name="pk_assistant_sessions"),
    )

    op.create_index(
        "ix_assistant_sessions_dashboard_updated",
        "assistant_sessions",
        ["dashboard", "updated_at"],
    )


def downgrade() -> None:
    op.drop_index(
        "ix_assistant_sessions_dashboard_updated", table_name="assistant_sessions"
    )
    op.drop_table("assistant_sessions")
