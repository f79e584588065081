"""create users and refresh_tokens

Learn: The two tables behind the identity service. users.email and
refresh_tokens.token are unique — the first settles concurrent
registrations, the second guarantees a refresh token string is never
recorded twice. refresh_tokens.owner is indexed for the per-owner
expiry cleanup that runs on every issuance.

Revision ID: 3f2a9c1e7b04
Revises:
Create Date: 2026-10-19 09:12:44.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f2a9c1e7b04'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "refresh_tokens",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("token", sa.String(1024), nullable=False),
        sa.Column("owner", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint("token", name="uq_refresh_tokens_token"),
    )
    op.create_index("ix_refresh_tokens_owner", "refresh_tokens", ["owner"])


def downgrade() -> None:
    op.drop_index("ix_refresh_tokens_owner", table_name="refresh_tokens")
    op.drop_table("refresh_tokens")
    op.drop_table("users")
