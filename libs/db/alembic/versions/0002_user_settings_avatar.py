# ruff: noqa: I001
"""Add an optional avatar image to user settings.

Revision ID: 0002_user_settings_avatar
Revises: 0001_bachat_core
Create Date: 2025-11-30
"""

from __future__ import annotations  # ruff: noqa: I001

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0002_user_settings_avatar"
down_revision: str | None = "0001_bachat_core"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.add_column("user_settings", sa.Column("avatar_base64", sa.Text(), nullable=True))
    op.execute(sa.text("UPDATE app_schema SET version = 2 WHERE id = 1"))


def downgrade() -> None:
    with op.batch_alter_table("user_settings") as batch:
        batch.drop_column("avatar_base64")
    op.execute(sa.text("UPDATE app_schema SET version = 1 WHERE id = 1"))
