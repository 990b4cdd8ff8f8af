"""Remote backup table.

Lives on the hosted backend (e.g. Supabase Postgres), not in the on-device
database, so it has its own declarative base and metadata. One row per user
identity; ``payload`` is the opaque JSON envelope text.
"""

from __future__ import annotations

from sqlalchemy import String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class RemoteBase(DeclarativeBase):
    pass


class EncryptedBackupRow(RemoteBase):
    __tablename__ = "encrypted_backups"

    user_id: Mapped[str] = mapped_column(String, primary_key=True)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[str] = mapped_column(String, nullable=False)


__all__ = [
    "EncryptedBackupRow",
    "RemoteBase",
]
