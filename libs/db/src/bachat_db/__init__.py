"""bachat_db: shared database library (SQLAlchemy/Alembic/Supabase).

Public exports
--------------
- ``Base`` and ``metadata`` for Alembic autogenerate/targeting
- ORM models in ``bachat_db.models`` (re-exported for convenience)
- Engine/session helpers in ``bachat_db.client``
"""

from __future__ import annotations

from .models import (
    ENTITY_TABLES,
    SCHEMA_VERSION,
    AlertRuleRow,
    AppSchemaRow,
    Base,
    BudgetRow,
    CategoryRow,
    EncryptedBackupRow,
    RemoteBase,
    TrainingExampleRow,
    TransactionRow,
    UserSettingsRow,
)

# Re-export SQLAlchemy metadata for Alembic's env.py
metadata = Base.metadata

__all__ = [
    "ENTITY_TABLES",
    "SCHEMA_VERSION",
    "AlertRuleRow",
    "AppSchemaRow",
    "Base",
    "BudgetRow",
    "CategoryRow",
    "EncryptedBackupRow",
    "RemoteBase",
    "TrainingExampleRow",
    "TransactionRow",
    "UserSettingsRow",
    "metadata",
]
