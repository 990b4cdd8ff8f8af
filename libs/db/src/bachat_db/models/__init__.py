"""Shared SQLAlchemy models registry for the workspace database.

``local`` holds the on-device entity tables; ``remote`` holds the hosted
backup table.
"""

from .local import (
    ENTITY_TABLES,
    SCHEMA_VERSION,
    AlertRuleRow,
    AppSchemaRow,
    Base,
    BudgetRow,
    CategoryRow,
    TrainingExampleRow,
    TransactionRow,
    UserSettingsRow,
)
from .remote import EncryptedBackupRow, RemoteBase

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
]
