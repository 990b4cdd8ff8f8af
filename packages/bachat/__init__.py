"""Public interface for the ``bachat`` package.

Re-exports the stable import surface: recurrence expansion, insights, the
backup codec, the local store and the sync coordinator, plus the domain
models and errors they exchange. There is no runtime logic here.
"""

from .crypto import EncryptionCodec, generate_recovery_key, parse_envelope
from .errors import (
    AtomicityFailure,
    BachatError,
    DecryptionError,
    MissingSecret,
    NotFound,
    NotSignedIn,
    UnsupportedVersion,
)
from .insights import generate_insights, load_insights
from .models import (
    Budget,
    Category,
    DailyRule,
    Envelope,
    InsightsResult,
    MonthlyRule,
    OccurrenceId,
    RecurringRule,
    Snapshot,
    Transaction,
    WeeklyRule,
)
from .recurrence import expand_for_range
from .remote import InMemoryRemoteBackupStore, RemoteBackup, SqlRemoteBackupStore
from .rules import dump_rule, parse_rule
from .scheduler import UploadScheduler
from .secret_store import FileSecretStore, InMemorySecretStore
from .store import LocalStore
from .sync import SyncCoordinator

__all__ = [
    # Operations
    "expand_for_range",
    "generate_insights",
    "load_insights",
    "generate_recovery_key",
    "parse_envelope",
    "parse_rule",
    "dump_rule",
    # Components
    "EncryptionCodec",
    "LocalStore",
    "SyncCoordinator",
    "UploadScheduler",
    "InMemorySecretStore",
    "FileSecretStore",
    "InMemoryRemoteBackupStore",
    "SqlRemoteBackupStore",
    "RemoteBackup",
    # Models / types
    "Transaction",
    "Budget",
    "Category",
    "DailyRule",
    "WeeklyRule",
    "MonthlyRule",
    "RecurringRule",
    "OccurrenceId",
    "Envelope",
    "Snapshot",
    "InsightsResult",
    # Errors
    "BachatError",
    "UnsupportedVersion",
    "DecryptionError",
    "NotFound",
    "AtomicityFailure",
    "NotSignedIn",
    "MissingSecret",
]
