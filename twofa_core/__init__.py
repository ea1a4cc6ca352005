"""
twofa-core
==========
One-time code issuance and race-safe verification for two-factor login.
"""

__version__ = "0.1.0"

# Models
from twofa_core.models import (
    Challenge,
    DeliveryChannel,
    DeliveryReport,
    RecordState,
    VerificationRecord,
    VerificationStatus,
    VerifyResult,
)

# Configuration
from twofa_core.config import NotifierConfig, VerificationConfig

# Errors
from twofa_core.exceptions import (
    ChallengeExpired,
    ChallengeNotFound,
    CodeMismatch,
    ConfigurationError,
    NotificationError,
    ResendCooldownError,
    StoreUnavailableError,
    TooManyAttempts,
    TwoFactorError,
    VerificationFailed,
)

# Hashing
from twofa_core.hashing import generate_code, generate_salt, hash_code, verify_code_hash

# Sources
from twofa_core.sources import Clock, FrozenClock, RandomSource, SecretsRandomSource, SystemClock

# Stores
from twofa_core.stores import (
    InMemoryRecordStore,
    RecordStore,
    RedisRecordStore,
    SQLRecordStore,
    create_schema,
)

# Notifiers
from twofa_core.notifiers import (
    EmailNotifier,
    LogNotifier,
    Notifier,
    SmsNotifier,
    get_notifier,
)

# Engine and service
from twofa_core.engine import CodeVerificationEngine
from twofa_core.service import TwoFactorService
from twofa_core.reaper import ExpiredRecordReaper

# Metrics
from twofa_core.metrics import MetricNames, SimpleMetrics

__all__ = [
    # Models
    "Challenge",
    "DeliveryChannel",
    "DeliveryReport",
    "RecordState",
    "VerificationRecord",
    "VerificationStatus",
    "VerifyResult",
    # Configuration
    "NotifierConfig",
    "VerificationConfig",
    # Errors
    "ChallengeExpired",
    "ChallengeNotFound",
    "CodeMismatch",
    "ConfigurationError",
    "NotificationError",
    "ResendCooldownError",
    "StoreUnavailableError",
    "TooManyAttempts",
    "TwoFactorError",
    "VerificationFailed",
    # Hashing
    "generate_code",
    "generate_salt",
    "hash_code",
    "verify_code_hash",
    # Sources
    "Clock",
    "FrozenClock",
    "RandomSource",
    "SecretsRandomSource",
    "SystemClock",
    # Stores
    "InMemoryRecordStore",
    "RecordStore",
    "RedisRecordStore",
    "SQLRecordStore",
    "create_schema",
    # Notifiers
    "EmailNotifier",
    "LogNotifier",
    "Notifier",
    "SmsNotifier",
    "get_notifier",
    # Engine and service
    "CodeVerificationEngine",
    "TwoFactorService",
    "ExpiredRecordReaper",
    # Metrics
    "MetricNames",
    "SimpleMetrics",
]
