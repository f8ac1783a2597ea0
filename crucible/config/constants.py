"""
Crucible Configuration Constants.

Centralized constants for encryption, polling, and on-disk layout.
"""

# Encryption (AES-256-GCM + scrypt)
ENCRYPTION_VERSION = "v1"
AES_KEY_LEN = 32
AES_IV_LEN = 12
AES_TAG_LEN = 16
SCRYPT_N = 16384
SCRYPT_R = 8
SCRYPT_P = 1
SCRYPT_SALT_LEN = 16

# Read-phase consistency polling (seconds)
READ_POLL_MIN_DELAY = 0.1
READ_POLL_MAX_DELAY = 0.3
READ_UNSTABLE_WARN_AFTER = 1.0

# Identifiers
RESOURCE_ID_SEPARATOR = ":"
SCOPE_KIND = "crucible::Scope"
PENDING_DELETIONS_KEY = "pendingDeletions"

# On-disk layout
DOT_DIR_NAME = ".crucible"
STATE_DB_NAME = "state.sqlite"
LOG_DIR_NAME = "logs"

# Environment
ENV_PREFIX = "CRUCIBLE_"
DEFAULT_STAGE_FALLBACK = "dev"
