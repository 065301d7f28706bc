"""Config Vault — A module's config/credentials record in a key-value store.

Security Note (Threat Model):
    With a password, the record is encrypted client-side before it reaches
    the storage client. Without one, it is stored as plaintext JSON.
    Decrypted values exist in process memory while in use.
"""

from .version import __version__
from .conf import VaultSettings, ALGORITHM_PREFIX, record_key
from .crypto import AESCCMCipher, Cipher
from .events import ChangeEvent, ChangeRegistry, Subscription
from .storage import MemoryStorage, StorageClient, StoredRecord, ValidationResult
from .vault import ConfigVault
from .exceptions import (
    ConfigVaultError,
    InvalidArgument,
    InvalidInput,
    MissingDependency,
    SchemaNotFound,
    SchemaViolation,
    NotFound,
    AlgorithmMismatch,
    PasswordRequired,
    DecryptionFailed,
    ParseFailed,
    ConfigTimeout,
    VaultClosed,
    CipherError,
)

__all__ = [
    "__version__",
    "ConfigVault",
    "VaultSettings",
    "ALGORITHM_PREFIX",
    "record_key",
    "AESCCMCipher",
    "Cipher",
    "ChangeEvent",
    "ChangeRegistry",
    "Subscription",
    "MemoryStorage",
    "StorageClient",
    "StoredRecord",
    "ValidationResult",
    "ConfigVaultError",
    "InvalidArgument",
    "InvalidInput",
    "MissingDependency",
    "SchemaNotFound",
    "SchemaViolation",
    "NotFound",
    "AlgorithmMismatch",
    "PasswordRequired",
    "DecryptionFailed",
    "ParseFailed",
    "ConfigTimeout",
    "VaultClosed",
    "CipherError",
]
