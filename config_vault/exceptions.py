"""
Config Vault Errors.

Every error raised by :class:`~config_vault.vault.ConfigVault` derives from
:class:`ConfigVaultError` and carries the module name of the vault that
raised it. Where a builtin exception describes the same failure, the error
derives from it as well, so callers may catch either.
"""
from typing import Any, Optional


class ConfigVaultError(Exception):
    """Base error for Config Vault operations."""

    def __init__(self, message: str, module_name: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.module_name = module_name

    def __str__(self) -> str:
        return self.message


class InvalidArgument(ConfigVaultError, ValueError):
    """ConfigVault was constructed with a bad module name or storage client."""


class InvalidInput(ConfigVaultError, TypeError):
    """set_config was called with something that is not an object."""


class MissingDependency(ConfigVaultError, RuntimeError):
    """A password was supplied but no cipher is available."""


class SchemaNotFound(ConfigVaultError, LookupError):
    """The storage client has no type declared for the record's context."""


class SchemaViolation(ConfigVaultError, ValueError):
    """The tagged config does not conform to the declared schema."""

    def __init__(
        self,
        message: str,
        module_name: Optional[str] = None,
        errors: Any = None
    ):
        super().__init__(message, module_name)
        self.errors = errors or []


class NotFound(ConfigVaultError, LookupError):
    """No record exists, or its payload is not a string."""


class AlgorithmMismatch(ConfigVaultError):
    """Not encrypted, or encrypted with a different algorithm."""


class PasswordRequired(ConfigVaultError):
    """The record is encrypted but no password was given."""


class DecryptionFailed(ConfigVaultError):
    """Wrong password or corrupted ciphertext."""


class ParseFailed(ConfigVaultError, ValueError):
    """The plaintext record is not a JSON object."""


class ConfigTimeout(ConfigVaultError, TimeoutError):
    """once_config gave up waiting for the record."""


class VaultClosed(ConfigVaultError, RuntimeError):
    """The vault was closed and no longer receives changes."""


class CipherError(ValueError):
    """Raised by a cipher on malformed input, bad parameters or auth failure."""
