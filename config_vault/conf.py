"""
Vault Settings — Validated configuration for Config Vault.

Defaults match the remoteStorage module conventions. Every setting can be
overridden from environment variables:
    CONFIG_VAULT_CONTEXT_BASE = <URI prefix ending in "/">
    CONFIG_VAULT_CREDENTIALS_MODULES = <comma separated module names>
    CONFIG_VAULT_ONCE_MAX_AGE = <seconds>
    CONFIG_VAULT_PBKDF2_ITERATIONS = <integer>
    CONFIG_VAULT_TAG_LENGTH = <bytes>
"""
import os
import logging

from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger("config_vault")

ALGORITHM_PREFIX = "AES-CCM-128:"
DEFAULT_CONTEXT_BASE = "http://remotestorage.io/spec/modules/"
DEFAULT_CREDENTIALS_MODULES = ("sockethub-credentials", "irc-credentials")
CONTENT_TYPE = "application/json"
CONTEXT_FIELD = "@context"

# AES-CCM accepts even tag lengths between 4 and 16 bytes.
_VALID_TAG_LENGTHS = (4, 6, 8, 10, 12, 14, 16)

_ENV_PREFIX = "CONFIG_VAULT_"


def record_key(module_name: str) -> str:
    """Return the storage key of a module's config record."""
    return f"{module_name}-config"


class VaultSettings(BaseModel):
    """Validated vault settings."""

    context_base: str = Field(default=DEFAULT_CONTEXT_BASE)
    credentials_modules: tuple[str, ...] = Field(
        default=DEFAULT_CREDENTIALS_MODULES
    )
    once_max_age: float = Field(default=20.0, ge=0)
    pbkdf2_iterations: int = Field(default=10000, ge=1000)
    tag_length: int = Field(default=8)

    model_config = {"frozen": True}

    @field_validator("context_base")
    @classmethod
    def validate_context_base(cls, v: str) -> str:
        """Context URIs are built by appending, so the base must end in '/'."""
        if not v.endswith("/"):
            raise ValueError(f"context_base must end with '/': {v!r}")
        return v

    @field_validator("tag_length")
    @classmethod
    def validate_tag_length(cls, v: int) -> int:
        if v not in _VALID_TAG_LENGTHS:
            raise ValueError(
                f"Unsupported tag length: {v} "
                f"(expected one of {_VALID_TAG_LENGTHS})"
            )
        return v

    @model_validator(mode="after")
    def validate_credentials_modules(self) -> "VaultSettings":
        """Ensure no credentials module name is empty."""
        if any(not name for name in self.credentials_modules):
            raise ValueError("credentials_modules cannot contain empty names")
        return self

    def context_for(self, module_name: str) -> str:
        """Return the canonical ``@context`` URI for a module.

        Credentials modules get a ``/credentials`` URI, every other module
        a ``/config`` one.
        """
        kind = (
            "credentials" if module_name in self.credentials_modules
            else "config"
        )
        return f"{self.context_base}{module_name}/{kind}"

    @classmethod
    def from_env(cls) -> "VaultSettings":
        """Create VaultSettings from CONFIG_VAULT_* environment variables.

        Unset variables keep their defaults.

        Returns:
            Populated VaultSettings instance.

        Raises:
            pydantic.ValidationError: If a value fails validation.
        """
        values: dict = {}
        base = os.environ.get(f"{_ENV_PREFIX}CONTEXT_BASE")
        if base:
            values["context_base"] = base
        modules = os.environ.get(f"{_ENV_PREFIX}CREDENTIALS_MODULES")
        if modules is not None:
            values["credentials_modules"] = tuple(
                name.strip() for name in modules.split(",") if name.strip()
            )
        for field in ("once_max_age", "pbkdf2_iterations", "tag_length"):
            raw = os.environ.get(f"{_ENV_PREFIX}{field.upper()}")
            if raw is not None:
                values[field] = raw
        logger.debug("Loaded vault settings from env: %s", sorted(values))
        return cls(**values)
