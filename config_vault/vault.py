"""
ConfigVault — One JSON config/credentials record per module.

Provides the public API for a module's config record:
- ``set_config(password, config)`` — tag, validate, optionally encrypt, store
- ``get_config(password, max_age)`` — read, decrypt or parse, untag
- ``once_config(password, timeout)`` — like get_config, waiting while the
  record does not exist yet
- ``on("change", handler)`` — get notified when the record changes

Security Note:
    Never log passwords, plaintext or ciphertext values. Only log module
    names, keys and error kinds.
"""
import asyncio
import logging
from collections.abc import Mapping
from typing import Any, Callable, Optional

import orjson
from pydantic import BaseModel

from .conf import (
    ALGORITHM_PREFIX,
    CONTENT_TYPE,
    CONTEXT_FIELD,
    VaultSettings,
    record_key,
)
from .crypto import Cipher, dumps_json, loads_json
from .events import ChangeEvent, ChangeRegistry, Subscription
from .exceptions import (
    AlgorithmMismatch,
    ConfigTimeout,
    DecryptionFailed,
    InvalidArgument,
    InvalidInput,
    MissingDependency,
    NotFound,
    ParseFailed,
    PasswordRequired,
    SchemaNotFound,
    SchemaViolation,
    VaultClosed,
)

logger = logging.getLogger("config_vault")

_CLIENT_OPERATIONS = ("read", "write", "validate", "on_change")


def _field(obj: Any, name: str, default: Any = None) -> Any:
    """Read a field from a client result, either a mapping or an object."""
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


class ConfigVault:
    """Stores a module's config object in a storage client.

    The record lives at ``"<module_name>-config"``. Without a password it is
    stored as JSON text, with a password as ``"AES-CCM-128:"`` followed by
    the cipher's output.

    Args:
        module_name: Name of the owning module.
        client: Storage client bound to the module.
        cipher: Cipher used when a password is given. Without one, calls
            that pass a password raise MissingDependency.
        settings: Vault settings, defaults to ``VaultSettings()``.

    Raises:
        InvalidArgument: If module_name is not a non-empty string, or client
            is missing or lacks a storage operation.
    """

    def __init__(
        self,
        module_name: str,
        client: Any,
        cipher: Optional[Cipher] = None,
        settings: Optional[VaultSettings] = None,
    ):
        if not isinstance(module_name, str) or not module_name:
            raise InvalidArgument("module_name should be a non-empty string")
        if client is None:
            raise InvalidArgument(
                "client should be a storage client", module_name
            )
        missing = [
            op for op in _CLIENT_OPERATIONS
            if not callable(getattr(client, op, None))
        ]
        if missing:
            raise InvalidArgument(
                f"client should be a storage client (missing {', '.join(missing)})",
                module_name,
            )
        self.module_name = module_name
        self.settings = settings or VaultSettings()
        self.key = record_key(module_name)
        self.context = self.settings.context_for(module_name)
        self._client = client
        self._cipher = cipher
        self._handlers = ChangeRegistry(f"{self.key} change")
        self._waiters: set[asyncio.Event] = set()
        self._closed = False
        self._storage_sub = client.on_change(self._on_storage_change)

    def __repr__(self) -> str:
        return (
            f"<ConfigVault module={self.module_name!r} "
            f"encryption={'yes' if self._cipher else 'no'}>"
        )

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def _on_storage_change(self, event: ChangeEvent) -> None:
        if getattr(event, "path", None) != self.key:
            return
        logger.debug(
            "Config change: module=%s origin=%s",
            self.module_name, getattr(event, "origin", None),
        )
        self._handlers.dispatch()

    def on(self, event_name: str, handler: Callable[[], Any]) -> Optional[Subscription]:
        """Register a handler called without arguments when the record changes.

        Only ``"change"`` is supported, other event names are ignored.

        Returns:
            The handler's Subscription, or None if the event was ignored.
        """
        if event_name == "change":
            return self._handlers.subscribe(handler)
        return None

    def close(self) -> None:
        """Stop listening to the storage client and drop all handlers.

        Pending ``once_config`` calls raise VaultClosed.
        """
        if self._closed:
            return
        self._closed = True
        cancel = getattr(self._storage_sub, "cancel", None)
        if callable(cancel):
            cancel()
        self._handlers.clear()
        for waiter in list(self._waiters):
            waiter.set()
        logger.debug("Vault closed: module=%s", self.module_name)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _check_open(self) -> None:
        if self._closed:
            raise VaultClosed(f"vault for {self.key} is closed", self.module_name)

    def _require_cipher(self, password: Optional[str]) -> bool:
        """Return True if the call should use encryption."""
        if not password:
            return False
        if self._cipher is None:
            raise MissingDependency(
                "a cipher is required for password encryption, "
                "construct the vault with one",
                self.module_name,
            )
        return True

    def _tag(self, config: Any) -> dict:
        """Return a tagged private copy of config."""
        if isinstance(config, BaseModel):
            config = config.model_dump(mode="json", by_alias=True)
        if not isinstance(config, Mapping):
            raise InvalidInput("config should be an object", self.module_name)
        tagged = dict(config)
        tagged[CONTEXT_FIELD] = self.context
        return tagged

    def _validate(self, tagged: dict) -> None:
        try:
            result = self._client.validate(tagged)
        except SchemaNotFound:
            raise
        except LookupError as err:
            raise SchemaNotFound(
                f"Schema Not Found for {self.context}", self.module_name
            ) from err
        if not _field(result, "valid", False):
            errors = _field(result, "errors")
            raise SchemaViolation(
                f"Please follow the config schema - {errors!r}",
                self.module_name,
                errors=errors,
            )

    def _untag(self, value: Any, error: type, message: str) -> dict:
        if not isinstance(value, dict):
            raise error(message, self.module_name)
        value.pop(CONTEXT_FIELD, None)
        return value

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def set_config(self, password: Optional[str], config: Any) -> Any:
        """Validate and store the config.

        The caller's object is not modified, a tagged copy is stored.

        Args:
            password: Password for encryption, or None for plaintext.
            config: Mapping or pydantic model to store.

        Returns:
            Whatever the storage client's write returns.

        Raises:
            InvalidInput: If config is not an object or not JSON serializable.
            MissingDependency: If a password is given without a cipher.
            SchemaNotFound: If no schema is declared for the record.
            SchemaViolation: If the config does not follow the schema.
        """
        self._check_open()
        tagged = self._tag(config)
        encrypt = self._require_cipher(password)
        self._validate(tagged)
        try:
            payload = dumps_json(tagged)
        except orjson.JSONEncodeError as err:
            raise InvalidInput(
                f"config is not JSON serializable: {err}", self.module_name
            ) from err
        if encrypt:
            payload = ALGORITHM_PREFIX + self._cipher.encrypt(password, payload)
        logger.debug(
            "Config set: module=%s key=%s encrypted=%s",
            self.module_name, self.key, encrypt,
        )
        return await self._client.write(CONTENT_TYPE, self.key, payload)

    async def get_config(
        self,
        password: Optional[str] = None,
        max_age: Optional[float] = None
    ) -> dict:
        """Read, decrypt or parse the stored config.

        Args:
            password: Password for decryption, or None for plaintext records.
            max_age: Staleness tolerance in seconds, passed to the client.

        Returns:
            The stored config without its ``@context`` field.

        Raises:
            MissingDependency: If a password is given without a cipher.
            NotFound: If there is no record or its payload is not a string.
            AlgorithmMismatch: If a password is given but the record is
                not encrypted with this algorithm.
            DecryptionFailed: On a wrong password or corrupted ciphertext.
            PasswordRequired: If the record is encrypted and no password
                is given.
            ParseFailed: If a plaintext record is not a JSON object.
        """
        self._check_open()
        decrypt = self._require_cipher(password)
        record = await self._client.read(self.key, max_age)
        data = _field(record, "data")
        if not isinstance(data, str):
            raise NotFound(f"{self.key} not found", self.module_name)
        encrypted = data.startswith(ALGORITHM_PREFIX)
        if decrypt:
            if not encrypted:
                raise AlgorithmMismatch(
                    f"{self.key} is not encrypted, or encrypted "
                    "with a different algorithm",
                    self.module_name,
                )
            message = f"could not decrypt {self.key} with that password"
            try:
                plaintext = self._cipher.decrypt(
                    password, data[len(ALGORITHM_PREFIX):]
                )
                value = loads_json(plaintext)
            except Exception as err:
                raise DecryptionFailed(message, self.module_name) from err
            return self._untag(value, DecryptionFailed, message)
        if encrypted:
            raise PasswordRequired(
                f"{self.key} is encrypted, please specify a password "
                "for decryption",
                self.module_name,
            )
        message = f"could not parse {self.key} as unencrypted JSON"
        try:
            value = loads_json(data)
        except orjson.JSONDecodeError as err:
            raise ParseFailed(message, self.module_name) from err
        return self._untag(value, ParseFailed, message)

    async def once_config(
        self,
        password: Optional[str] = None,
        timeout: Optional[float] = None
    ) -> dict:
        """Get the config, or wait for it to become available.

        While the record does not exist, waits for the next change and
        tries again. Any other error is raised right away.

        Args:
            password: Password for decryption, or None.
            timeout: Maximum seconds to wait, None waits until cancelled.

        Raises:
            ConfigTimeout: If timeout expires before the record is readable.
            ConfigVaultError: Any get_config error other than NotFound.
            VaultClosed: If the vault is closed before or while waiting.
        """
        if timeout is None:
            return await self._wait_for_config(password)
        try:
            return await asyncio.wait_for(
                self._wait_for_config(password), timeout
            )
        except asyncio.TimeoutError as err:
            raise ConfigTimeout(
                f"{self.key} not available after {timeout} seconds",
                self.module_name,
            ) from err

    async def _wait_for_config(self, password: Optional[str]) -> dict:
        while True:
            self._check_open()
            changed = asyncio.Event()
            self._waiters.add(changed)
            try:
                # subscribe before reading, so a change in between is not lost
                with self._handlers.subscribe(changed.set):
                    try:
                        return await self.get_config(
                            password, self.settings.once_max_age
                        )
                    except NotFound:
                        logger.debug(
                            "Waiting for %s to become available", self.key
                        )
                    await changed.wait()
            finally:
                self._waiters.discard(changed)
