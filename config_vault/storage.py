"""
Vault Storage — Storage client protocol and an in-memory implementation.

A storage client is bound to one module and exposes:
- ``read(key, max_age)`` — fetch a record, or None
- ``write(content_type, key, data)`` — store a record, overwriting
- ``validate(obj)`` — check an object against the type named by its @context
- ``on_change(callback)`` — subscribe to record changes

``MemoryStorage`` keeps records in process memory. Schemas are pydantic
models declared per type alias with ``declare_type``.
"""
import time
import logging
from typing import Any, Callable, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, Field, ValidationError

from .conf import CONTEXT_FIELD, VaultSettings
from .events import ChangeEvent, ChangeRegistry, Subscription

logger = logging.getLogger("config_vault")


class StoredRecord(BaseModel):
    """A record as returned by a storage client."""

    data: Any = None
    content_type: str = "application/json"
    stored_at: float = Field(default_factory=time.time)


class ValidationResult(BaseModel):
    """Outcome of validating an object against its declared schema."""

    valid: bool
    errors: list[Any] = Field(default_factory=list)


@runtime_checkable
class StorageClient(Protocol):
    """Per-module key-value storage used by ConfigVault."""

    async def read(self, key: str, max_age: Optional[float] = None) -> Optional[StoredRecord]: ...

    async def write(self, content_type: str, key: str, data: Any) -> None: ...

    def validate(self, obj: dict) -> ValidationResult: ...

    def on_change(self, callback: Callable[[ChangeEvent], Any]) -> Subscription: ...


class MemoryStorage:
    """In-process storage client for one module.

    Args:
        module_name: Module the client is bound to, used to build type URIs.
        settings: Vault settings, defaults to ``VaultSettings()``.
    """

    def __init__(self, module_name: str, settings: Optional[VaultSettings] = None):
        self.module_name = module_name
        self.settings = settings or VaultSettings()
        self._records: dict[str, StoredRecord] = {}
        self._types: dict[str, type[BaseModel]] = {}
        self._changes = ChangeRegistry("storage change")

    def __repr__(self) -> str:
        return (
            f"<MemoryStorage module={self.module_name!r} "
            f"records={len(self._records)}>"
        )

    # ------------------------------------------------------------------
    # Types
    # ------------------------------------------------------------------

    def type_uri(self, alias: str) -> str:
        """Build the context URI for a type alias of this module."""
        return f"{self.settings.context_base}{self.module_name}/{alias}"

    def declare_type(self, alias: str, schema: type[BaseModel]) -> str:
        """Declare a schema for a type alias.

        Args:
            alias: Type alias, e.g. ``"config"`` or ``"credentials"``.
            schema: pydantic model class the objects must validate against.

        Returns:
            The context URI the schema was registered under.
        """
        if not (isinstance(schema, type) and issubclass(schema, BaseModel)):
            raise TypeError("schema must be a pydantic BaseModel subclass")
        uri = self.type_uri(alias)
        self._types[uri] = schema
        logger.debug("Declared type %s -> %s", uri, schema.__name__)
        return uri

    def validate(self, obj: dict) -> ValidationResult:
        """Validate an object against the schema named by its @context.

        Raises:
            LookupError: If no type is declared for the object's @context.
        """
        context = obj.get(CONTEXT_FIELD)
        schema = self._types.get(context)
        if schema is None:
            raise LookupError(f"No type declared for context {context!r}")
        try:
            schema.model_validate(obj)
        except ValidationError as err:
            return ValidationResult(
                valid=False,
                errors=err.errors(include_url=False, include_context=False),
            )
        return ValidationResult(valid=True)

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    async def read(self, key: str, max_age: Optional[float] = None) -> Optional[StoredRecord]:
        """Return the stored record, or None.

        ``max_age`` is accepted for protocol compatibility, records held in
        process memory are never stale.
        """
        return self._records.get(key)

    async def write(self, content_type: str, key: str, data: Any) -> None:
        """Store a record, overwriting any previous one."""
        self._store(key, content_type, data, origin="window")

    def apply_remote(self, key: str, content_type: str, data: Any) -> None:
        """Store a record received from a remote sync."""
        self._store(key, content_type, data, origin="remote")

    def remove(self, key: str, origin: str = "window") -> bool:
        """Delete a record.

        Returns:
            True if a record was removed.
        """
        old = self._records.pop(key, None)
        if old is None:
            return False
        logger.debug("Storage remove: module=%s key=%s", self.module_name, key)
        self._changes.dispatch(ChangeEvent(
            path=key,
            origin=origin,
            old_value=old.data,
            old_content_type=old.content_type,
        ))
        return True

    def _store(self, key: str, content_type: str, data: Any, origin: str) -> None:
        old = self._records.get(key)
        record = StoredRecord(data=data, content_type=content_type)
        self._records[key] = record
        logger.debug(
            "Storage write: module=%s key=%s origin=%s",
            self.module_name, key, origin,
        )
        self._changes.dispatch(ChangeEvent(
            path=key,
            origin=origin,
            old_value=old.data if old else None,
            new_value=data,
            old_content_type=old.content_type if old else None,
            new_content_type=content_type,
        ))

    # ------------------------------------------------------------------
    # Change stream
    # ------------------------------------------------------------------

    def on_change(self, callback: Callable[[ChangeEvent], Any]) -> Subscription:
        """Subscribe to changes of any record of this module."""
        return self._changes.subscribe(callback)
