"""
Change Events — Observer registry with cancellable subscriptions.

Callbacks are dispatched synchronously in registration order. A callback
that raises is logged and skipped, the remaining callbacks still run.
Coroutine functions are rejected, callbacks must be plain callables.
"""
import inspect
import logging
from typing import Any, Callable, Optional

from pydantic import BaseModel

logger = logging.getLogger("config_vault")


class ChangeEvent(BaseModel):
    """A change to a stored record.

    ``origin`` is ``"window"`` for local writes and ``"remote"`` for
    changes that arrived through sync.
    """

    path: str
    origin: str = "window"
    old_value: Any = None
    new_value: Any = None
    old_content_type: Optional[str] = None
    new_content_type: Optional[str] = None


class Subscription:
    """Handle for a registered callback. Cancelling it is idempotent."""

    __slots__ = ("_registry", "callback")

    def __init__(self, registry: "ChangeRegistry", callback: Callable[..., Any]):
        self._registry = registry
        self.callback = callback

    @property
    def active(self) -> bool:
        return self._registry is not None

    def cancel(self) -> None:
        if self._registry is not None:
            self._registry._remove(self)
            self._registry = None

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.cancel()

    def __repr__(self) -> str:
        state = "active" if self.active else "cancelled"
        return f"<Subscription {self.callback!r} ({state})>"


class ChangeRegistry:
    """Ordered registry of change callbacks."""

    def __init__(self, name: str = "change"):
        self.name = name
        self._subscriptions: list[Subscription] = []

    def __len__(self) -> int:
        return len(self._subscriptions)

    def __repr__(self) -> str:
        return f"<ChangeRegistry {self.name!r} subscribers={len(self)}>"

    def subscribe(self, callback: Callable[..., Any]) -> Subscription:
        """Register a callback and return its Subscription handle.

        Raises:
            TypeError: If callback is not callable, or is a coroutine
                function whose result would never be awaited.
        """
        if not callable(callback):
            raise TypeError(f"{self.name} callback must be callable")
        if inspect.iscoroutinefunction(callback) or inspect.iscoroutinefunction(
            getattr(callback, "__call__", None)
        ):
            raise TypeError(
                f"{self.name} callback must be synchronous, got {callback!r}"
            )
        subscription = Subscription(self, callback)
        self._subscriptions.append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def dispatch(self, *args: Any) -> int:
        """Call every active callback with ``args``.

        Callbacks cancelled while dispatching are not called.

        Returns:
            Number of callbacks that completed without raising.
        """
        delivered = 0
        for subscription in list(self._subscriptions):
            if not subscription.active:
                continue
            try:
                result = subscription.callback(*args)
                if inspect.iscoroutine(result):
                    result.close()
                    logger.error(
                        "%s callback %r returned a coroutine, it was not run",
                        self.name, subscription.callback,
                    )
                    continue
                delivered += 1
            except Exception:
                logger.exception(
                    "Error in %s callback %r", self.name, subscription.callback
                )
        return delivered

    def clear(self) -> None:
        """Cancel all subscriptions."""
        for subscription in list(self._subscriptions):
            subscription.cancel()
