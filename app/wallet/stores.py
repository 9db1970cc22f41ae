"""
Quote and transfer stores for the active flow.

A ``Store`` is a small observable holder. ``FlowContext`` owns the quote
and transfer stores and is written only by the orchestrator; everything
else (reconciler, API, view models) receives a read-only ``FlowContextView``.
"""

from __future__ import annotations

import logging
from typing import Callable, Generic, TypeVar

from app.schemas.ramp import QuoteResponse, Transfer

logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[T | None], None]


class Store(Generic[T]):
    """Single-value observable store."""

    def __init__(self, name: str, initial: T | None = None):
        self.name = name
        self._value: T | None = initial
        self._listeners: list[Listener] = []

    @property
    def value(self) -> T | None:
        return self._value

    def set(self, value: T | None) -> None:
        self._value = value
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception:
                logger.exception("Listener on store %s failed", self.name)

    def clear(self) -> None:
        self.set(None)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*; returns a callable that removes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe


class FlowContext:
    """Quote and transfer of the current orchestration run."""

    def __init__(self):
        self.quote: Store[QuoteResponse] = Store("quote")
        self.transfer: Store[Transfer] = Store("transfer")

    def clear(self) -> None:
        self.quote.clear()
        self.transfer.clear()

    def view(self) -> "FlowContextView":
        return FlowContextView(self)


class FlowContextView:
    """Read-only access to a FlowContext."""

    def __init__(self, context: FlowContext):
        self._context = context

    @property
    def quote(self) -> QuoteResponse | None:
        return self._context.quote.value

    @property
    def transfer(self) -> Transfer | None:
        return self._context.transfer.value
