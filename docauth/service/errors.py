from __future__ import annotations

from typing import Optional


class AdapterError(Exception):
    """Base class for adapter failures.

    ``operation`` is the stable tag the authentication framework branches on,
    e.g. ``GET_SESSION_ERROR``. Lookups that find nothing are not errors; they
    return ``None``.
    """

    def __init__(self, operation: str, *, detail: Optional[dict] = None) -> None:
        super().__init__(operation)
        self.operation = operation
        self.detail = detail or {}


class StoreFailure(AdapterError):
    """The document store rejected a create, read, patch or delete."""


class DeliveryFailure(AdapterError):
    """The verification message could not be handed to its transport."""


__all__ = ["AdapterError", "StoreFailure", "DeliveryFailure"]
