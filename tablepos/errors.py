"""Exception types raised by the reconciliation core."""

from __future__ import annotations


class PosError(Exception):
    """Base class for all tablepos errors."""


class UnitError(PosError, ValueError):
    """An ingredient unit is unknown."""


class UnitMismatchError(UnitError):
    """Two quantities from different unit groups were combined."""


class RemoteError(PosError):
    """The remote store rejected or failed a request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RemoteUnavailableError(RemoteError):
    """The remote store could not be reached."""


class AuthenticationError(RemoteError):
    """The session expired and could not be refreshed."""


class SubscriptionExpiredError(RemoteError):
    """The restaurant subscription has lapsed (HTTP 402)."""


class OrderNotFoundError(PosError, KeyError):
    """No local order has the requested id."""

    def __str__(self) -> str:
        return f"order not found: {self.args[0]}" if self.args else "order not found"


class InvalidTransitionError(PosError, ValueError):
    """A line-item status change would move backwards."""


class TableOccupiedError(PosError):
    """The table is already linked to another active order."""

    def __init__(self, table_id: str, order_id: str) -> None:
        super().__init__(f"table {table_id} is held by active order {order_id}")
        self.table_id = table_id
        self.order_id = order_id


class ItemNotFoundError(PosError, KeyError):
    """No line item of the order has the requested key."""

    def __str__(self) -> str:
        return f"line item not found: {self.args[0]}" if self.args else "line item not found"
