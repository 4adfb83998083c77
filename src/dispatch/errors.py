"""Domain errors raised by the dispatch services.

Every error derives from :class:`DispatchError` so the API layer can translate
them in one place. None of them are retried inside the services.
"""

from __future__ import annotations


class DispatchError(Exception):
    """Base class for dispatch failures surfaced to callers."""


class NotFoundError(DispatchError, LookupError):
    """A machine, order or route record does not exist."""


class InvalidRequestError(DispatchError, ValueError):
    """Malformed input that slipped past the request schemas."""


class PackageTooLargeError(InvalidRequestError):
    """Item weight or dimensions exceed what any machine can carry."""


class RouteUnavailableError(DispatchError, ConnectionError):
    """The mapping provider failed, timed out or returned no route."""


class QuoteExpiredOrConsumedError(DispatchError):
    """The quote id is unknown, already redeemed, or past its expiry."""

    def __init__(self, quote_id: str, reason: str = "not found") -> None:
        self.quote_id = quote_id
        self.reason = reason
        super().__init__(f"Route option '{quote_id}' is no longer available ({reason}). Request a new quote.")


class NoMachineAvailableError(DispatchError):
    """No idle machine could be claimed for an order."""


class OrderStateConflictError(DispatchError):
    """The order is not in a state that allows the requested transition."""


class PaymentFailedError(DispatchError):
    """The payment provider declined or could not process a charge."""


class PersistenceError(DispatchError):
    """A store operation failed; the message carries the operation name."""


class PartialAssignmentFailure(DispatchError):
    """Order and machine records disagree and need operator reconciliation."""

    def __init__(self, message: str, *, order_id: str, machine_id: str | None = None) -> None:
        self.order_id = order_id
        self.machine_id = machine_id
        super().__init__(message)
