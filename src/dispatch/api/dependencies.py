"""Shared request dependencies and error translation for the routers."""

from __future__ import annotations

import logging

from fastapi import Header, HTTPException, Request, status

from ..errors import (
    DispatchError,
    InvalidRequestError,
    NoMachineAvailableError,
    NotFoundError,
    OrderStateConflictError,
    PackageTooLargeError,
    PartialAssignmentFailure,
    PaymentFailedError,
    QuoteExpiredOrConsumedError,
    RouteUnavailableError,
)
from ..services.container import DispatchServices

logger = logging.getLogger(__name__)

# Checked in order; subclasses must come before their bases.
_STATUS_BY_ERROR: tuple[tuple[type[DispatchError], int], ...] = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (PackageTooLargeError, 422),
    (InvalidRequestError, status.HTTP_400_BAD_REQUEST),
    (RouteUnavailableError, status.HTTP_502_BAD_GATEWAY),
    (QuoteExpiredOrConsumedError, status.HTTP_410_GONE),
    (NoMachineAvailableError, status.HTTP_409_CONFLICT),
    (OrderStateConflictError, status.HTTP_409_CONFLICT),
    (PaymentFailedError, status.HTTP_402_PAYMENT_REQUIRED),
)


def get_services(request: Request) -> DispatchServices:
    return request.app.state.services


def get_user_id(x_user_id: str = Header(..., min_length=1)) -> str:
    """Caller identity; authentication itself happens upstream of this API."""
    return x_user_id


def to_http_exception(exc: DispatchError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))

    if isinstance(exc, PartialAssignmentFailure):
        logger.error(
            f"Partial assignment needs reconciliation: order={exc.order_id} machine={exc.machine_id}: {exc}"
        )
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": str(exc), "order_id": exc.order_id, "machine_id": exc.machine_id},
        )

    logger.error(f"Dispatch operation failed: {exc}")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def unexpected_error(action: str, exc: Exception) -> HTTPException:
    logging.exception(f"Error {action}: {exc}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed {action}: {str(exc)}",
    )
