"""Operator endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status

from ...errors import DispatchError
from ...schemas.orders import (
    AdminOrderUpdate,
    OrderListResponse,
    OrderModel,
    RetryAssignmentsResponse,
    order_to_model,
)
from ...services.container import DispatchServices
from ...services.orders.service import ADMIN_PAGE_SIZE, normalize_paging
from ..dependencies import get_services, to_http_exception, unexpected_error

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/orders", response_model=OrderListResponse, status_code=status.HTTP_200_OK)
def list_all_orders(
    page: int = Query(default=1, description="1-based page number; values below 1 read as 1"),
    limit: int = Query(default=ADMIN_PAGE_SIZE, description="Page size between 1 and 100"),
    services: DispatchServices = Depends(get_services),
) -> OrderListResponse:
    """Every order in the system, newest first."""
    try:
        orders, total = services.orders.list_all_orders(page, limit)
    except DispatchError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:
        raise unexpected_error("listing all orders", exc) from exc
    page, limit = normalize_paging(page, limit, default=ADMIN_PAGE_SIZE)
    return OrderListResponse(
        items=[order_to_model(o) for o in orders],
        page=page,
        limit=limit,
        total=total,
        has_next_page=page * limit < total,
    )


@router.patch("/orders/{order_id}", response_model=OrderModel, status_code=status.HTTP_200_OK)
def update_order(
    order_id: str,
    payload: AdminOrderUpdate,
    services: DispatchServices = Depends(get_services),
) -> OrderModel:
    """Override an order's status or machine without lifecycle checks."""
    try:
        order = services.orders.admin_update_order(order_id, payload.status, payload.machine_id)
        return order_to_model(order)
    except DispatchError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:
        raise unexpected_error("updating order", exc) from exc


@router.post("/assignments/retry", response_model=RetryAssignmentsResponse, status_code=status.HTTP_200_OK)
def retry_assignments(services: DispatchServices = Depends(get_services)) -> RetryAssignmentsResponse:
    """Dispatch paid orders that are still waiting for a machine."""
    try:
        assigned = services.orders.retry_pending_assignments()
    except DispatchError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:
        raise unexpected_error("retrying pending assignments", exc) from exc
    return RetryAssignmentsResponse(
        assigned={order_id: machine.id for order_id, machine in assigned.items()},
        count=len(assigned),
    )
