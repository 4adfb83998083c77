"""Quote, order, payment and assignment endpoints."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query, status

from ...errors import DispatchError
from ...schemas.fleet import machine_to_model
from ...schemas.orders import (
    AssignmentResponse,
    CreateOrderRequest,
    OrderListResponse,
    OrderModel,
    PaymentRequest,
    PaymentResponse,
    QuoteRequest,
    QuoteResponse,
    RouteModel,
    option_to_model,
    order_to_model,
    route_to_model,
)
from ...services.container import DispatchServices
from ...services.orders.service import DEFAULT_PAGE_SIZE, normalize_paging
from ..dependencies import get_services, get_user_id, to_http_exception, unexpected_error

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("/quote", response_model=QuoteResponse, status_code=status.HTTP_200_OK)
def quote(payload: QuoteRequest, services: DispatchServices = Depends(get_services)) -> QuoteResponse:
    """Price the fastest and cheapest deliveries; each option can be ordered once."""
    try:
        options = services.orders.get_delivery_quote(
            payload.pickup.to_domain(),
            payload.dropoff.to_domain(),
            payload.item.to_domain(),
            payload.requested_time,
        )
        return QuoteResponse(options=[option_to_model(o) for o in options])
    except DispatchError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:
        raise unexpected_error("calculating quote", exc) from exc


@router.post("", response_model=OrderModel, status_code=status.HTTP_201_CREATED)
def create_order(
    payload: CreateOrderRequest,
    user_id: str = Depends(get_user_id),
    services: DispatchServices = Depends(get_services),
) -> OrderModel:
    try:
        order = services.orders.create_order(user_id, payload.route_option_id)
        return order_to_model(order)
    except DispatchError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:
        raise unexpected_error("creating order", exc) from exc


@router.get("", response_model=OrderListResponse, status_code=status.HTTP_200_OK)
def list_orders(
    page: int = Query(default=1, description="1-based page number; values below 1 read as 1"),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, description="Page size between 1 and 100"),
    user_id: str = Depends(get_user_id),
    services: DispatchServices = Depends(get_services),
) -> OrderListResponse:
    try:
        orders, total = services.orders.list_user_orders(user_id, page, limit)
    except DispatchError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:
        raise unexpected_error("listing orders", exc) from exc
    page, limit = normalize_paging(page, limit)
    return OrderListResponse(
        items=[order_to_model(o) for o in orders],
        page=page,
        limit=limit,
        total=total,
        has_next_page=page * limit < total,
    )


@router.get("/{order_id}", response_model=OrderModel, status_code=status.HTTP_200_OK)
def get_order(
    order_id: str,
    user_id: str = Depends(get_user_id),
    services: DispatchServices = Depends(get_services),
) -> OrderModel:
    try:
        return order_to_model(services.orders.get_order_details(order_id, user_id))
    except DispatchError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:
        raise unexpected_error("fetching order", exc) from exc


@router.post("/{order_id}/cancel", response_model=OrderModel, status_code=status.HTTP_200_OK)
def cancel_order(
    order_id: str,
    user_id: str = Depends(get_user_id),
    services: DispatchServices = Depends(get_services),
) -> OrderModel:
    try:
        return order_to_model(services.orders.cancel_order(order_id, user_id))
    except DispatchError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:
        raise unexpected_error("cancelling order", exc) from exc


@router.post("/{order_id}/pay", response_model=PaymentResponse, status_code=status.HTTP_200_OK)
def pay_order(
    order_id: str,
    payload: PaymentRequest,
    user_id: str = Depends(get_user_id),
    services: DispatchServices = Depends(get_services),
) -> PaymentResponse:
    """Charge the order, confirm it and try to dispatch a machine.

    A confirmed order with ``assignment_pending`` set is picked up later by
    ``POST /admin/assignments/retry``.
    """
    try:
        outcome = services.orders.confirm_and_pay(user_id, order_id, payload.payment_method_id)
        return PaymentResponse(
            order=order_to_model(outcome.order),
            machine=machine_to_model(outcome.machine) if outcome.machine else None,
            assignment_pending=outcome.assignment_pending,
        )
    except DispatchError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:
        raise unexpected_error("processing payment", exc) from exc


@router.post("/{order_id}/assign", response_model=AssignmentResponse, status_code=status.HTTP_200_OK)
def assign_order(order_id: str, services: DispatchServices = Depends(get_services)) -> AssignmentResponse:
    try:
        machine = services.assignment.assign_order(order_id)
        return AssignmentResponse(order_id=order_id, machine=machine_to_model(machine))
    except DispatchError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:
        raise unexpected_error("assigning order", exc) from exc


@router.post("/{order_id}/route", response_model=RouteModel, status_code=status.HTTP_201_CREATED)
def compute_route(order_id: str, services: DispatchServices = Depends(get_services)) -> RouteModel:
    try:
        return route_to_model(services.routing.compute_route(order_id))
    except DispatchError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:
        raise unexpected_error("computing route", exc) from exc


@router.get("/{order_id}/routes", response_model=List[RouteModel], status_code=status.HTTP_200_OK)
def list_routes(order_id: str, services: DispatchServices = Depends(get_services)) -> List[RouteModel]:
    try:
        return [route_to_model(r) for r in services.routing.list_routes(order_id)]
    except DispatchError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:
        raise unexpected_error("listing routes", exc) from exc
