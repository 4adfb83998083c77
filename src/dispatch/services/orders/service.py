"""Order lifecycle: quote redemption, payment confirmation and dispatch."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from ...errors import (
    InvalidRequestError,
    NoMachineAvailableError,
    NotFoundError,
    OrderStateConflictError,
    PartialAssignmentFailure,
    PaymentFailedError,
    PersistenceError,
)
from ...models.domain import ItemMetrics, Location, Machine, Order, OrderStatus
from ...persistence.base import OrderStore
from ..assignment.service import AssignmentEngine
from ..quotes.cache import QuoteCache
from ..routing.models import RouteOption
from ..routing.service import RoutingEngine
from ..payment.gateway import PaymentGateway

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
ADMIN_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100


def normalize_paging(page: int, limit: int, default: int = DEFAULT_PAGE_SIZE) -> tuple[int, int]:
    """Pages below 1 read as 1; a limit outside 1..MAX_PAGE_SIZE falls back to ``default``."""
    if page < 1:
        page = 1
    if limit < 1 or limit > MAX_PAGE_SIZE:
        limit = default
    return page, limit


@dataclass(slots=True)
class PaymentOutcome:
    """Result of confirming an order; ``machine`` is None while assignment is pending."""

    order: Order
    machine: Machine | None = None

    @property
    def assignment_pending(self) -> bool:
        return self.machine is None


class OrderService:
    def __init__(
        self,
        orders: OrderStore,
        quotes: QuoteCache,
        routing: RoutingEngine,
        assignment: AssignmentEngine,
        payments: PaymentGateway | None,
    ) -> None:
        self.orders = orders
        self.quotes = quotes
        self.routing = routing
        self.assignment = assignment
        self.payments = payments

    def get_delivery_quote(
        self,
        pickup: Location,
        dropoff: Location,
        item: ItemMetrics,
        requested_time: datetime | None = None,
    ) -> list[RouteOption]:
        return self.routing.calculate_route_options(pickup, dropoff, requested_time, item)

    def create_order(self, user_id: str, route_option_id: str) -> Order:
        """Turn a quoted route option into a ``PENDING_PAYMENT`` order.

        The quote is redeemed before anything is written so two requests can
        never order the same option. A store failure after that point leaves
        the quote spent: the ``PersistenceError`` says so and the client has
        to ask for a new quote.
        """
        option = self.quotes.redeem(route_option_id)

        try:
            pickup = self.orders.insert_address(user_id, option.pickup, label="pickup")
            dropoff = self.orders.insert_address(user_id, option.dropoff, label="dropoff")
            order = self.orders.create_order(
                user_id=user_id,
                pickup_address_id=pickup.id,
                dropoff_address_id=dropoff.id,
                item=option.item,
                cost=option.estimated_cost,
                strategy=option.strategy,
                machine_type=option.machine_type,
            )
        except PersistenceError as exc:
            logger.error(f"Quote {option.id} was redeemed but order creation failed: {exc}")
            raise PersistenceError(
                f"Order could not be stored and quote '{option.id}' has been consumed; request a new quote. ({exc})"
            ) from exc
        logger.info(
            f"Created order {order.id} for user {user_id} from {option.strategy.value} quote {option.id}"
        )
        return order

    def get_order_details(self, order_id: str, user_id: str) -> Order:
        order = self.orders.get_order(order_id)
        if order.user_id != user_id:
            # same answer as a missing order so ids of other users do not leak
            raise NotFoundError(f"Order '{order_id}' not found.")
        return order

    def list_user_orders(self, user_id: str, page: int = 1, limit: int = DEFAULT_PAGE_SIZE) -> tuple[list[Order], int]:
        page, limit = normalize_paging(page, limit)
        return self.orders.list_orders_for_user(user_id, page, limit)

    def list_all_orders(self, page: int = 1, limit: int = ADMIN_PAGE_SIZE) -> tuple[list[Order], int]:
        page, limit = normalize_paging(page, limit, default=ADMIN_PAGE_SIZE)
        return self.orders.list_orders(page, limit)

    def admin_update_order(
        self,
        order_id: str,
        status: OrderStatus | None = None,
        machine_id: str | None = None,
    ) -> Order:
        """Operator override of an order's status or machine.

        No lifecycle checks apply here; the only validation is that the order
        and, when given, the machine exist.
        """
        if status is None and machine_id is None:
            raise InvalidRequestError("Provide a status, a machine_id or both.")
        if machine_id is not None:
            self.assignment.fleet.get_machine(machine_id)
        updated = self.orders.update_order(order_id, status=status, machine_id=machine_id)
        logger.warning(
            f"Operator override on order {order_id}: status={updated.status.value} machine={updated.machine_id}"
        )
        return updated

    def cancel_order(self, order_id: str, user_id: str) -> Order:
        order = self.get_order_details(order_id, user_id)
        if order.status != OrderStatus.PENDING_PAYMENT:
            raise OrderStateConflictError(f"Order {order_id} is {order.status.value} and cannot be cancelled.")
        cancelled = self.orders.transition_order_status(
            order_id, OrderStatus.PENDING_PAYMENT, OrderStatus.CANCELLED
        )
        if cancelled is None:
            raise OrderStateConflictError(f"Order {order_id} changed state before it could be cancelled.")
        logger.info(f"Cancelled order {order_id}")
        return cancelled

    def confirm_and_pay(self, user_id: str, order_id: str, payment_method_id: str) -> PaymentOutcome:
        order = self.get_order_details(order_id, user_id)
        if order.status != OrderStatus.PENDING_PAYMENT:
            raise OrderStateConflictError(f"Order {order_id} is {order.status.value} and cannot be paid.")
        if self.payments is None:
            raise PaymentFailedError("No payment provider is configured.")

        reference = self.payments.process_payment(user_id, order.cost, payment_method_id)

        try:
            confirmed = self.orders.transition_order_status(
                order_id,
                OrderStatus.PENDING_PAYMENT,
                OrderStatus.CONFIRMED,
                payment_reference=reference,
            )
        except PersistenceError as exc:
            confirmed = self._confirmed_despite_error(order_id, reference)
            if confirmed is None:
                logger.error(f"Could not confirm order {order_id} after payment {reference}; refunding: {exc}")
                self._refund_after_failed_confirmation(order_id, reference)
                raise
        if confirmed is None:
            self._refund_after_failed_confirmation(order_id, reference)
            raise OrderStateConflictError(
                f"Order {order_id} changed state during payment; payment {reference} was refunded."
            )

        try:
            machine = self.assignment.assign_order(order_id)
        except NoMachineAvailableError:
            logger.warning(f"Order {order_id} paid ({reference}) but no machine is idle; assignment pending")
            return PaymentOutcome(order=confirmed)

        return PaymentOutcome(order=self.orders.get_order(order_id), machine=machine)

    def _confirmed_despite_error(self, order_id: str, reference: str) -> Order | None:
        """The order if the failed confirm write was committed with ``reference`` anyway."""
        try:
            order = self.orders.get_order(order_id)
        except PersistenceError:
            return None
        if order.status == OrderStatus.CONFIRMED and order.payment_reference == reference:
            logger.warning(f"Confirmation of order {order_id} reported an error but was stored")
            return order
        return None

    def _refund_after_failed_confirmation(self, order_id: str, reference: str) -> None:
        try:
            self.payments.refund(reference)
        except PaymentFailedError as exc:
            logger.error(f"Payment {reference} captured for order {order_id} but neither confirmed nor refunded")
            raise PartialAssignmentFailure(
                f"Payment {reference} was captured for order {order_id} but the order could not be "
                "confirmed and the refund failed.",
                order_id=order_id,
            ) from exc

    def retry_pending_assignments(self) -> dict[str, Machine]:
        """Assign machines to paid orders that are still waiting, oldest first."""
        assigned: dict[str, Machine] = {}
        for order in self.orders.list_unassigned_orders(OrderStatus.CONFIRMED):
            try:
                assigned[order.id] = self.assignment.assign_order(order.id)
            except NoMachineAvailableError:
                logger.info(f"Stopped retrying assignments at order {order.id}: fleet is busy")
                break
            except OrderStateConflictError as exc:
                logger.warning(f"Skipped order {order.id}: {exc}")
        return assigned
