"""Storage contracts used by the dispatch services."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, Sequence

from ..models.domain import (
    Address,
    ItemMetrics,
    Location,
    Machine,
    MachineStatus,
    MachineType,
    Order,
    OrderStatus,
    RouteStrategy,
    TrackingEvent,
)
from ..services.routing.models import Route, RouteLeg


class FleetStore(Protocol):
    """Machine records with a conditional status transition."""

    def list_machines(self) -> list[Machine]:
        """All machines ordered by creation time."""
        ...

    def list_machines_by_status(self, status: MachineStatus) -> list[Machine]:
        """Machines in ``status`` ordered by (created_at, id)."""
        ...

    def get_machine(self, machine_id: str) -> Machine:
        ...

    def update_machine(self, machine: Machine) -> Machine:
        ...

    def transition_machine_status(
        self, machine_id: str, expected: MachineStatus, new: MachineStatus
    ) -> Machine | None:
        """Set ``new`` only if the stored status is ``expected``; None when it was not."""
        ...


class OrderStore(Protocol):
    def insert_address(self, user_id: str, location: Location, label: str | None = None) -> Address:
        ...

    def create_order(
        self,
        *,
        user_id: str,
        pickup_address_id: str,
        dropoff_address_id: str,
        item: ItemMetrics,
        cost: float,
        strategy: RouteStrategy | None = None,
        machine_type: MachineType | None = None,
    ) -> Order:
        ...

    def get_order(self, order_id: str) -> Order:
        ...

    def get_order_addresses(self, order_id: str) -> tuple[Location, Location]:
        ...

    def list_orders_for_user(self, user_id: str, page: int, limit: int) -> tuple[list[Order], int]:
        ...

    def list_orders(self, page: int, limit: int) -> tuple[list[Order], int]:
        """Every order, newest first, with the total count."""
        ...

    def list_unassigned_orders(self, status: OrderStatus) -> list[Order]:
        """Orders in ``status`` with no machine, oldest first."""
        ...

    def transition_order_status(
        self,
        order_id: str,
        expected: OrderStatus,
        new: OrderStatus,
        *,
        payment_reference: str | None = None,
    ) -> Order | None:
        ...

    def bind_machine(self, order_id: str, machine_id: str) -> Order | None:
        """Attach ``machine_id`` and move CONFIRMED -> IN_PROGRESS; None if the order moved on."""
        ...

    def update_order(
        self,
        order_id: str,
        *,
        status: OrderStatus | None = None,
        machine_id: str | None = None,
    ) -> Order:
        """Unconditional operator override of status and/or machine."""
        ...


class RouteStore(Protocol):
    def save_route(self, order_id: str, leg: RouteLeg) -> Route:
        ...

    def list_routes(self, order_id: str) -> list[Route]:
        ...


class TrackingStore(Protocol):
    def append_event(
        self, order_id: str, machine_id: str | None, latitude: float, longitude: float
    ) -> TrackingEvent:
        ...

    def list_events(self, order_id: str, since: datetime | None = None) -> Sequence[TrackingEvent]:
        """Events created strictly after ``since``, oldest first."""
        ...
