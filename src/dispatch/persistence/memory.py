"""Thread-safe in-memory implementation of every dispatch store.

Used when Supabase is not configured and throughout the test suite. One lock
guards all tables, so the conditional transitions behave like the filtered
``UPDATE ... WHERE status = ...`` statements of the database store.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Iterable

from ..errors import NotFoundError
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


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class InMemoryDispatchStore:
    """Fleet, order, route and tracking tables held in dictionaries."""

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._lock = threading.RLock()
        self.machines: dict[str, Machine] = {}
        self.orders: dict[str, Order] = {}
        self.addresses: dict[str, Address] = {}
        self.routes: list[Route] = []
        self.tracking_events: list[TrackingEvent] = []

    # ----- seeding -----

    def add_machine(
        self,
        machine_type: MachineType = MachineType.DRONE,
        status: MachineStatus = MachineStatus.IDLE,
        *,
        machine_id: str | None = None,
        latitude: float = 0.0,
        longitude: float = 0.0,
        battery_level: int = 100,
        created_at: datetime | None = None,
    ) -> Machine:
        now = created_at or self._clock()
        machine = Machine(
            id=machine_id or _new_id(),
            machine_type=machine_type,
            status=status,
            latitude=latitude,
            longitude=longitude,
            battery_level=battery_level,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self.machines[machine.id] = machine
        return replace(machine)

    def add_machines(self, machines: Iterable[Machine]) -> None:
        with self._lock:
            for machine in machines:
                self.machines[machine.id] = replace(machine)

    # ----- FleetStore -----

    def list_machines(self) -> list[Machine]:
        with self._lock:
            machines = [replace(m) for m in self.machines.values()]
        return sorted(machines, key=lambda m: (m.created_at, m.id))

    def list_machines_by_status(self, status: MachineStatus) -> list[Machine]:
        return [m for m in self.list_machines() if m.status == status]

    def get_machine(self, machine_id: str) -> Machine:
        with self._lock:
            machine = self.machines.get(machine_id)
            if machine is None:
                raise NotFoundError(f"Machine '{machine_id}' not found.")
            return replace(machine)

    def update_machine(self, machine: Machine) -> Machine:
        with self._lock:
            if machine.id not in self.machines:
                raise NotFoundError(f"Machine '{machine.id}' not found.")
            stored = replace(machine, updated_at=self._clock())
            self.machines[machine.id] = stored
            return replace(stored)

    def transition_machine_status(
        self, machine_id: str, expected: MachineStatus, new: MachineStatus
    ) -> Machine | None:
        with self._lock:
            machine = self.machines.get(machine_id)
            if machine is None or machine.status != expected:
                return None
            machine.status = new
            machine.updated_at = self._clock()
            return replace(machine)

    # ----- OrderStore -----

    def insert_address(self, user_id: str, location: Location, label: str | None = None) -> Address:
        address = Address(
            id=_new_id(),
            user_id=user_id,
            street_address=location.street_address,
            latitude=location.latitude,
            longitude=location.longitude,
            label=label,
            created_at=self._clock(),
        )
        with self._lock:
            self.addresses[address.id] = address
        return replace(address)

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
        status: OrderStatus = OrderStatus.PENDING_PAYMENT,
    ) -> Order:
        now = self._clock()
        order = Order(
            id=_new_id(),
            user_id=user_id,
            pickup_address_id=pickup_address_id,
            dropoff_address_id=dropoff_address_id,
            status=status,
            item=item,
            cost=cost,
            created_at=now,
            updated_at=now,
            strategy=strategy,
            machine_type=machine_type,
        )
        with self._lock:
            self.orders[order.id] = order
        return replace(order)

    def get_order(self, order_id: str) -> Order:
        with self._lock:
            order = self.orders.get(order_id)
            if order is None:
                raise NotFoundError(f"Order '{order_id}' not found.")
            return replace(order)

    def get_order_addresses(self, order_id: str) -> tuple[Location, Location]:
        with self._lock:
            order = self.orders.get(order_id)
            if order is None:
                raise NotFoundError(f"Order '{order_id}' not found.")
            pickup = self.addresses.get(order.pickup_address_id)
            dropoff = self.addresses.get(order.dropoff_address_id)
        if pickup is None or dropoff is None:
            raise NotFoundError(f"Addresses for order '{order_id}' not found.")
        return pickup.to_location(), dropoff.to_location()

    def list_orders_for_user(self, user_id: str, page: int, limit: int) -> tuple[list[Order], int]:
        with self._lock:
            owned = [replace(o) for o in self.orders.values() if o.user_id == user_id]
        owned.sort(key=lambda o: o.created_at, reverse=True)
        offset = (page - 1) * limit
        return owned[offset : offset + limit], len(owned)

    def list_orders(self, page: int, limit: int) -> tuple[list[Order], int]:
        with self._lock:
            everything = [replace(o) for o in self.orders.values()]
        everything.sort(key=lambda o: o.created_at, reverse=True)
        offset = (page - 1) * limit
        return everything[offset : offset + limit], len(everything)

    def list_unassigned_orders(self, status: OrderStatus) -> list[Order]:
        with self._lock:
            matching = [
                replace(o) for o in self.orders.values() if o.status == status and o.machine_id is None
            ]
        return sorted(matching, key=lambda o: (o.created_at, o.id))

    def transition_order_status(
        self,
        order_id: str,
        expected: OrderStatus,
        new: OrderStatus,
        *,
        payment_reference: str | None = None,
    ) -> Order | None:
        with self._lock:
            order = self.orders.get(order_id)
            if order is None or order.status != expected:
                return None
            order.status = new
            if payment_reference is not None:
                order.payment_reference = payment_reference
            order.updated_at = self._clock()
            return replace(order)

    def bind_machine(self, order_id: str, machine_id: str) -> Order | None:
        with self._lock:
            order = self.orders.get(order_id)
            if order is None or order.status != OrderStatus.CONFIRMED or order.machine_id is not None:
                return None
            order.machine_id = machine_id
            order.status = OrderStatus.IN_PROGRESS
            order.updated_at = self._clock()
            return replace(order)

    def update_order(
        self,
        order_id: str,
        *,
        status: OrderStatus | None = None,
        machine_id: str | None = None,
    ) -> Order:
        with self._lock:
            order = self.orders.get(order_id)
            if order is None:
                raise NotFoundError(f"Order '{order_id}' not found.")
            if status is not None:
                order.status = status
            if machine_id is not None:
                order.machine_id = machine_id
            order.updated_at = self._clock()
            return replace(order)

    # ----- RouteStore -----

    def save_route(self, order_id: str, leg: RouteLeg) -> Route:
        route = Route(
            id=_new_id(),
            order_id=order_id,
            polyline=leg.polyline,
            distance_meters=leg.distance_meters,
            duration_seconds=leg.duration_seconds,
            created_at=self._clock(),
        )
        with self._lock:
            self.routes.append(route)
        return replace(route)

    def list_routes(self, order_id: str) -> list[Route]:
        with self._lock:
            routes = [replace(r) for r in self.routes if r.order_id == order_id]
        return sorted(routes, key=lambda r: r.created_at)

    # ----- TrackingStore -----

    def append_event(
        self, order_id: str, machine_id: str | None, latitude: float, longitude: float
    ) -> TrackingEvent:
        event = TrackingEvent(
            id=_new_id(),
            order_id=order_id,
            machine_id=machine_id,
            latitude=latitude,
            longitude=longitude,
            created_at=self._clock(),
        )
        with self._lock:
            self.tracking_events.append(event)
        return replace(event)

    def list_events(self, order_id: str, since: datetime | None = None) -> list[TrackingEvent]:
        with self._lock:
            events = [
                replace(e)
                for e in self.tracking_events
                if e.order_id == order_id and (since is None or e.created_at > since)
            ]
        # stable sort keeps insertion order for equal timestamps
        return sorted(events, key=lambda e: e.created_at)
