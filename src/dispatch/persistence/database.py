"""Database persistence for machines, orders, routes and tracking events."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, TypeVar

from supabase import Client

from ..errors import NotFoundError, PersistenceError
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
from .geometry import parse_point, point_to_ewkt

logger = logging.getLogger(__name__)

T = TypeVar("T")

ORDER_COLUMNS = (
    "id, user_id, machine_id, pickup_address_id, dropoff_address_id, status, "
    "item_length_cm, item_width_cm, item_height_cm, item_weight_kg, cost, "
    "strategy, machine_type, payment_reference, created_at, updated_at"
)


def _timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _machine_from_row(row: dict[str, Any]) -> Machine:
    latitude, longitude = parse_point(row.get("current_location"))
    return Machine(
        id=str(row["id"]),
        machine_type=MachineType(row["type"]),
        status=MachineStatus(row["status"]),
        latitude=latitude,
        longitude=longitude,
        battery_level=int(row.get("battery_level") or 0),
        created_at=_timestamp(row["created_at"]),
        updated_at=_timestamp(row["updated_at"]),
    )


def _order_from_row(row: dict[str, Any]) -> Order:
    return Order(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        machine_id=str(row["machine_id"]) if row.get("machine_id") else None,
        pickup_address_id=str(row["pickup_address_id"]),
        dropoff_address_id=str(row["dropoff_address_id"]),
        status=OrderStatus(row["status"]),
        item=ItemMetrics(
            length_cm=float(row["item_length_cm"]),
            width_cm=float(row["item_width_cm"]),
            height_cm=float(row["item_height_cm"]),
            weight_kg=float(row["item_weight_kg"]),
        ),
        cost=float(row["cost"]),
        strategy=RouteStrategy(row["strategy"]) if row.get("strategy") else None,
        machine_type=MachineType(row["machine_type"]) if row.get("machine_type") else None,
        payment_reference=row.get("payment_reference"),
        created_at=_timestamp(row["created_at"]),
        updated_at=_timestamp(row["updated_at"]),
    )


def _address_from_row(row: dict[str, Any]) -> Address:
    return Address(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        street_address=row.get("street_address"),
        latitude=float(row["latitude"]) if row.get("latitude") is not None else None,
        longitude=float(row["longitude"]) if row.get("longitude") is not None else None,
        label=row.get("label"),
        created_at=_timestamp(row["created_at"]) if row.get("created_at") else None,
    )


def _route_from_row(row: dict[str, Any]) -> Route:
    return Route(
        id=str(row["id"]),
        order_id=str(row["order_id"]),
        polyline=row.get("polyline") or "",
        distance_meters=int(row.get("distance_meters") or 0),
        duration_seconds=int(row.get("duration_seconds") or 0),
        created_at=_timestamp(row["created_at"]),
    )


def _event_from_row(row: dict[str, Any]) -> TrackingEvent:
    latitude, longitude = parse_point(row.get("location"))
    return TrackingEvent(
        id=str(row["id"]),
        order_id=str(row["order_id"]),
        machine_id=str(row["machine_id"]) if row.get("machine_id") else None,
        latitude=latitude,
        longitude=longitude,
        created_at=_timestamp(row["created_at"]),
    )


class SupabaseDispatchStore:
    """Fleet, order, route and tracking stores backed by Supabase tables.

    Conditional transitions are single filtered UPDATEs (``.eq("status", ...)``);
    PostgREST returns the rows it changed, so an empty result means another
    request won the race.
    """

    def __init__(self, client: Client) -> None:
        self.client = client

    def _run(self, operation: str, call: Callable[[], T]) -> T:
        try:
            return call()
        except NotFoundError:
            raise
        except Exception as exc:
            logger.error(f"{operation} failed: {exc}")
            raise PersistenceError(f"{operation}: {exc}") from exc

    # ----- FleetStore -----

    def list_machines(self) -> list[Machine]:
        response = self._run(
            "fleet.list_machines",
            lambda: self.client.table("machines").select("*").order("created_at").order("id").execute(),
        )
        return [_machine_from_row(row) for row in (response.data or [])]

    def list_machines_by_status(self, status: MachineStatus) -> list[Machine]:
        response = self._run(
            "fleet.list_machines_by_status",
            lambda: self.client.table("machines")
            .select("*")
            .eq("status", status.value)
            .order("created_at")
            .order("id")
            .execute(),
        )
        return [_machine_from_row(row) for row in (response.data or [])]

    def get_machine(self, machine_id: str) -> Machine:
        response = self._run(
            "fleet.get_machine",
            lambda: self.client.table("machines").select("*").eq("id", machine_id).limit(1).execute(),
        )
        if not response.data:
            raise NotFoundError(f"Machine '{machine_id}' not found.")
        return _machine_from_row(response.data[0])

    def update_machine(self, machine: Machine) -> Machine:
        payload = {
            "status": machine.status.value,
            "current_location": point_to_ewkt(machine.latitude, machine.longitude),
            "battery_level": machine.battery_level,
            "updated_at": _now_iso(),
        }
        response = self._run(
            "fleet.update_machine",
            lambda: self.client.table("machines").update(payload).eq("id", machine.id).execute(),
        )
        if not response.data:
            raise NotFoundError(f"Machine '{machine.id}' not found.")
        return _machine_from_row(response.data[0])

    def transition_machine_status(
        self, machine_id: str, expected: MachineStatus, new: MachineStatus
    ) -> Machine | None:
        response = self._run(
            "fleet.transition_machine_status",
            lambda: self.client.table("machines")
            .update({"status": new.value, "updated_at": _now_iso()})
            .eq("id", machine_id)
            .eq("status", expected.value)
            .execute(),
        )
        if not response.data:
            return None
        return _machine_from_row(response.data[0])

    # ----- OrderStore -----

    def insert_address(self, user_id: str, location: Location, label: str | None = None) -> Address:
        payload = {
            "user_id": user_id,
            "label": label,
            "street_address": location.street_address,
            "latitude": location.latitude,
            "longitude": location.longitude,
        }
        response = self._run(
            "orders.insert_address",
            lambda: self.client.table("addresses").insert(payload).execute(),
        )
        return _address_from_row(response.data[0])

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
        payload = {
            "user_id": user_id,
            "pickup_address_id": pickup_address_id,
            "dropoff_address_id": dropoff_address_id,
            "status": OrderStatus.PENDING_PAYMENT.value,
            "item_length_cm": item.length_cm,
            "item_width_cm": item.width_cm,
            "item_height_cm": item.height_cm,
            "item_weight_kg": item.weight_kg,
            "cost": cost,
            "strategy": strategy.value if strategy else None,
            "machine_type": machine_type.value if machine_type else None,
        }
        response = self._run(
            "orders.create_order",
            lambda: self.client.table("orders").insert(payload).execute(),
        )
        return _order_from_row(response.data[0])

    def get_order(self, order_id: str) -> Order:
        response = self._run(
            "orders.get_order",
            lambda: self.client.table("orders").select(ORDER_COLUMNS).eq("id", order_id).limit(1).execute(),
        )
        if not response.data:
            raise NotFoundError(f"Order '{order_id}' not found.")
        return _order_from_row(response.data[0])

    def get_order_addresses(self, order_id: str) -> tuple[Location, Location]:
        order = self.get_order(order_id)
        response = self._run(
            "orders.get_order_addresses",
            lambda: self.client.table("addresses")
            .select("*")
            .in_("id", [order.pickup_address_id, order.dropoff_address_id])
            .execute(),
        )
        by_id = {str(row["id"]): _address_from_row(row) for row in (response.data or [])}
        pickup = by_id.get(order.pickup_address_id)
        dropoff = by_id.get(order.dropoff_address_id)
        if pickup is None or dropoff is None:
            raise NotFoundError(f"Addresses for order '{order_id}' not found.")
        return pickup.to_location(), dropoff.to_location()

    def list_orders_for_user(self, user_id: str, page: int, limit: int) -> tuple[list[Order], int]:
        offset = (page - 1) * limit
        response = self._run(
            "orders.list_orders_for_user",
            lambda: self.client.table("orders")
            .select(ORDER_COLUMNS, count="exact")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .range(offset, offset + limit - 1)
            .execute(),
        )
        orders = [_order_from_row(row) for row in (response.data or [])]
        total = response.count if response.count is not None else len(orders)
        return orders, total

    def list_orders(self, page: int, limit: int) -> tuple[list[Order], int]:
        offset = (page - 1) * limit
        response = self._run(
            "orders.list_orders",
            lambda: self.client.table("orders")
            .select(ORDER_COLUMNS, count="exact")
            .order("created_at", desc=True)
            .range(offset, offset + limit - 1)
            .execute(),
        )
        orders = [_order_from_row(row) for row in (response.data or [])]
        total = response.count if response.count is not None else len(orders)
        return orders, total

    def list_unassigned_orders(self, status: OrderStatus) -> list[Order]:
        response = self._run(
            "orders.list_unassigned_orders",
            lambda: self.client.table("orders")
            .select(ORDER_COLUMNS)
            .eq("status", status.value)
            .is_("machine_id", "null")
            .order("created_at")
            .order("id")
            .execute(),
        )
        return [_order_from_row(row) for row in (response.data or [])]

    def transition_order_status(
        self,
        order_id: str,
        expected: OrderStatus,
        new: OrderStatus,
        *,
        payment_reference: str | None = None,
    ) -> Order | None:
        payload: dict[str, Any] = {"status": new.value, "updated_at": _now_iso()}
        if payment_reference is not None:
            payload["payment_reference"] = payment_reference
        response = self._run(
            "orders.transition_order_status",
            lambda: self.client.table("orders")
            .update(payload)
            .eq("id", order_id)
            .eq("status", expected.value)
            .execute(),
        )
        if not response.data:
            return None
        return _order_from_row(response.data[0])

    def bind_machine(self, order_id: str, machine_id: str) -> Order | None:
        payload = {
            "machine_id": machine_id,
            "status": OrderStatus.IN_PROGRESS.value,
            "updated_at": _now_iso(),
        }
        response = self._run(
            "orders.bind_machine",
            lambda: self.client.table("orders")
            .update(payload)
            .eq("id", order_id)
            .eq("status", OrderStatus.CONFIRMED.value)
            .is_("machine_id", "null")
            .execute(),
        )
        if not response.data:
            return None
        return _order_from_row(response.data[0])

    def update_order(
        self,
        order_id: str,
        *,
        status: OrderStatus | None = None,
        machine_id: str | None = None,
    ) -> Order:
        payload: dict[str, Any] = {"updated_at": _now_iso()}
        if status is not None:
            payload["status"] = status.value
        if machine_id is not None:
            payload["machine_id"] = machine_id
        response = self._run(
            "orders.update_order",
            lambda: self.client.table("orders").update(payload).eq("id", order_id).execute(),
        )
        if not response.data:
            raise NotFoundError(f"Order '{order_id}' not found.")
        return _order_from_row(response.data[0])

    # ----- RouteStore -----

    def save_route(self, order_id: str, leg: RouteLeg) -> Route:
        payload = {
            "order_id": order_id,
            "polyline": leg.polyline,
            "distance_meters": leg.distance_meters,
            "duration_seconds": leg.duration_seconds,
        }
        response = self._run(
            "routes.save_route",
            lambda: self.client.table("routes").insert(payload).execute(),
        )
        return _route_from_row(response.data[0])

    def list_routes(self, order_id: str) -> list[Route]:
        response = self._run(
            "routes.list_routes",
            lambda: self.client.table("routes").select("*").eq("order_id", order_id).order("created_at").execute(),
        )
        return [_route_from_row(row) for row in (response.data or [])]

    # ----- TrackingStore -----

    def append_event(
        self, order_id: str, machine_id: str | None, latitude: float, longitude: float
    ) -> TrackingEvent:
        payload = {
            "order_id": order_id,
            "machine_id": machine_id,
            "location": point_to_ewkt(latitude, longitude),
        }
        response = self._run(
            "tracking.append_event",
            lambda: self.client.table("tracking_events").insert(payload).execute(),
        )
        return _event_from_row(response.data[0])

    def list_events(self, order_id: str, since: datetime | None = None) -> list[TrackingEvent]:
        def query():
            builder = self.client.table("tracking_events").select("*").eq("order_id", order_id)
            if since is not None:
                builder = builder.gt("created_at", since.isoformat())
            return builder.order("created_at").execute()

        response = self._run("tracking.list_events", query)
        return [_event_from_row(row) for row in (response.data or [])]
