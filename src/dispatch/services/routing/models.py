"""Routing domain models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from ...models.domain import ItemMetrics, Location, MachineType, RouteStrategy
from .polyline import decode_polyline


@dataclass(slots=True, frozen=True)
class RouteLeg:
    """Raw answer from a mapping provider for one origin/destination pair."""

    distance_meters: int
    duration_seconds: int
    polyline: str


@dataclass(slots=True, frozen=True)
class RouteOption:
    id: str
    pickup: Location
    dropoff: Location
    polyline: str
    distance_meters: int
    duration_seconds: int
    strategy: RouteStrategy
    machine_type: MachineType
    estimated_cost: float
    item: ItemMetrics
    created_at: datetime
    expires_at: datetime


@dataclass(slots=True)
class Route:
    id: str
    order_id: str
    polyline: str
    distance_meters: int
    duration_seconds: int
    created_at: datetime

    def path(self) -> list[tuple[float, float]]:
        return decode_polyline(self.polyline)
