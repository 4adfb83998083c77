"""Domain models for machines, orders, addresses and tracking events."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class MachineType(str, Enum):
    DRONE = "DRONE"
    ROBOT = "ROBOT"


class MachineStatus(str, Enum):
    IDLE = "IDLE"
    IN_TRANSIT = "IN_TRANSIT"
    CHARGING = "CHARGING"
    MAINTENANCE = "MAINTENANCE"


class OrderStatus(str, Enum):
    PENDING_PAYMENT = "PENDING_PAYMENT"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


class RouteStrategy(str, Enum):
    FASTEST = "FASTEST"
    CHEAPEST = "CHEAPEST"


@dataclass(slots=True, frozen=True)
class Location:
    """A pickup or dropoff point given as an address, coordinates, or both."""

    street_address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def as_query(self) -> str:
        """Render the location the way mapping providers accept it."""
        if self.has_coordinates:
            return f"{self.latitude},{self.longitude}"
        if self.street_address:
            return self.street_address
        raise ValueError("Location needs a street address or a latitude/longitude pair.")


@dataclass(slots=True, frozen=True)
class ItemMetrics:
    """Package size in centimetres and weight in kilograms."""

    length_cm: float
    width_cm: float
    height_cm: float
    weight_kg: float

    @property
    def dimensions(self) -> tuple[float, float, float]:
        return (self.length_cm, self.width_cm, self.height_cm)


@dataclass(slots=True)
class Address:
    id: str
    user_id: str
    street_address: Optional[str]
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    label: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_location(self) -> Location:
        return Location(
            street_address=self.street_address,
            latitude=self.latitude,
            longitude=self.longitude,
        )


@dataclass(slots=True)
class Machine:
    """A delivery drone or ground robot with its last known position."""

    id: str
    machine_type: MachineType
    status: MachineStatus
    latitude: float
    longitude: float
    battery_level: int
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class Order:
    id: str
    user_id: str
    pickup_address_id: str
    dropoff_address_id: str
    status: OrderStatus
    item: ItemMetrics
    cost: float
    created_at: datetime
    updated_at: datetime
    machine_id: Optional[str] = None
    strategy: Optional[RouteStrategy] = None
    machine_type: Optional[MachineType] = None
    payment_reference: Optional[str] = None


@dataclass(slots=True)
class TrackingEvent:
    """One position report; never mutated after it is recorded."""

    id: str
    order_id: str
    machine_id: Optional[str]
    latitude: float
    longitude: float
    created_at: datetime
