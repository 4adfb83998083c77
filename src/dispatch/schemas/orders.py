"""Quote, order and payment schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from ..models.domain import (
    ItemMetrics,
    Location,
    MachineType,
    Order,
    OrderStatus,
    RouteStrategy,
)
from ..services.routing.models import Route, RouteOption
from .fleet import MachineModel


class LocationModel(BaseModel):
    street_address: Optional[str] = Field(default=None, min_length=1)
    latitude: Optional[float] = Field(default=None, ge=-90.0, le=90.0)
    longitude: Optional[float] = Field(default=None, ge=-180.0, le=180.0)

    @model_validator(mode="after")
    def _require_address_or_coordinates(self) -> "LocationModel":
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be given together")
        if self.latitude is None and not self.street_address:
            raise ValueError("a street address or a latitude/longitude pair is required")
        return self

    def to_domain(self) -> Location:
        return Location(
            street_address=self.street_address,
            latitude=self.latitude,
            longitude=self.longitude,
        )

    @classmethod
    def from_domain(cls, location: Location) -> "LocationModel":
        return cls(
            street_address=location.street_address,
            latitude=location.latitude,
            longitude=location.longitude,
        )


class ItemMetricsModel(BaseModel):
    length_cm: float = Field(..., gt=0)
    width_cm: float = Field(..., gt=0)
    height_cm: float = Field(..., gt=0)
    weight_kg: float = Field(..., gt=0)

    def to_domain(self) -> ItemMetrics:
        return ItemMetrics(
            length_cm=self.length_cm,
            width_cm=self.width_cm,
            height_cm=self.height_cm,
            weight_kg=self.weight_kg,
        )

    @classmethod
    def from_domain(cls, item: ItemMetrics) -> "ItemMetricsModel":
        return cls(
            length_cm=item.length_cm,
            width_cm=item.width_cm,
            height_cm=item.height_cm,
            weight_kg=item.weight_kg,
        )


class QuoteRequest(BaseModel):
    pickup: LocationModel
    dropoff: LocationModel
    item: ItemMetricsModel
    requested_time: Optional[datetime] = Field(
        default=None,
        description="When the delivery is wanted. Defaults to now for peak pricing.",
    )


class RouteOptionModel(BaseModel):
    id: str
    strategy: RouteStrategy
    machine_type: MachineType
    polyline: str
    distance_meters: int = Field(..., ge=0)
    duration_seconds: int = Field(..., ge=0)
    estimated_cost: float = Field(..., ge=0)
    expires_at: datetime


class QuoteResponse(BaseModel):
    options: List[RouteOptionModel]


class CreateOrderRequest(BaseModel):
    route_option_id: str = Field(..., min_length=1)


class OrderModel(BaseModel):
    id: str
    user_id: str
    status: OrderStatus
    pickup_address_id: str
    dropoff_address_id: str
    machine_id: Optional[str] = None
    strategy: Optional[RouteStrategy] = None
    machine_type: Optional[MachineType] = None
    item: ItemMetricsModel
    cost: float
    payment_reference: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class OrderListResponse(BaseModel):
    items: List[OrderModel]
    page: int
    limit: int
    total: int
    has_next_page: bool


class PaymentRequest(BaseModel):
    payment_method_id: str = Field(..., min_length=1)


class PaymentResponse(BaseModel):
    order: OrderModel
    machine: Optional[MachineModel] = None
    assignment_pending: bool


class AssignmentResponse(BaseModel):
    order_id: str
    machine: MachineModel


class AdminOrderUpdate(BaseModel):
    status: Optional[OrderStatus] = None
    machine_id: Optional[str] = Field(default=None, min_length=1)

    @model_validator(mode="after")
    def _require_a_change(self) -> "AdminOrderUpdate":
        if self.status is None and self.machine_id is None:
            raise ValueError("Provide a status, a machine_id or both.")
        return self


class RetryAssignmentsResponse(BaseModel):
    assigned: Dict[str, str] = Field(..., description="Order id to machine id for every new assignment.")
    count: int


class RouteModel(BaseModel):
    id: str
    order_id: str
    polyline: str
    distance_meters: int
    duration_seconds: int
    created_at: datetime
    path: List[List[float]] = Field(default_factory=list, description="Decoded [lat, lon] pairs.")


def option_to_model(option: RouteOption) -> RouteOptionModel:
    return RouteOptionModel(
        id=option.id,
        strategy=option.strategy,
        machine_type=option.machine_type,
        polyline=option.polyline,
        distance_meters=option.distance_meters,
        duration_seconds=option.duration_seconds,
        estimated_cost=option.estimated_cost,
        expires_at=option.expires_at,
    )


def order_to_model(order: Order) -> OrderModel:
    return OrderModel(
        id=order.id,
        user_id=order.user_id,
        status=order.status,
        pickup_address_id=order.pickup_address_id,
        dropoff_address_id=order.dropoff_address_id,
        machine_id=order.machine_id,
        strategy=order.strategy,
        machine_type=order.machine_type,
        item=ItemMetricsModel.from_domain(order.item),
        cost=order.cost,
        payment_reference=order.payment_reference,
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


def route_to_model(route: Route) -> RouteModel:
    try:
        path = [[lat, lon] for lat, lon in route.path()]
    except ValueError:
        path = []
    return RouteModel(
        id=route.id,
        order_id=route.order_id,
        polyline=route.polyline,
        distance_meters=route.distance_meters,
        duration_seconds=route.duration_seconds,
        created_at=route.created_at,
        path=path,
    )
