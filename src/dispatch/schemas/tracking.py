"""Tracking schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from ..models.domain import TrackingEvent


class TrackingReport(BaseModel):
    machine_id: Optional[str] = None
    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)


class TrackingEventModel(BaseModel):
    id: str
    order_id: str
    machine_id: Optional[str] = None
    latitude: float
    longitude: float
    created_at: datetime


class TrackingResponse(BaseModel):
    order_id: str
    events: List[TrackingEventModel]


def event_to_model(event: TrackingEvent) -> TrackingEventModel:
    return TrackingEventModel(
        id=event.id,
        order_id=event.order_id,
        machine_id=event.machine_id,
        latitude=event.latitude,
        longitude=event.longitude,
        created_at=event.created_at,
    )
