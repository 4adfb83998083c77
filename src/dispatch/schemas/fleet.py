"""Fleet request/response schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import BaseModel, Field

from ..models.domain import Machine, MachineStatus, MachineType


class MachineModel(BaseModel):
    id: str
    machine_type: MachineType
    status: MachineStatus
    latitude: float
    longitude: float
    battery_level: int = Field(..., ge=0, le=100)
    created_at: datetime
    updated_at: datetime


class FleetResponse(BaseModel):
    machines: List[MachineModel]
    idle_count: int


class MachineStatusUpdate(BaseModel):
    """Status values outside MachineStatus are rejected here with a 422."""
    status: MachineStatus
    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)


def machine_to_model(machine: Machine) -> MachineModel:
    return MachineModel(
        id=machine.id,
        machine_type=machine.machine_type,
        status=machine.status,
        latitude=machine.latitude,
        longitude=machine.longitude,
        battery_level=machine.battery_level,
        created_at=machine.created_at,
        updated_at=machine.updated_at,
    )
