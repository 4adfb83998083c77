"""Fleet endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ...errors import DispatchError
from ...models.domain import MachineStatus
from ...schemas.fleet import FleetResponse, MachineModel, MachineStatusUpdate, machine_to_model
from ...services.container import DispatchServices
from ..dependencies import get_services, to_http_exception, unexpected_error

router = APIRouter(prefix="/fleet", tags=["fleet"])


@router.get("", response_model=FleetResponse, status_code=status.HTTP_200_OK)
def list_fleet(services: DispatchServices = Depends(get_services)) -> FleetResponse:
    try:
        machines = services.assignment.list_machines()
    except DispatchError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:
        raise unexpected_error("listing fleet", exc) from exc
    return FleetResponse(
        machines=[machine_to_model(m) for m in machines],
        idle_count=sum(1 for m in machines if m.status == MachineStatus.IDLE),
    )


@router.put("/{machine_id}/status", response_model=MachineModel, status_code=status.HTTP_200_OK)
def update_machine_status(
    machine_id: str,
    payload: MachineStatusUpdate,
    services: DispatchServices = Depends(get_services),
) -> MachineModel:
    """Overwrite a machine's status and position as reported by the machine."""
    try:
        machine = services.assignment.set_machine_status(
            machine_id, payload.status, payload.latitude, payload.longitude
        )
        return machine_to_model(machine)
    except DispatchError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:
        raise unexpected_error("updating machine status", exc) from exc
