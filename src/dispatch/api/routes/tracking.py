"""Tracking endpoints."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, status

from ...errors import DispatchError
from ...schemas.tracking import (
    TrackingEventModel,
    TrackingReport,
    TrackingResponse,
    event_to_model,
)
from ...services.container import DispatchServices
from ..dependencies import get_services, to_http_exception, unexpected_error

router = APIRouter(prefix="/orders", tags=["tracking"])


@router.post("/{order_id}/track", response_model=TrackingEventModel, status_code=status.HTTP_201_CREATED)
def report_position(
    order_id: str,
    payload: TrackingReport,
    services: DispatchServices = Depends(get_services),
) -> TrackingEventModel:
    try:
        event = services.tracking.report_tracking(
            order_id, payload.machine_id, payload.latitude, payload.longitude
        )
        return event_to_model(event)
    except DispatchError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:
        raise unexpected_error("recording tracking event", exc) from exc


@router.get("/{order_id}/track", response_model=TrackingResponse, status_code=status.HTTP_200_OK)
def get_tracking(
    order_id: str,
    since: datetime | None = Query(default=None, description="Only events recorded strictly after this instant"),
    services: DispatchServices = Depends(get_services),
) -> TrackingResponse:
    try:
        events = services.tracking.get_tracking(order_id, since)
    except DispatchError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:
        raise unexpected_error("fetching tracking events", exc) from exc
    return TrackingResponse(order_id=order_id, events=[event_to_model(e) for e in events])
