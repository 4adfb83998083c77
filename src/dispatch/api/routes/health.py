"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ...services.container import DispatchServices
from ...services.routing.maps_client import check_health as maps_health_check
from ..dependencies import get_services

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Liveness probe with no downstream calls."""
    return {"status": "ok"}


@router.get("/health/maps", status_code=status.HTTP_200_OK)
def health_maps(services: DispatchServices = Depends(get_services)) -> dict:
    try:
        return {"service": "maps", "healthy": maps_health_check(services.maps)}
    except Exception as e:
        return {"service": "maps", "healthy": False, "error": str(e)}


@router.get("/health/database", status_code=status.HTTP_200_OK)
def check_database(services: DispatchServices = Depends(get_services)) -> dict:
    """Report which store backs the fleet and whether it answers."""
    if not services.database_backed:
        return {
            "configured": False,
            "message": "Supabase not configured. Set DISPATCH_SUPABASE_URL and DISPATCH_SUPABASE_KEY; using in-memory storage.",
            "machines_count": len(services.store.list_machines()),
        }

    try:
        machines = services.store.list_machines()
        return {
            "configured": True,
            "connected": True,
            "machines_count": len(machines),
            "message": f"Database connected. Found {len(machines)} machines.",
        }
    except Exception as exc:
        return {
            "configured": True,
            "connected": False,
            "error": str(exc),
            "message": f"Database connection error: {exc}",
        }
