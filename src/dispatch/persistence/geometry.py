"""Conversions between PostGIS point columns and latitude/longitude pairs."""

from __future__ import annotations

from typing import Any

from shapely import wkb, wkt
from shapely.geometry import Point, shape

SRID = 4326


def point_to_ewkt(latitude: float, longitude: float) -> str:
    """Render a point the way PostGIS accepts it over PostgREST (lon lat order)."""
    return f"SRID={SRID};{Point(longitude, latitude).wkt}"


def parse_point(value: Any) -> tuple[float, float]:
    """Return (lat, lon) from a GeoJSON dict, WKT/EWKT text or hex (E)WKB.

    PostgREST hands geometry columns back in any of these depending on the
    server version, so all of them are accepted. Missing values map to (0, 0)
    like ``COALESCE(ST_Y(...), 0)`` would.
    """
    if value is None or value == "":
        return (0.0, 0.0)
    if isinstance(value, dict):
        geometry = shape(value)
    elif isinstance(value, str):
        text = value.strip()
        if text.upper().startswith("SRID="):
            text = text.split(";", 1)[1]
        if text.upper().startswith("POINT"):
            geometry = wkt.loads(text)
        else:
            geometry = wkb.loads(text, hex=True)
    else:
        raise ValueError(f"Unsupported point value: {value!r}")

    if geometry.geom_type != "Point":
        raise ValueError(f"Expected a point geometry, got {geometry.geom_type}.")
    return (float(geometry.y), float(geometry.x))
