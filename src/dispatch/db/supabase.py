"""Supabase client for Python backend."""

import logging
from functools import lru_cache
from supabase import create_client, Client
from ..config import settings


@lru_cache()
def get_supabase_client() -> Client | None:
    """Get cached Supabase client instance.

    Returns:
        Supabase Client instance if configured, None otherwise.
        Note: This does not test the connection - actual queries may fail with network errors.
    """
    if not settings.supabase_url or not settings.supabase_key:
        logging.warning("Supabase credentials not configured (missing URL or key)")
        return None

    try:
        return create_client(settings.supabase_url, settings.supabase_key)
    except Exception as e:
        logging.error(f"Failed to create Supabase client: {e}")
        return None


# Tables used by the dispatch stores:
#
#   machines(id, type, status, current_location geography(Point,4326),
#            battery_level, created_at, updated_at)
#   addresses(id, user_id, label, street_address, latitude, longitude, created_at)
#   orders(id, user_id, machine_id, pickup_address_id, dropoff_address_id, status,
#          item_length_cm, item_width_cm, item_height_cm, item_weight_kg, cost,
#          strategy, machine_type, payment_reference, created_at, updated_at)
#   routes(id, order_id, polyline, distance_meters, duration_seconds, created_at)
#   tracking_events(id, order_id, machine_id, location geography(Point,4326), created_at)
