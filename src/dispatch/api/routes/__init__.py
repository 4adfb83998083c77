"""Route group exports."""

from . import admin, fleet, health, orders, tracking

__all__ = ["admin", "fleet", "health", "orders", "tracking"]
