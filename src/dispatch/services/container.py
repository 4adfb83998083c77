"""Wiring of stores, collaborators and engines for one application instance."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from ..config import Settings, settings
from ..db.supabase import get_supabase_client
from ..errors import RouteUnavailableError
from ..models.domain import Location
from ..persistence.memory import InMemoryDispatchStore
from .assignment.service import AssignmentEngine
from .orders.service import OrderService
from .payment.gateway import PaymentGateway, StripePaymentGateway
from .quotes.cache import QuoteCache
from .routing.maps_client import MapsClient, build_maps_client
from .routing.pricing import PricingPolicy
from .routing.service import RoutingEngine
from .tracking.service import TrackingLedger

logger = logging.getLogger(__name__)


class _UnconfiguredMaps:
    """Stands in when no mapping provider is configured; every lookup fails."""

    def __init__(self, reason: str) -> None:
        self.reason = reason

    def directions(self, origin: Location, destination: Location):
        raise RouteUnavailableError(f"Mapping provider is not configured: {self.reason}")


@dataclass
class DispatchServices:
    store: Any
    maps: MapsClient
    payments: PaymentGateway | None
    quotes: QuoteCache
    routing: RoutingEngine
    assignment: AssignmentEngine
    tracking: TrackingLedger
    orders: OrderService
    database_backed: bool = False


def assemble_services(
    store: Any,
    maps: MapsClient,
    payments: PaymentGateway | None = None,
    config: Settings | None = None,
    quotes: QuoteCache | None = None,
    database_backed: bool = False,
) -> DispatchServices:
    """Build the engines around an existing store and collaborators.

    ``store`` must implement the fleet, order, route and tracking store
    protocols.
    """
    config = config or settings
    quotes = quotes or QuoteCache(ttl=timedelta(seconds=config.quote_ttl_seconds))
    routing = RoutingEngine(
        maps=maps,
        quotes=quotes,
        orders=store,
        routes=store,
        pricing=PricingPolicy.from_settings(config),
    )
    assignment = AssignmentEngine(fleet=store, orders=store)
    return DispatchServices(
        store=store,
        maps=maps,
        payments=payments,
        quotes=quotes,
        routing=routing,
        assignment=assignment,
        tracking=TrackingLedger(store),
        orders=OrderService(
            orders=store,
            quotes=quotes,
            routing=routing,
            assignment=assignment,
            payments=payments,
        ),
        database_backed=database_backed,
    )


def build_services(config: Settings | None = None) -> DispatchServices:
    """Create services from settings, falling back to in-memory storage."""
    config = config or settings

    client = get_supabase_client()
    if client is not None:
        from ..persistence.database import SupabaseDispatchStore

        store: Any = SupabaseDispatchStore(client)
        database_backed = True
    else:
        logger.warning("Supabase not configured; orders and fleet are kept in memory")
        store = InMemoryDispatchStore()
        database_backed = False

    try:
        maps: MapsClient = build_maps_client(config)
    except ValueError as e:
        logger.warning(f"Mapping provider unavailable: {e}")
        maps = _UnconfiguredMaps(str(e))

    payments: PaymentGateway | None = None
    if config.stripe_api_key:
        payments = StripePaymentGateway.from_settings(config)
    else:
        logger.warning("Stripe API key not configured; payments will be rejected")

    return assemble_services(store, maps, payments, config=config, database_backed=database_backed)
