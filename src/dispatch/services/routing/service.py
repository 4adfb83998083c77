"""Route quoting and route persistence."""

from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime

from ...errors import PackageTooLargeError
from ...models.domain import ItemMetrics, Location, MachineType, RouteStrategy
from ...persistence.base import OrderStore, RouteStore
from ..quotes.cache import QuoteCache
from .maps_client import MapsClient
from .models import Route, RouteLeg, RouteOption
from .pricing import PricingPolicy

logger = logging.getLogger(__name__)

# Ground robots travel at roughly half the speed of a drone on the same path.
GROUND_DURATION_FACTOR = 2.0


class RoutingEngine:
    """Turns a pickup/dropoff pair into priced delivery options.

    The engine is the only component that writes to the quote cache: every
    option it returns has already been cached under its id.
    """

    def __init__(
        self,
        maps: MapsClient,
        quotes: QuoteCache,
        orders: OrderStore,
        routes: RouteStore,
        pricing: PricingPolicy | None = None,
    ) -> None:
        self.maps = maps
        self.quotes = quotes
        self.orders = orders
        self.routes = routes
        self.pricing = pricing or PricingPolicy.from_settings()

    def calculate_route_options(
        self,
        pickup: Location,
        dropoff: Location,
        requested_time: datetime | None,
        item: ItemMetrics,
    ) -> list[RouteOption]:
        """Quote the fastest (drone) and cheapest (robot) deliveries.

        Raises:
            PackageTooLargeError: the item exceeds the ground envelope.
            RouteUnavailableError: the mapping provider failed.
        """
        if not self.pricing.fits_ground(item):
            raise PackageTooLargeError(
                f"Package {item.length_cm}x{item.width_cm}x{item.height_cm} cm, "
                f"{item.weight_kg} kg exceeds the largest machine envelope."
            )

        leg = self.maps.directions(pickup, dropoff)
        peak = self.pricing.is_peak_hour(requested_time)
        issued_at = self.quotes.now()
        expires_at = self.quotes.expiry_for(issued_at)

        def build(strategy: RouteStrategy, machine_type: MachineType, duration: int) -> RouteOption:
            return RouteOption(
                id=str(uuid.uuid4()),
                pickup=pickup,
                dropoff=dropoff,
                polyline=leg.polyline,
                distance_meters=leg.distance_meters,
                duration_seconds=duration,
                strategy=strategy,
                machine_type=machine_type,
                estimated_cost=self.pricing.compute_cost(
                    leg.distance_meters, duration, machine_type, peak
                ),
                item=item,
                created_at=issued_at,
                expires_at=expires_at,
            )

        options: list[RouteOption] = []
        if self.pricing.fits_aerial(item):
            options.append(build(RouteStrategy.FASTEST, MachineType.DRONE, leg.duration_seconds))
        options.append(
            build(
                RouteStrategy.CHEAPEST,
                MachineType.ROBOT,
                int(math.ceil(leg.duration_seconds * GROUND_DURATION_FACTOR)),
            )
        )

        for option in options:
            self.quotes.put(option)
        logger.info(
            f"Quoted {len(options)} option(s) for {leg.distance_meters} m "
            f"({'peak' if peak else 'off-peak'}), valid until {expires_at.isoformat()}"
        )
        return options

    def compute_route(self, order_id: str) -> Route:
        """Look up the order's addresses, route them once and persist the result."""
        pickup, dropoff = self.orders.get_order_addresses(order_id)
        leg: RouteLeg = self.maps.directions(pickup, dropoff)
        route = self.routes.save_route(order_id, leg)
        logger.info(f"Saved route {route.id} for order {order_id} ({route.distance_meters} m)")
        return route

    def list_routes(self, order_id: str) -> list[Route]:
        # unknown orders raise NotFoundError here
        self.orders.get_order(order_id)
        return self.routes.list_routes(order_id)
