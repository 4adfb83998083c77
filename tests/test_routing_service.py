from datetime import datetime, timedelta

import pytest

from dispatch.errors import NotFoundError, PackageTooLargeError, RouteUnavailableError
from dispatch.models.domain import ItemMetrics, Location, MachineType, RouteStrategy
from dispatch.persistence.memory import InMemoryDispatchStore
from dispatch.services.quotes.cache import QuoteCache
from dispatch.services.routing.models import RouteLeg
from dispatch.services.routing.pricing import PricingPolicy
from dispatch.config import Settings
from dispatch.services.routing.service import RoutingEngine

PICKUP = Location(street_address="1 Pickup Way", latitude=21.50, longitude=39.20)
DROPOFF = Location(street_address="9 Dropoff Road", latitude=21.51, longitude=39.21)
OFF_PEAK = datetime(2024, 5, 6, 12, 0)
PEAK = datetime(2024, 5, 6, 8, 30)


class DummyMaps:
    def __init__(self, leg: RouteLeg | None = None, error: Exception | None = None) -> None:
        self.leg = leg or RouteLeg(distance_meters=1000, duration_seconds=300, polyline="_p~iF~ps|U")
        self.error = error
        self.calls: list[tuple[Location, Location]] = []

    def directions(self, origin, destination):
        self.calls.append((origin, destination))
        if self.error is not None:
            raise self.error
        return self.leg


def _engine(maps: DummyMaps | None = None, store: InMemoryDispatchStore | None = None):
    store = store or InMemoryDispatchStore()
    quotes = QuoteCache(ttl=timedelta(seconds=900))
    engine = RoutingEngine(
        maps=maps or DummyMaps(),
        quotes=quotes,
        orders=store,
        routes=store,
        pricing=PricingPolicy.from_settings(Settings(_env_file=None)),
    )
    return engine, quotes, store


def test_small_item_gets_fastest_and_cheapest_options() -> None:
    engine, quotes, _ = _engine()
    options = engine.calculate_route_options(PICKUP, DROPOFF, OFF_PEAK, ItemMetrics(20, 20, 20, 2))

    assert [o.strategy for o in options] == [RouteStrategy.FASTEST, RouteStrategy.CHEAPEST]
    fastest, cheapest = options
    assert fastest.machine_type == MachineType.DRONE
    assert cheapest.machine_type == MachineType.ROBOT
    assert fastest.estimated_cost == 2.50
    assert cheapest.estimated_cost == 1.00
    assert fastest.duration_seconds == 300
    assert cheapest.duration_seconds == 600
    assert fastest.distance_meters == cheapest.distance_meters == 1000
    assert len(quotes) == 2
    assert all(o.id in quotes for o in options)
    assert fastest.id != cheapest.id


def test_peak_request_applies_multiplier() -> None:
    engine, _, _ = _engine()
    fastest, cheapest = engine.calculate_route_options(PICKUP, DROPOFF, PEAK, ItemMetrics(20, 20, 20, 2))
    assert fastest.estimated_cost == 3.00
    assert cheapest.estimated_cost == 1.20


def test_item_too_big_for_drone_gets_ground_option_only() -> None:
    engine, quotes, _ = _engine()
    options = engine.calculate_route_options(PICKUP, DROPOFF, OFF_PEAK, ItemMetrics(50, 20, 20, 2))

    assert len(options) == 1
    assert options[0].strategy == RouteStrategy.CHEAPEST
    assert options[0].machine_type == MachineType.ROBOT
    assert len(quotes) == 1


def test_oversized_item_is_rejected_before_map_lookup() -> None:
    maps = DummyMaps()
    engine, quotes, _ = _engine(maps)

    with pytest.raises(PackageTooLargeError):
        engine.calculate_route_options(PICKUP, DROPOFF, OFF_PEAK, ItemMetrics(20, 20, 20, 31))

    assert maps.calls == []
    assert len(quotes) == 0


def test_map_failure_propagates_and_caches_nothing() -> None:
    engine, quotes, _ = _engine(DummyMaps(error=RouteUnavailableError("no route")))

    with pytest.raises(RouteUnavailableError):
        engine.calculate_route_options(PICKUP, DROPOFF, OFF_PEAK, ItemMetrics(20, 20, 20, 2))
    assert len(quotes) == 0


def test_options_expire_after_quote_ttl() -> None:
    engine, _, _ = _engine()
    option = engine.calculate_route_options(PICKUP, DROPOFF, OFF_PEAK, ItemMetrics(20, 20, 20, 2))[0]
    assert option.expires_at - option.created_at == timedelta(seconds=900)


def _order(store: InMemoryDispatchStore) -> str:
    pickup = store.insert_address("user-1", PICKUP)
    dropoff = store.insert_address("user-1", DROPOFF)
    order = store.create_order(
        user_id="user-1",
        pickup_address_id=pickup.id,
        dropoff_address_id=dropoff.id,
        item=ItemMetrics(20, 20, 20, 2),
        cost=2.5,
    )
    return order.id


def test_compute_route_persists_route_for_order() -> None:
    maps = DummyMaps()
    engine, _, store = _engine(maps)
    order_id = _order(store)

    route = engine.compute_route(order_id)

    assert route.order_id == order_id
    assert route.distance_meters == 1000
    assert route.duration_seconds == 300
    assert maps.calls == [(PICKUP, DROPOFF)]
    assert [r.id for r in engine.list_routes(order_id)] == [route.id]
    assert route.path() == [pytest.approx((38.5, -120.2))]


def test_compute_route_for_unknown_order_raises_not_found() -> None:
    engine, _, _ = _engine()
    with pytest.raises(NotFoundError):
        engine.compute_route("missing")


def test_compute_route_does_not_persist_on_map_failure() -> None:
    engine, _, store = _engine(DummyMaps(error=RouteUnavailableError("down")))
    order_id = _order(store)

    with pytest.raises(RouteUnavailableError):
        engine.compute_route(order_id)
    assert store.routes == []
