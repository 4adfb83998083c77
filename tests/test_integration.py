from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from dispatch.config import Settings
from dispatch.errors import PaymentFailedError, RouteUnavailableError
from dispatch.main import create_app
from dispatch.persistence.memory import InMemoryDispatchStore
from dispatch.services.container import assemble_services
from dispatch.services.routing.models import RouteLeg

USER = {"X-User-Id": "user-1"}
QUOTE = {
    "pickup": {"street_address": "1 Pickup Way", "latitude": 21.50, "longitude": 39.20},
    "dropoff": {"latitude": 21.51, "longitude": 39.21},
    "item": {"length_cm": 20, "width_cm": 20, "height_cm": 20, "weight_kg": 2},
    "requested_time": "2024-05-06T12:00:00",
}


class DummyMaps:
    def __init__(self) -> None:
        self.fail = False

    def directions(self, origin, destination):
        if self.fail:
            raise RouteUnavailableError("provider down")
        return RouteLeg(distance_meters=1000, duration_seconds=300, polyline="_p~iF~ps|U")


class FakePaymentGateway:
    def __init__(self) -> None:
        self.decline = False

    def process_payment(self, user_id, amount, payment_method_id):
        if self.decline:
            raise PaymentFailedError("card declined")
        return "pi_test"

    def refund(self, reference):
        return f"re_{reference}"


class SteppingClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 5, 6, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def services():
    return assemble_services(
        InMemoryDispatchStore(clock=SteppingClock()),
        DummyMaps(),
        FakePaymentGateway(),
        config=Settings(_env_file=None),
    )


@pytest.fixture
def api_client(services) -> TestClient:
    return TestClient(create_app(services))


def _create_order(api_client: TestClient, strategy: str = "FASTEST") -> dict:
    quote = api_client.post("/api/orders/quote", json=QUOTE)
    assert quote.status_code == 200
    option = next(o for o in quote.json()["options"] if o["strategy"] == strategy)
    response = api_client.post("/api/orders", json={"route_option_id": option["id"]}, headers=USER)
    assert response.status_code == 201
    return response.json()


def test_health(api_client: TestClient) -> None:
    assert api_client.get("/api/health").json() == {"status": "ok"}
    database = api_client.get("/api/health/database").json()
    assert database["configured"] is False
    maps = api_client.get("/api/health/maps").json()
    assert maps["healthy"] is True


def test_quote_returns_priced_options(api_client: TestClient) -> None:
    response = api_client.post("/api/orders/quote", json=QUOTE)

    assert response.status_code == 200
    options = response.json()["options"]
    assert [(o["strategy"], o["machine_type"], o["estimated_cost"]) for o in options] == [
        ("FASTEST", "DRONE", 2.5),
        ("CHEAPEST", "ROBOT", 1.0),
    ]


def test_quote_validation_and_errors(api_client: TestClient, services) -> None:
    oversized = {**QUOTE, "item": {"length_cm": 20, "width_cm": 20, "height_cm": 20, "weight_kg": 40}}
    assert api_client.post("/api/orders/quote", json=oversized).status_code == 422

    no_location = {**QUOTE, "pickup": {}}
    assert api_client.post("/api/orders/quote", json=no_location).status_code == 422

    services.maps.fail = True
    assert api_client.post("/api/orders/quote", json=QUOTE).status_code == 502


def test_quote_can_be_ordered_once(api_client: TestClient) -> None:
    quote = api_client.post("/api/orders/quote", json=QUOTE).json()
    option_id = quote["options"][0]["id"]

    first = api_client.post("/api/orders", json={"route_option_id": option_id}, headers=USER)
    second = api_client.post("/api/orders", json={"route_option_id": option_id}, headers=USER)

    assert first.status_code == 201
    assert first.json()["status"] == "PENDING_PAYMENT"
    assert second.status_code == 410


def test_order_requires_user_header(api_client: TestClient) -> None:
    assert api_client.get("/api/orders").status_code == 422


def test_order_lifecycle_pay_assign_track(api_client: TestClient, services) -> None:
    machine = services.store.add_machine()
    order = _create_order(api_client)

    listed = api_client.get("/api/orders", headers=USER).json()
    assert listed["total"] == 1
    assert listed["items"][0]["id"] == order["id"]

    assert api_client.get(f"/api/orders/{order['id']}", headers={"X-User-Id": "someone"}).status_code == 404

    paid = api_client.post(
        f"/api/orders/{order['id']}/pay", json={"payment_method_id": "pm_card_visa"}, headers=USER
    )
    assert paid.status_code == 200
    body = paid.json()
    assert body["assignment_pending"] is False
    assert body["machine"]["id"] == machine.id
    assert body["order"]["status"] == "IN_PROGRESS"
    assert body["order"]["payment_reference"] == "pi_test"

    route = api_client.post(f"/api/orders/{order['id']}/route")
    assert route.status_code == 201
    assert route.json()["path"] == [[38.5, -120.2]]

    first = api_client.post(
        f"/api/orders/{order['id']}/track", json={"machine_id": machine.id, "latitude": 21.5, "longitude": 39.2}
    ).json()
    api_client.post(
        f"/api/orders/{order['id']}/track", json={"machine_id": machine.id, "latitude": 21.505, "longitude": 39.205}
    )

    trail = api_client.get(f"/api/orders/{order['id']}/track").json()["events"]
    assert [e["latitude"] for e in trail] == [21.5, 21.505]

    newer = api_client.get(f"/api/orders/{order['id']}/track", params={"since": first["created_at"]}).json()
    assert [e["latitude"] for e in newer["events"]] == [21.505]


def test_payment_without_machine_then_retry(api_client: TestClient, services) -> None:
    order = _create_order(api_client)

    paid = api_client.post(
        f"/api/orders/{order['id']}/pay", json={"payment_method_id": "pm_card_visa"}, headers=USER
    ).json()
    assert paid["assignment_pending"] is True
    assert paid["order"]["status"] == "CONFIRMED"

    assert api_client.post(f"/api/orders/{order['id']}/assign").status_code == 409

    machine = services.store.add_machine()
    retried = api_client.post("/api/admin/assignments/retry").json()
    assert retried == {"assigned": {order["id"]: machine.id}, "count": 1}


def test_declined_payment_maps_to_402(api_client: TestClient, services) -> None:
    services.payments.decline = True
    order = _create_order(api_client)

    response = api_client.post(
        f"/api/orders/{order['id']}/pay", json={"payment_method_id": "pm_declined"}, headers=USER
    )
    assert response.status_code == 402
    assert api_client.get(f"/api/orders/{order['id']}", headers=USER).json()["status"] == "PENDING_PAYMENT"


def test_cancel_then_cancel_again_conflicts(api_client: TestClient) -> None:
    order = _create_order(api_client)

    assert api_client.post(f"/api/orders/{order['id']}/cancel", headers=USER).json()["status"] == "CANCELLED"
    assert api_client.post(f"/api/orders/{order['id']}/cancel", headers=USER).status_code == 409


def test_fleet_status_update(api_client: TestClient, services) -> None:
    machine = services.store.add_machine(battery_level=55)

    fleet = api_client.get("/api/fleet").json()
    assert fleet["idle_count"] == 1

    response = api_client.put(
        f"/api/fleet/{machine.id}/status", json={"status": "MAINTENANCE", "latitude": 1.0, "longitude": 2.0}
    )
    assert response.status_code == 200
    assert response.json()["status"] == "MAINTENANCE"
    assert response.json()["battery_level"] == 55

    bad = api_client.put(f"/api/fleet/{machine.id}/status", json={"status": "FLYING", "latitude": 1, "longitude": 2})
    assert bad.status_code == 422

    missing = api_client.put("/api/fleet/nope/status", json={"status": "IDLE", "latitude": 1, "longitude": 2})
    assert missing.status_code == 404


def test_admin_lists_every_users_orders(api_client: TestClient) -> None:
    mine = _create_order(api_client)
    quote = api_client.post("/api/orders/quote", json=QUOTE).json()
    theirs = api_client.post(
        "/api/orders", json={"route_option_id": quote["options"][0]["id"]}, headers={"X-User-Id": "user-2"}
    ).json()

    listing = api_client.get("/api/admin/orders").json()
    assert listing["limit"] == 50
    assert listing["total"] == 2
    assert [o["id"] for o in listing["items"]] == [theirs["id"], mine["id"]]
    assert listing["has_next_page"] is False

    first_page = api_client.get("/api/admin/orders", params={"page": 1, "limit": 1}).json()
    assert first_page["has_next_page"] is True


def test_admin_order_override(api_client: TestClient, services) -> None:
    order = _create_order(api_client)
    machine = services.store.add_machine(machine_id="m-ops")

    response = api_client.patch(
        f"/api/admin/orders/{order['id']}", json={"status": "IN_PROGRESS", "machine_id": machine.id}
    )
    assert response.status_code == 200
    assert response.json()["status"] == "IN_PROGRESS"
    assert response.json()["machine_id"] == "m-ops"

    assert api_client.patch(f"/api/admin/orders/{order['id']}", json={}).status_code == 422
    assert api_client.patch(f"/api/admin/orders/{order['id']}", json={"status": "LOST"}).status_code == 422
    assert api_client.patch("/api/admin/orders/missing", json={"status": "CANCELLED"}).status_code == 404
    assert api_client.patch(f"/api/admin/orders/{order['id']}", json={"machine_id": "ghost"}).status_code == 404


def test_unexpected_errors_become_500(api_client: TestClient, services, monkeypatch) -> None:
    order = _create_order(api_client)

    def boom(*args, **kwargs):
        raise RuntimeError("driver crashed")

    monkeypatch.setattr(services.orders, "list_user_orders", boom)
    monkeypatch.setattr(services.orders, "get_order_details", boom)
    monkeypatch.setattr(services.routing, "list_routes", boom)
    monkeypatch.setattr(services.tracking, "get_tracking", boom)

    for path in (
        "/api/orders",
        f"/api/orders/{order['id']}",
        f"/api/orders/{order['id']}/routes",
        f"/api/orders/{order['id']}/track",
    ):
        response = api_client.get(path, headers=USER)
        assert response.status_code == 500, path
        assert "driver crashed" in response.json()["detail"]
