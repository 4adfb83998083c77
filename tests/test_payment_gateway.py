from urllib.parse import parse_qs

import httpx
import pytest

from dispatch.errors import PaymentFailedError
from dispatch.services.payment.gateway import StripePaymentGateway, to_minor_units


def _gateway(handler) -> StripePaymentGateway:
    return StripePaymentGateway(
        api_key="sk_test_123",
        base_url="https://stripe.test",
        currency="usd",
        timeout=2.0,
        transport=httpx.MockTransport(handler),
    )


def test_to_minor_units_rounds_half_up() -> None:
    assert to_minor_units(2.5) == 250
    assert to_minor_units(1.005) == 101
    assert to_minor_units(0.1) == 10


def test_process_payment_confirms_intent() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["form"] = parse_qs(request.content.decode())
        seen["auth"] = request.headers.get("authorization", "")
        return httpx.Response(200, json={"id": "pi_42", "status": "succeeded"})

    reference = _gateway(handler).process_payment("user-1", 3.0, "pm_card_visa")

    assert reference == "pi_42"
    assert seen["path"] == "/v1/payment_intents"
    assert seen["form"]["amount"] == ["300"]
    assert seen["form"]["payment_method"] == ["pm_card_visa"]
    assert seen["form"]["confirm"] == ["true"]
    assert seen["auth"].startswith("Basic ")


def test_declined_card_raises_payment_failed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(402, json={"error": {"message": "Your card was declined."}})

    with pytest.raises(PaymentFailedError, match="declined"):
        _gateway(handler).process_payment("user-1", 3.0, "pm_card_chargeDeclined")


def test_unfinished_intent_raises_payment_failed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"id": "pi_1", "status": "requires_action"})

    with pytest.raises(PaymentFailedError):
        _gateway(handler).process_payment("user-1", 3.0, "pm_3ds")


@pytest.mark.parametrize("status", ["processing", "requires_capture"])
def test_uncaptured_intent_is_not_a_payment(status) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"id": "pi_7", "status": status})

    with pytest.raises(PaymentFailedError, match=status):
        _gateway(handler).process_payment("user-1", 3.0, "pm_card_visa")


def test_network_failure_raises_payment_failed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    with pytest.raises(PaymentFailedError):
        _gateway(handler).process_payment("user-1", 3.0, "pm_card_visa")


def test_non_positive_amount_is_refused_without_a_call() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={})

    with pytest.raises(PaymentFailedError):
        _gateway(handler).process_payment("user-1", 0, "pm_card_visa")
    assert calls == []


def test_refund_is_idempotent_per_intent() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["key"] = request.headers.get("idempotency-key")
        return httpx.Response(200, json={"id": "re_9", "status": "succeeded"})

    assert _gateway(handler).refund("pi_42") == "re_9"
    assert seen["path"] == "/v1/refunds"
    assert seen["key"] == "refund-pi_42"


def test_missing_api_key_is_rejected(monkeypatch) -> None:
    from dispatch.services.payment import gateway

    monkeypatch.setattr(gateway.settings, "stripe_api_key", None)
    with pytest.raises(ValueError):
        StripePaymentGateway(api_key=None)
