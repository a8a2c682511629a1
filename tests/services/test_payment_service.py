"""Tests for PaymentService in demo mode and against a mocked HTTP provider."""

from urllib.parse import parse_qs

import httpx
import pytest

from coachlive.app_config import AppEnvironConfig
from coachlive.services.integrations.payment_service import PaymentService
from coachlive.utils.app_errors import AppError, AppErrorCode


def live_config(**overrides) -> AppEnvironConfig:
    values = {
        "DEMO_MODE": False,
        "PAYMENT_API_BASE_URL": "https://payments.test/",
        "PAYMENT_API_KEY": "sk_test_123",
        "SESSION_PRICE_ID": "price_abc",
    }
    values.update(overrides)
    return AppEnvironConfig(**values)


def form(request: httpx.Request) -> dict[str, str]:
    return {key: value[0] for key, value in parse_qs(request.content.decode()).items()}


class TestDemoMode:
    async def test_payment_link_is_stubbed(self, demo_config):
        service = PaymentService(demo_config)

        assert await service.create_payment_link("se_1") == "https://payments.invalid/demo/se_1"

    async def test_payment_intent_is_stubbed(self, demo_config):
        service = PaymentService(demo_config)

        intent = await service.create_payment_intent(1000, "usd", {"payment_id": "pa_1"})

        assert intent.id.startswith("pi_demo_")
        assert intent.client_secret == f"{intent.id}_secret_demo"


class TestProviderCalls:
    async def test_create_payment_link(self):
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"id": "plink_1", "url": "https://pay.test/plink_1"})

        service = PaymentService(live_config(), transport=httpx.MockTransport(handler))

        url = await service.create_payment_link("se_1")

        assert url == "https://pay.test/plink_1"
        (request,) = requests
        assert str(request.url) == "https://payments.test/v1/payment_links"
        assert request.headers["Authorization"] == "Bearer sk_test_123"
        assert form(request) == {
            "line_items[0][price]": "price_abc",
            "line_items[0][quantity]": "1",
            "metadata[session_id]": "se_1",
        }

    async def test_payment_link_requires_price(self):
        service = PaymentService(live_config(SESSION_PRICE_ID=None))

        with pytest.raises(AppError) as exc_info:
            await service.create_payment_link("se_1")

        assert exc_info.value.errcode == AppErrorCode.E_PAYMENT_PROVIDER

    async def test_create_payment_intent(self):
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"id": "pi_9", "client_secret": "pi_9_secret_x"})

        service = PaymentService(live_config(), transport=httpx.MockTransport(handler))

        intent = await service.create_payment_intent(2500, "eur", {"payment_id": "pa_1", "user_id": "p1"})

        assert (intent.id, intent.client_secret) == ("pi_9", "pi_9_secret_x")
        body = form(requests[0])
        assert body["amount"] == "2500"
        assert body["currency"] == "eur"
        assert body["metadata[payment_id]"] == "pa_1"
        assert body["metadata[user_id]"] == "p1"

    async def test_provider_error_status(self):
        service = PaymentService(
            live_config(),
            transport=httpx.MockTransport(lambda request: httpx.Response(402, json={"error": "card_declined"})),
        )

        with pytest.raises(AppError) as exc_info:
            await service.create_payment_intent(2500, "usd", {})

        assert exc_info.value.errcode == AppErrorCode.E_PAYMENT_PROVIDER
        assert exc_info.value.status_code == 502
        assert "status 402" in exc_info.value.errmesg

    async def test_provider_unreachable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        service = PaymentService(live_config(), transport=httpx.MockTransport(handler))

        with pytest.raises(AppError) as exc_info:
            await service.create_payment_link("se_1")

        assert exc_info.value.errcode == AppErrorCode.E_PAYMENT_PROVIDER
        assert exc_info.value.errmesg == "Payment provider unreachable: ConnectError"

    async def test_incomplete_intent_response(self):
        service = PaymentService(
            live_config(),
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"id": "pi_1"})),
        )

        with pytest.raises(AppError, match="missing 'client_secret'"):
            await service.create_payment_intent(100, "usd", {})
