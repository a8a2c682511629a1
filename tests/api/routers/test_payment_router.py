"""Unit tests for payment router endpoints."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient

from coachlive.api.dependency import User, get_coordinator, get_current_user
from coachlive.api.errors import app_error_handler, app_validation_exception_handler
from coachlive.api.routers.payment import router
from coachlive.domain.session.coordinator import SessionCoordinator
from coachlive.domain.session.session_models import PaymentIntentResponse, PaymentResponse
from coachlive.schemas import PaymentStatus
from coachlive.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def mock_coordinator() -> AsyncMock:
    return AsyncMock(spec=SessionCoordinator)


@pytest.fixture
def client(mock_coordinator: AsyncMock) -> TestClient:
    app = FastAPI()
    app.dependency_overrides[get_current_user] = lambda: User(user_id="p1")
    app.dependency_overrides[get_coordinator] = lambda: mock_coordinator
    app.add_exception_handler(AppError, app_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, app_validation_exception_handler)  # type: ignore[arg-type]
    app.include_router(router)
    return TestClient(app)


def intent_response(amount: int = 2500, currency: str = "usd") -> PaymentIntentResponse:
    return PaymentIntentResponse(
        payment=PaymentResponse(
            payment_id="pa_1",
            session_id="se_1",
            user_id="p1",
            amount=amount,
            currency=currency,
            status=PaymentStatus.PENDING,
            provider_payment_id="pi_1",
            created_at=NOW,
            updated_at=NOW,
        ),
        client_secret="pi_1_secret",
    )


def test_process_payment(client: TestClient, mock_coordinator: AsyncMock):
    mock_coordinator.process_payment.return_value = intent_response()

    response = client.post("/payment/process_payment", json={"session_id": "se_1", "amount": 2500})

    assert response.status_code == 200
    results = response.json()["results"]
    assert results["client_secret"] == "pi_1_secret"
    assert results["payment"]["status"] == "pending"
    mock_coordinator.process_payment.assert_awaited_once_with(
        user_id="p1", session_id="se_1", amount=2500, currency=None
    )


def test_process_payment_with_currency(client: TestClient, mock_coordinator: AsyncMock):
    mock_coordinator.process_payment.return_value = intent_response(currency="eur")

    response = client.post(
        "/payment/process_payment",
        json={"session_id": "se_1", "amount": 900, "currency": "EUR"},
    )

    assert response.status_code == 200
    assert mock_coordinator.process_payment.call_args.kwargs["currency"] == "EUR"


@pytest.mark.parametrize(
    "body",
    [
        {"session_id": "se_1", "amount": 0},
        {"session_id": "se_1", "amount": 10, "currency": "dollars"},
    ],
)
def test_process_payment_invalid_body(client: TestClient, mock_coordinator: AsyncMock, body: dict):
    response = client.post("/payment/process_payment", json=body)

    assert response.status_code == 422
    mock_coordinator.process_payment.assert_not_called()


def test_process_payment_provider_error(client: TestClient, mock_coordinator: AsyncMock):
    mock_coordinator.process_payment.side_effect = AppError(
        errcode=AppErrorCode.E_PAYMENT_PROVIDER,
        errmesg="Payment provider request failed: 503",
        status_code=HttpStatusCode.BAD_GATEWAY,
    )

    response = client.post("/payment/process_payment", json={"session_id": "se_1", "amount": 2500})

    assert response.status_code == 502
    assert response.json()["errcode"] == "E_PAYMENT_PROVIDER"
