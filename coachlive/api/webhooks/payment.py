"""Payment provider webhook.

The provider posts ``payment_intent.*`` events here; each one is mapped to a
``PaymentStatus`` and routed to ``SessionCoordinator.confirm_payment`` through
the ``payment_id`` we put in the intent metadata.

Signature header format (Stripe-compatible)::

    payment-signature: t=<unix timestamp>,v1=<hex hmac>

where the HMAC is SHA256 over ``"<timestamp>.<raw body>"`` keyed with
PAYMENT_WEBHOOK_SECRET.
"""

from __future__ import annotations

import hashlib
import hmac
import time

from fastapi import APIRouter, Depends, Header, Request
from loguru import logger
from pydantic import ValidationError

from coachlive.api.dependency import get_coordinator
from coachlive.api.schemas.payment import PAYMENT_EVENT_STATUS, PaymentWebhookEvent
from coachlive.api.utils import ApiSuccess
from coachlive.app_config import get_app_environ_config
from coachlive.domain.session.coordinator import SessionCoordinator
from coachlive.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])

SIGNATURE_TOLERANCE_SECONDS = 300


def _invalid_signature(reason: str) -> AppError:
    return AppError(
        errcode=AppErrorCode.E_WEBHOOK_INVALID_SIGNATURE,
        errmesg=f"Invalid webhook signature: {reason}",
        status_code=HttpStatusCode.BAD_REQUEST,
    )


def compute_payment_signature(payload: bytes, timestamp: str, secret: str) -> str:
    signed_payload = f"{timestamp}.".encode() + payload
    return hmac.new(secret.encode(), signed_payload, hashlib.sha256).hexdigest()


def verify_payment_signature(
    payload: bytes,
    signature_header: str | None,
    secret: str,
    tolerance_seconds: int = SIGNATURE_TOLERANCE_SECONDS,
    now: float | None = None,
) -> None:
    """Verify the webhook signature.

    Args:
        payload: Raw request body
        signature_header: Value of the ``payment-signature`` header
        secret: Webhook signing secret
        tolerance_seconds: Maximum age of the signed timestamp
        now: Current unix time, for tests

    Raises:
        AppError: If the header is missing, malformed, expired or does not match
    """
    if not signature_header:
        raise _invalid_signature("missing payment-signature header")

    timestamp = None
    signatures: list[str] = []
    for part in signature_header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            timestamp = value
        elif key == "v1":
            signatures.append(value)

    if not timestamp or not signatures:
        raise _invalid_signature("malformed header")

    try:
        signed_at = int(timestamp)
    except ValueError:
        raise _invalid_signature("non-numeric timestamp") from None

    current = time.time() if now is None else now
    if abs(current - signed_at) > tolerance_seconds:
        raise _invalid_signature(f"timestamp outside tolerance ({tolerance_seconds}s)")

    expected = compute_payment_signature(payload, timestamp, secret)
    if not any(hmac.compare_digest(expected, candidate) for candidate in signatures):
        raise _invalid_signature("signature mismatch")


@router.post("/payment")
async def payment_webhook(
    request: Request,
    payment_signature: str | None = Header(default=None, alias="payment-signature"),
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> ApiSuccess:
    secret = get_app_environ_config().PAYMENT_WEBHOOK_SECRET
    if not secret:
        logger.error("PAYMENT_WEBHOOK_SECRET not configured, rejecting payment webhook")
        raise AppError(
            errcode=AppErrorCode.E_WEBHOOK_CONFIG_MISSING,
            errmesg="Payment webhook secret is not configured",
            status_code=HttpStatusCode.INTERNAL_SERVER_ERROR,
        )

    body = await request.body()
    verify_payment_signature(body, payment_signature, secret)

    try:
        event = PaymentWebhookEvent.model_validate_json(body)
    except ValidationError as e:
        raise AppError(
            errcode=AppErrorCode.E_INVALID_REQUEST,
            errmesg=f"Malformed payment event: {e.error_count()} validation error(s)",
            status_code=HttpStatusCode.BAD_REQUEST,
        ) from e

    logger.info(f"Payment webhook {event.id}: type={event.type} intent={event.data.object.id}")

    status = PAYMENT_EVENT_STATUS.get(event.type)
    if status is None:
        logger.debug(f"Ignoring payment event type {event.type}")
        return ApiSuccess(results={"event_id": event.id, "handled": False})

    payment_id = event.data.object.metadata.get("payment_id")
    if not payment_id:
        logger.warning(f"Payment event {event.id} has no payment_id metadata, ignoring")
        return ApiSuccess(results={"event_id": event.id, "handled": False})

    payment = await coordinator.confirm_payment(payment_id, status)
    return ApiSuccess(
        results={
            "event_id": event.id,
            "handled": True,
            "payment_id": payment.payment_id,
            "status": payment.status,
        }
    )
