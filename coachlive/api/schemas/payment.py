from pydantic import BaseModel, Field

from coachlive.schemas import PaymentStatus


class ProcessPaymentIn(BaseModel):
    session_id: str = Field(description="Session being paid for")
    amount: int = Field(gt=0, description="Amount in the currency's minor unit (e.g. cents)")
    currency: str | None = Field(
        default=None,
        min_length=3,
        max_length=3,
        description="ISO 4217 currency code; defaults to PAYMENT_CURRENCY",
    )


class PaymentWebhookObject(BaseModel):
    id: str
    status: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)


class PaymentWebhookData(BaseModel):
    object: PaymentWebhookObject


class PaymentWebhookEvent(BaseModel):
    """Subset of a provider event (``payment_intent.*``) the webhook reads."""

    id: str
    type: str
    data: PaymentWebhookData


# Provider event type -> payment status
PAYMENT_EVENT_STATUS: dict[str, PaymentStatus] = {
    "payment_intent.processing": PaymentStatus.PROCESSING,
    "payment_intent.succeeded": PaymentStatus.SUCCEEDED,
    "payment_intent.payment_failed": PaymentStatus.FAILED,
    "payment_intent.canceled": PaymentStatus.CANCELED,
}
