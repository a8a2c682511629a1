"""Payment ODM schema."""

from datetime import datetime
from typing import Any

from beanie import Document, Indexed
from pydantic import field_validator
from pymongo import IndexModel

from .schema_utils import as_utc_datetime
from .session_state import PaymentStatus


class Payment(Document):
    """Payment record; status follows the provider's callbacks."""

    payment_id: Indexed(str, unique=True)  # type: ignore[valid-type]
    session_id: str
    user_id: str
    amount: int
    currency: str = "usd"
    status: PaymentStatus = PaymentStatus.PENDING
    provider_payment_id: str | None = None

    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _parse_datetime(cls, v: Any) -> Any:
        return as_utc_datetime(v)

    class Settings:
        name = "payment"
        indexes = [
            IndexModel([("session_id", 1), ("user_id", 1)], name="session_id_user_id"),
            IndexModel(
                [("provider_payment_id", 1)],
                sparse=True,
                name="provider_payment_id_sparse",
            ),
        ]
