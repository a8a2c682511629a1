"""Payment provider client (Stripe-compatible REST API).

Only the two calls the coordinator needs are implemented: a payment link
attached to a new session and a payment intent per participant payment.
Status changes arrive later through ``POST /webhooks/payment``.
"""

from typing import Any

import httpx
from loguru import logger

from coachlive.app_config import AppEnvironConfig, get_app_environ_config
from coachlive.domain.session.session_models import PaymentIntent
from coachlive.utils.app_errors import AppError, AppErrorCode, HttpStatusCode
from coachlive.utils.idgen import new_ulid


def _form_metadata(metadata: dict[str, Any]) -> dict[str, str]:
    return {f"metadata[{key}]": str(value) for key, value in metadata.items()}


class PaymentService:
    def __init__(
        self,
        cfg: AppEnvironConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._cfg = cfg or get_app_environ_config()
        self._demo_mode = bool(self._cfg.DEMO_MODE)
        self.base_url = self._cfg.PAYMENT_API_BASE_URL.rstrip("/")
        self._transport = transport

    def _build_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self._cfg.PAYMENT_API_KEY:
            headers["Authorization"] = f"Bearer {self._cfg.PAYMENT_API_KEY}"
        return headers

    async def _post_form(self, path: str, data: dict[str, str]) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.post(
                    url,
                    data=data,
                    headers=self._build_headers(),
                    timeout=self._cfg.PAYMENT_TIMEOUT_SECONDS,
                )
                response.raise_for_status()
                body = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Payment provider {path} failed: status={e.response.status_code} body={e.response.text}")
            raise AppError(
                errcode=AppErrorCode.E_PAYMENT_PROVIDER,
                errmesg=f"Payment provider rejected {path} (status {e.response.status_code})",
                status_code=HttpStatusCode.BAD_GATEWAY,
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Payment provider {path} unreachable: {e}")
            raise AppError(
                errcode=AppErrorCode.E_PAYMENT_PROVIDER,
                errmesg=f"Payment provider unreachable: {type(e).__name__}",
                status_code=HttpStatusCode.BAD_GATEWAY,
            ) from e

        logger.debug(f"Payment provider {path} response id={body.get('id')}")
        return body

    async def create_payment_link(self, session_id: str) -> str:
        """Create a payment link for the session price; returns the link URL."""
        if self._demo_mode:
            logger.info("PaymentService DEMO_MODE=true: returning stubbed payment link")
            return f"https://payments.invalid/demo/{session_id}"

        if not self._cfg.SESSION_PRICE_ID:
            raise AppError(
                errcode=AppErrorCode.E_PAYMENT_PROVIDER,
                errmesg="SESSION_PRICE_ID must be configured to create payment links",
                status_code=HttpStatusCode.BAD_GATEWAY,
            )

        body = await self._post_form(
            "/v1/payment_links",
            {
                "line_items[0][price]": self._cfg.SESSION_PRICE_ID,
                "line_items[0][quantity]": "1",
                **_form_metadata({"session_id": session_id}),
            },
        )
        url = body.get("url")
        if not url:
            raise AppError(
                errcode=AppErrorCode.E_PAYMENT_PROVIDER,
                errmesg="Payment provider returned a payment link without url",
                status_code=HttpStatusCode.BAD_GATEWAY,
            )
        return url

    async def create_payment_intent(
        self,
        amount: int,
        currency: str,
        metadata: dict[str, Any],
    ) -> PaymentIntent:
        """Create a card payment intent; the client secret goes back to the payer."""
        if self._demo_mode:
            intent_id = new_ulid("pi_demo_")
            logger.info(f"PaymentService DEMO_MODE=true: returning stubbed payment intent {intent_id}")
            return PaymentIntent(id=intent_id, client_secret=f"{intent_id}_secret_demo")

        body = await self._post_form(
            "/v1/payment_intents",
            {
                "amount": str(amount),
                "currency": currency,
                "payment_method_types[]": "card",
                **_form_metadata(metadata),
            },
        )
        try:
            return PaymentIntent(id=body["id"], client_secret=body["client_secret"])
        except KeyError as e:
            raise AppError(
                errcode=AppErrorCode.E_PAYMENT_PROVIDER,
                errmesg=f"Payment provider response missing {e}",
                status_code=HttpStatusCode.BAD_GATEWAY,
            ) from e
