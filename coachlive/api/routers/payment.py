from fastapi import APIRouter, Depends

from coachlive.api.dependency import CurrentUser, get_coordinator
from coachlive.api.schemas.base import ApiOut
from coachlive.api.schemas.payment import ProcessPaymentIn
from coachlive.domain.session.coordinator import SessionCoordinator
from coachlive.domain.session.session_models import PaymentIntentResponse

router = APIRouter(prefix="/payment", tags=["Payment"])


@router.post("/process_payment")
async def process_payment(
    body: ProcessPaymentIn,
    user: CurrentUser,
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> ApiOut[PaymentIntentResponse]:
    """Start a payment for the session; the client secret completes it client-side."""
    result = await coordinator.process_payment(
        user_id=user.user_id,
        session_id=body.session_id,
        amount=body.amount,
        currency=body.currency,
    )

    return ApiOut[PaymentIntentResponse](results=result)
