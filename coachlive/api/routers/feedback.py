from fastapi import APIRouter, Depends, Query

from coachlive.api.dependency import CurrentUser, get_coordinator
from coachlive.api.schemas.base import ApiOut
from coachlive.api.schemas.feedback import ListFeedbackOut, SubmitFeedbackIn
from coachlive.domain.session.coordinator import SessionCoordinator
from coachlive.domain.session.session_models import FeedbackCreateParams, FeedbackResponse

router = APIRouter(prefix="/feedback", tags=["Feedback"])


@router.post("/submit_feedback")
async def submit_feedback(
    body: SubmitFeedbackIn,
    user: CurrentUser,
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> ApiOut[FeedbackResponse]:
    """Rate an ended session."""
    params = FeedbackCreateParams(
        session_id=body.session_id,
        user_id=user.user_id,
        rating=body.rating,
        comment=body.comment,
    )

    result = await coordinator.submit_feedback(params)

    return ApiOut[FeedbackResponse](results=result)


@router.get("/list_feedback")
async def list_feedback(
    session_id: str = Query(description="Session ID"),
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> ApiOut[ListFeedbackOut]:
    feedback = await coordinator.get_session_feedback(session_id)

    return ApiOut[ListFeedbackOut](results=ListFeedbackOut(session_id=session_id, feedback=feedback))
