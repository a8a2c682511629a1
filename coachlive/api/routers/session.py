from fastapi import APIRouter, Depends, Query

from coachlive.api.dependency import CurrentUser, get_coordinator
from coachlive.api.schemas.base import ApiOut
from coachlive.api.schemas.session import (
    CreateSessionIn,
    JoinSessionIn,
    LeaveSessionOut,
    ListParticipantsOut,
    SendMessageIn,
    SessionIdIn,
    ToggleMuteIn,
)
from coachlive.app_config import get_app_environ_config
from coachlive.domain.session.coordinator import SessionCoordinator
from coachlive.domain.session.session_models import (
    MessageResponse,
    ParticipantResponse,
    SessionCreateParams,
    SessionResponse,
    VideoTokenResponse,
)

router = APIRouter(prefix="/session", tags=["Session"])


@router.post("/create_session")
async def create_session(
    session: CreateSessionIn,
    user: CurrentUser,
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> ApiOut[SessionResponse]:
    """Create a scheduled session coached by the authenticated user."""
    params = SessionCreateParams(
        coach_id=user.user_id,
        capacity=session.capacity or get_app_environ_config().DEFAULT_SESSION_CAPACITY,
        title=session.title,
        description=session.description,
        scheduled_start=session.scheduled_start,
    )

    result = await coordinator.create_session(params)

    return ApiOut[SessionResponse](results=result)


@router.get("/get_session")
async def get_session(
    session_id: str = Query(description="Session ID to retrieve"),
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> ApiOut[SessionResponse]:
    result = await coordinator.get_session(session_id)

    return ApiOut[SessionResponse](results=result)


@router.post("/start_session")
async def start_session(
    body: SessionIdIn,
    user: CurrentUser,
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> ApiOut[SessionResponse]:
    """Move a scheduled session to active. Coach only."""
    result = await coordinator.start_session(body.session_id, actor_id=user.user_id)

    return ApiOut[SessionResponse](results=result)


@router.post("/end_session")
async def end_session(
    body: SessionIdIn,
    user: CurrentUser,
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> ApiOut[SessionResponse]:
    """End the session and remove every participant. Coach only."""
    result = await coordinator.end_session(body.session_id, actor_id=user.user_id)

    return ApiOut[SessionResponse](results=result)


@router.post("/join_session")
async def join_session(
    body: JoinSessionIn,
    user: CurrentUser,
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> ApiOut[ParticipantResponse]:
    result = await coordinator.join_session(body.session_id, user.user_id, body.role)

    return ApiOut[ParticipantResponse](results=result)


@router.post("/leave_session")
async def leave_session(
    body: SessionIdIn,
    user: CurrentUser,
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> ApiOut[LeaveSessionOut]:
    await coordinator.leave_session(body.session_id, user.user_id)

    return ApiOut[LeaveSessionOut](results=LeaveSessionOut(session_id=body.session_id, user_id=user.user_id))


@router.get("/list_participants")
async def list_participants(
    session_id: str = Query(description="Session ID"),
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> ApiOut[ListParticipantsOut]:
    """Current roster, ordered by join time."""
    participants = await coordinator.list_participants(session_id)

    return ApiOut[ListParticipantsOut](
        results=ListParticipantsOut(session_id=session_id, participants=participants)
    )


@router.post("/toggle_mute")
async def toggle_mute(
    body: ToggleMuteIn,
    user: CurrentUser,
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> ApiOut[ParticipantResponse]:
    result = await coordinator.toggle_mute(body.session_id, body.user_id, muted_by=user.user_id)

    return ApiOut[ParticipantResponse](results=result)


@router.post("/send_message")
async def send_message(
    body: SendMessageIn,
    user: CurrentUser,
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> ApiOut[MessageResponse]:
    result = await coordinator.send_message(body.session_id, user.user_id, body.message)

    return ApiOut[MessageResponse](results=result)


@router.post("/get_video_token")
async def get_video_token(
    body: SessionIdIn,
    user: CurrentUser,
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> ApiOut[VideoTokenResponse]:
    """Room access token for the authenticated participant."""
    result = await coordinator.issue_video_token(body.session_id, user.user_id)

    return ApiOut[VideoTokenResponse](results=result)


@router.post("/refresh_enrichment")
async def refresh_enrichment(
    body: SessionIdIn,
    user: CurrentUser,
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> ApiOut[SessionResponse]:
    """Retry the payment link / video channel calls that failed at creation."""
    result = await coordinator.refresh_session_enrichment(body.session_id, actor_id=user.user_id)

    return ApiOut[SessionResponse](results=result)
