from typing import Annotated

from fastapi import Depends, Header
from loguru import logger
from pydantic import BaseModel
from starlette.requests import HTTPConnection

from coachlive.domain.session.coordinator import SessionCoordinator
from coachlive.utils.app_errors import AppError, AppErrorCode, HttpStatusCode


class User(BaseModel):
    user_id: str


async def get_current_user(
    x_user_id: Annotated[str | None, Header(description="Authenticated user id, set by the gateway")] = None,
) -> User:
    # Token verification happens at the gateway; it forwards the user id only
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise AppError(
            errcode=AppErrorCode.E_BAD_TOKEN,
            errmesg="Missing X-User-Id header",
            status_code=HttpStatusCode.UNAUTHORIZED,
        )

    logger.debug("Authenticated user_id: {}", user_id)
    return User(user_id=user_id)


def get_coordinator(conn: HTTPConnection) -> SessionCoordinator:
    """The coordinator built by the application lifespan."""
    return conn.app.state.coordinator


CurrentUser = Annotated[User, Depends(get_current_user)]
