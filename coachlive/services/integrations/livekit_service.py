"""LiveKit helper service: provisions the video channel of a coaching session.

This module provides a thin wrapper around the `livekit-api` package.

Based on the official LiveKit Python SDK:
https://github.com/livekit/python-sdks

Usage:
    service = LivekitService()

    channel = await service.create_channel(session_id="se_...", max_participants=10)
    token = service.create_access_token(identity="u.123", room=channel.room_name)
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from livekit import api
from loguru import logger

from coachlive.app_config import AppEnvironConfig, get_app_environ_config
from coachlive.schemas import VideoChannel
from coachlive.utils.app_errors import AppError, AppErrorCode, HttpStatusCode
from coachlive.utils.idgen import utc_now


class LivekitService:
    """Service wrapper for LiveKit server SDK (livekit-api package).

    In DEMO_MODE every method returns a deterministic stub and never touches
    the network.
    """

    def __init__(self, cfg: AppEnvironConfig | None = None) -> None:
        self._cfg = cfg or get_app_environ_config()
        self._demo_mode = bool(self._cfg.DEMO_MODE)
        logger.info(f"LivekitService initialized (demo_mode={self._demo_mode})")

    @staticmethod
    def room_name_for(session_id: str) -> str:
        return f"coach-{session_id}"

    @asynccontextmanager
    async def _get_api_client(self) -> AsyncIterator[api.LiveKitAPI]:
        """Internal method to get LiveKit API client.

        Raises:
            AppError: If LIVEKIT_URL is not configured
        """
        url = self._cfg.LIVEKIT_URL
        if not url:
            logger.error("LIVEKIT_URL not configured")
            raise AppError(
                errcode=AppErrorCode.E_VIDEO_PROVIDER,
                errmesg="RTC provider URL must be configured. Set it in env.local or environment variables.",
                status_code=HttpStatusCode.BAD_GATEWAY,
            )

        logger.debug(f"Creating LiveKit API client for URL={url}")
        async with api.LiveKitAPI(url, self._cfg.LIVEKIT_API_KEY, self._cfg.LIVEKIT_API_SECRET) as lkapi:
            yield lkapi

    async def create_channel(self, session_id: str, max_participants: int | None = None) -> VideoChannel:
        """Create the LiveKit room backing a session.

        Args:
            session_id: Session the room belongs to
            max_participants: Room capacity; mirrors the session capacity

        Returns:
            VideoChannel handle stored on the session

        Raises:
            AppError: If LiveKit is not configured
            TwirpError: If the LiveKit API request fails
        """
        room_name = self.room_name_for(session_id)

        if self._demo_mode:
            logger.info(f"LivekitService DEMO_MODE=true: create_channel returns stub for {room_name}")
            return VideoChannel(
                room_name=room_name,
                server_url=self._cfg.LIVEKIT_URL,
                max_participants=max_participants,
                created_at=utc_now(),
            )

        logger.info(
            f"Creating LiveKit room: room_name={room_name}, "
            f"empty_timeout={self._cfg.LIVEKIT_EMPTY_TIMEOUT}, max_participants={max_participants}"
        )
        async with self._get_api_client() as lkapi:
            room = await lkapi.room.create_room(
                api.CreateRoomRequest(
                    name=room_name,
                    empty_timeout=self._cfg.LIVEKIT_EMPTY_TIMEOUT,
                    max_participants=max_participants or 0,
                )
            )
        logger.debug(f"Successfully created LiveKit room: name={room.name}, sid={room.sid}")
        return VideoChannel(
            room_name=room.name,
            server_url=self._cfg.LIVEKIT_URL,
            max_participants=max_participants,
            created_at=utc_now(),
        )

    def create_access_token(
        self,
        identity: str,
        room: str,
        name: str | None = None,
        room_admin: bool = False,
        can_publish: bool = True,
    ) -> str:
        """Create and return a LiveKit JWT access token for one room.

        Args:
            identity: Unique identity for the participant (the user id)
            room: Room name to grant access to
            name: Display name for the participant (optional)
            room_admin: Grant admin privileges in the room (coach only)
            can_publish: Grant permission to publish tracks; False for muted users

        Returns:
            JWT token string

        Raises:
            AppError: If LIVEKIT_API_KEY or LIVEKIT_API_SECRET is not configured
        """
        if self._demo_mode:
            # Demo-safe token: deterministic placeholder (NOT a real JWT).
            return f"DEMO_RTC_TOKEN::{identity}::{room}"

        api_key = self._cfg.LIVEKIT_API_KEY
        api_secret = self._cfg.LIVEKIT_API_SECRET
        if not api_key or not api_secret:
            logger.error("LIVEKIT_API_KEY or LIVEKIT_API_SECRET not configured")
            raise AppError(
                errcode=AppErrorCode.E_VIDEO_PROVIDER,
                errmesg="RTC provider credentials must be configured. Set them in env.local or environment variables.",
                status_code=HttpStatusCode.BAD_GATEWAY,
            )

        logger.info(f"Creating LiveKit access token for identity={identity}, room={room}")

        token = api.AccessToken(api_key, api_secret).with_identity(identity)
        if name:
            token = token.with_name(name)
        token = token.with_grants(
            api.VideoGrants(
                room_join=True,
                room=room,
                room_admin=room_admin,
                can_publish=can_publish,
                can_subscribe=True,
                can_publish_data=can_publish,
            )
        )
        return token.to_jwt()
