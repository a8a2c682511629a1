import pytest

from coachlive.app_config import AppEnvironConfig
from coachlive.services.integrations.livekit_service import LivekitService
from coachlive.utils.app_errors import AppError, AppErrorCode


async def test_demo_channel(demo_config):
    service = LivekitService(demo_config)

    channel = await service.create_channel("se_1", max_participants=4)

    assert channel.room_name == "coach-se_1"
    assert channel.server_url == "wss://livekit.test"
    assert channel.max_participants == 4
    assert channel.created_at is not None


def test_demo_token_is_deterministic(demo_config):
    service = LivekitService(demo_config)

    token = service.create_access_token(identity="u1", room="coach-se_1", can_publish=False)

    assert token == "DEMO_RTC_TOKEN::u1::coach-se_1"


def test_real_token_requires_credentials():
    service = LivekitService(AppEnvironConfig(DEMO_MODE=False, LIVEKIT_API_KEY=None, LIVEKIT_API_SECRET=None))

    with pytest.raises(AppError) as exc_info:
        service.create_access_token(identity="u1", room="coach-se_1")

    assert exc_info.value.errcode == AppErrorCode.E_VIDEO_PROVIDER


def test_real_token_is_jwt():
    service = LivekitService(
        AppEnvironConfig(DEMO_MODE=False, LIVEKIT_API_KEY="devkey", LIVEKIT_API_SECRET="secret" * 6)
    )

    token = service.create_access_token(identity="u1", room="coach-se_1", room_admin=True)

    assert token.count(".") == 2


async def test_channel_requires_url():
    service = LivekitService(AppEnvironConfig(DEMO_MODE=False, LIVEKIT_URL=None))

    with pytest.raises(AppError) as exc_info:
        await service.create_channel("se_1")

    assert exc_info.value.errcode == AppErrorCode.E_VIDEO_PROVIDER
