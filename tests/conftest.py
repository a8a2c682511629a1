import os
import warnings

# Must be set before coachlive.app_config is imported
os.environ.update(
    {
        "DEMO_MODE": "true",
        "STORAGE_BACKEND": "memory",
        "EVENT_TRANSPORT": "local",
        "PAYMENT_WEBHOOK_SECRET": "whsec_test_secret",
        "DEFAULT_SESSION_CAPACITY": "10",
        "MAX_SESSION_CAPACITY": "100",
    }
)

warnings.filterwarnings("ignore", category=DeprecationWarning, module="beanie.*")

import pytest  # noqa: E402

from coachlive.app_config import AppEnvironConfig  # noqa: E402
from coachlive.domain.session.broadcaster import EventBroadcaster  # noqa: E402
from coachlive.domain.session.coordinator import SessionCoordinator  # noqa: E402
from coachlive.domain.session.roster import InMemoryRosterStore  # noqa: E402
from coachlive.domain.session.store import InMemorySessionStore  # noqa: E402
from coachlive.services.integrations.livekit_service import LivekitService  # noqa: E402
from coachlive.services.integrations.payment_service import PaymentService  # noqa: E402

# Import database fixtures so they are available to all tests
from tests.fixtures.mongo_fixtures import *  # noqa: E402, F403
from tests.fixtures.redis_fixtures import *  # noqa: E402, F403


@pytest.fixture
def demo_config() -> AppEnvironConfig:
    return AppEnvironConfig(DEMO_MODE=True, LIVEKIT_URL="wss://livekit.test")


@pytest.fixture
def session_store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def roster_store() -> InMemoryRosterStore:
    return InMemoryRosterStore()


@pytest.fixture
def broadcaster() -> EventBroadcaster:
    return EventBroadcaster(max_queue_size=64)


@pytest.fixture
def coordinator(
    session_store: InMemorySessionStore,
    roster_store: InMemoryRosterStore,
    broadcaster: EventBroadcaster,
    demo_config: AppEnvironConfig,
) -> SessionCoordinator:
    """Coordinator over in-memory stores with demo-mode collaborators."""
    return SessionCoordinator(
        store=session_store,
        roster=roster_store,
        broadcaster=broadcaster,
        payment_provider=PaymentService(demo_config),
        video_provisioner=LivekitService(demo_config),
        max_capacity=100,
    )
