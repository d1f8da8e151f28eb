import random

import pytest

from highlow.session.manager import SessionManager
from highlow.tests.unit.session.helpers import GRACE_SECONDS


@pytest.fixture
async def manager():
    manager = SessionManager(
        disconnect_grace_seconds=GRACE_SECONDS,
        empty_room_grace_seconds=GRACE_SECONDS,
        newly_dealt_display_seconds=GRACE_SECONDS,
        rng=random.Random(7),
    )
    yield manager
    await manager.shutdown()
