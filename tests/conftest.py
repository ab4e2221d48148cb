from datetime import datetime, timezone

import pytest
import pytest_asyncio
import sqlalchemy as sa

from apphub.database import create_sessionmaker, init_engine
from apphub.repository import Repository
from apphub.schema import create_schema
from apphub.schemas import AppInfo, Platform


class FakeClock:
    """Advances one second per call, or replays the given epoch seconds."""

    def __init__(self, *epochs: int, start: int = 1_700_000_000):
        self._epochs = list(epochs)
        self._next = start

    def __call__(self) -> datetime:
        if self._epochs:
            epoch = self._epochs.pop(0)
        else:
            epoch = self._next
            self._next += 1
        return datetime.fromtimestamp(epoch, tz=timezone.utc)


@pytest_asyncio.fixture
async def engine():
    engine = init_engine("sqlite+aiosqlite:///:memory:")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessionmaker(engine):
    return create_sessionmaker(engine)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def repo(sessionmaker, clock):
    return Repository(sessionmaker, clock=clock)


@pytest.fixture
def make_info():
    def _make(**overrides) -> AppInfo:
        fields = dict(
            name="Example",
            platform=Platform.IOS,
            bundle_id="com.x.y",
            ios_short_version="1.2.3",
            ios_bundle_version="45",
            size=1000,
        )
        fields.update(overrides)
        return AppInfo(**fields)

    return _make


@pytest.fixture
def count_rows(engine):
    async def _count(model) -> int:
        async with engine.connect() as conn:
            stmt = sa.select(sa.func.count()).select_from(model)
            return (await conn.execute(stmt)).scalar_one()

    return _count


@pytest.fixture
def fake_clock_factory():
    return FakeClock
