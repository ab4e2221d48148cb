import pytest
from sqlalchemy import text

from apphub.database import init_engine, normalize_db_url
from apphub.repository import create_repository
from apphub.schema import create_schema, drop_schema
from apphub.schemas import AppInfo, Platform
from apphub.settings import Settings


def test_normalize_db_url_for_postgres():
    url, connect_args = normalize_db_url("postgres://user:pw@db.internal:5432/apphub?sslmode=require")
    assert url == "postgresql+asyncpg://user:pw@db.internal:5432/apphub"
    assert connect_args == {"ssl": "require"}

    url, connect_args = normalize_db_url("postgresql://user:pw@localhost/apphub?sslmode=disable")
    assert url == "postgresql+asyncpg://user:pw@localhost/apphub"
    assert connect_args == {}


def test_normalize_db_url_for_sqlite():
    assert normalize_db_url("sqlite:///./apphub.db") == ("sqlite+aiosqlite:///./apphub.db", {})
    assert normalize_db_url("sqlite:///:memory:") == ("sqlite+aiosqlite:///:memory:", {})
    assert normalize_db_url("sqlite+aiosqlite:////var/lib/apphub.db") == ("sqlite+aiosqlite:////var/lib/apphub.db", {})


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///./other.db")
    monkeypatch.setenv("ALIAS_LENGTH", "6")
    monkeypatch.setenv("ATOMIC_UPLOADS", "true")

    config = Settings(_env_file=None)

    assert config.database_url == "sqlite:///./other.db"
    assert config.alias_length == 6
    assert config.alias_max_attempts == 1000
    assert config.atomic_uploads is True


@pytest.mark.asyncio
async def test_sqlite_engine_enforces_foreign_keys(engine):
    async with engine.connect() as conn:
        assert (await conn.execute(text("PRAGMA foreign_keys"))).scalar_one() == 1


@pytest.mark.asyncio
async def test_create_repository_applies_settings(engine, make_info):
    config = Settings(_env_file=None, alias_length=6, alias_max_attempts=3, atomic_uploads=True)
    repo = create_repository(engine, config)

    app = await repo.resolve_app(make_info())

    assert repo.atomic_uploads is True
    assert len(app.alias) == 6


@pytest.mark.asyncio
async def test_drop_and_recreate_schema():
    engine = init_engine("sqlite:///:memory:")
    try:
        await create_schema(engine)
        await drop_schema(engine)
        await create_schema(engine)
        async with engine.connect() as conn:
            views = (await conn.execute(text("SELECT name FROM sqlite_master WHERE type = 'view' ORDER BY name"))).scalars().all()
        assert views == ["detail_version", "simple_app"]
    finally:
        await engine.dispose()


def test_full_version_per_platform():
    ios = AppInfo(name="A", platform=Platform.IOS, bundle_id="com.a", ios_short_version="1.2.3", ios_bundle_version="45")
    android = AppInfo(
        name="A", platform="android", bundle_id="com.a", android_version_name="1.2.3", android_version_code=45
    )

    assert ios.full_version() == "1.2.3(45)"
    assert android.platform is Platform.ANDROID
    assert android.full_version() == "1.2.3(45)"


@pytest.mark.parametrize(
    "url",
    [
        "postgresql+psycopg2://user:pw@localhost/apphub",
        "postgresql+pg8000://user:pw@localhost/apphub",
        "mysql://user:pw@localhost/apphub",
    ],
)
def test_normalize_db_url_rejects_sync_drivers(url):
    with pytest.raises(ValueError, match="Unsupported database URL scheme"):
        normalize_db_url(url)

    with pytest.raises(ValueError):
        init_engine(url)
