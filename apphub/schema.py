"""Create and drop the package store schema (tables plus read views).

Deployments provision the schema with the alembic migrations; this module is
for tests and the developer tools.
"""
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from apphub import models

SIMPLE_APP_VIEW = """
CREATE VIEW simple_app AS
SELECT id, alias, name
FROM app
"""

DETAIL_VERSION_VIEW = """
CREATE VIEW detail_version AS
SELECT
    v.id,
    v.version,
    v.app_id,
    v.android_version_code,
    v.android_version_name,
    v.ios_short_version,
    v.ios_bundle_version,
    v.sort_key,
    v.remark,
    a.alias AS app_alias,
    a.name AS app_name,
    a.platform AS platform,
    (SELECT count(*) FROM package p WHERE p.version_id = v.id) AS package_count
FROM version v
JOIN app a ON a.id = v.app_id
"""

VIEWS = {
    "simple_app": SIMPLE_APP_VIEW,
    "detail_version": DETAIL_VERSION_VIEW,
}


async def create_schema(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(models.Base.metadata.create_all)
        for ddl in VIEWS.values():
            await conn.execute(text(ddl))


async def drop_schema(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        for name in VIEWS:
            await conn.execute(text(f"DROP VIEW IF EXISTS {name}"))
        await conn.run_sync(models.Base.metadata.drop_all)
