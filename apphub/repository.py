from __future__ import annotations

import logging
from datetime import datetime, timezone
from functools import partial
from typing import Callable, List, Optional

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError, MultipleResultsFound, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from apphub import models
from apphub.aliases import generate_alias, is_app_alias_unique_error
from apphub.database import create_sessionmaker
from apphub.exceptions import (
    AliasExhaustedError,
    InvariantViolationError,
    StorageError,
    storage_errors,
    translate_integrity_error,
    violates_unique,
)
from apphub.schemas import AppInfo
from apphub.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_app_natural_key_error(exc: IntegrityError) -> bool:
    return violates_unique(exc, "uq_app_bundle_platform", ("app.bundle_id", "app.platform"))


def _is_version_natural_key_error(exc: IntegrityError) -> bool:
    return violates_unique(exc, "uq_version_app", ("version.version", "version.app_id"))


class Repository:
    """
    Data access for apps, versions and uploaded packages.

    Every public method runs in its own session from the injected factory.
    ``alias_factory`` and ``clock`` exist so tests can script alias
    collisions and creation times.
    """

    def __init__(
        self,
        sessionmaker: async_sessionmaker,
        *,
        alias_length: int = 4,
        alias_max_attempts: int = 1000,
        alias_factory: Optional[Callable[[], str]] = None,
        clock: Optional[Callable[[], datetime]] = None,
        atomic_uploads: bool = False,
    ):
        if alias_max_attempts < 1:
            raise ValueError("alias_max_attempts must be at least 1")
        self._sessionmaker = sessionmaker
        self._alias_factory = alias_factory or partial(generate_alias, alias_length)
        self._alias_max_attempts = alias_max_attempts
        self._clock = clock or _utcnow
        self.atomic_uploads = atomic_uploads

    # ------------------------------------------------------------------
    # Upload flow

    async def create_package(
        self,
        info: AppInfo,
        file_name: str,
        version_remark: str,
        package_remark: str,
        package_id: str,
    ) -> models.Package:
        """
        Record an uploaded package: find or create its app, find or create its
        version, then insert the package.

        By default each step commits on its own, so a failing package insert
        still leaves a newly created app and version behind. With
        ``atomic_uploads`` the three steps share one transaction.
        """
        async with self._sessionmaker() as session:
            app = await self._resolve_app(session, info)
            app_id = app.id
            await self._end_step(session, "could not commit app", app_id=app_id)

            version = await self._resolve_version(session, app_id, info, version_remark)
            version_id = version.id
            await self._end_step(session, "could not commit version", version_id=version_id)

            package = await self._insert_package(
                session,
                package_id=package_id,
                version_id=version_id,
                name=file_name,
                size=info.size,
                remark=package_remark,
            )
            with storage_errors("could not commit package", package_id=package_id):
                await session.commit()

        logger.info(f"Stored package {package_id} ({file_name}) for version {version_id} of app {app_id}")
        return package

    async def resolve_app(self, info: AppInfo) -> models.App:
        """Return the app for (bundle_id, platform), creating it with a fresh alias if needed."""
        async with self._sessionmaker() as session:
            app = await self._resolve_app(session, info)
            with storage_errors("could not commit app", bundle_id=info.bundle_id):
                await session.commit()
        return app

    async def resolve_version(self, app_id: int, info: AppInfo, remark: str = "") -> models.Version:
        """Return the version for (full version, app_id); ``remark`` is only stored on creation."""
        async with self._sessionmaker() as session:
            version = await self._resolve_version(session, app_id, info, remark)
            with storage_errors("could not commit version", app_id=app_id):
                await session.commit()
        return version

    async def _end_step(self, session: AsyncSession, operation: str, **context) -> None:
        if self.atomic_uploads:
            return
        with storage_errors(operation, **context):
            await session.commit()

    # ------------------------------------------------------------------
    # Apps

    async def _find_app(self, session: AsyncSession, bundle_id: str, platform: str) -> Optional[models.App]:
        # Oldest row wins if a store created before the natural-key constraint holds duplicates.
        stmt = (
            sa.select(models.App)
            .where(models.App.bundle_id == bundle_id, models.App.platform == platform)
            .order_by(models.App.id)
            .limit(1)
        )
        with storage_errors("could not look up app", bundle_id=bundle_id, platform=platform):
            return (await session.execute(stmt)).scalar_one_or_none()

    async def _resolve_app(self, session: AsyncSession, info: AppInfo) -> models.App:
        app = await self._find_app(session, info.bundle_id, info.platform.value)
        if app is not None:
            return app
        return await self._insert_app(session, info)

    async def _insert_app(self, session: AsyncSession, info: AppInfo) -> models.App:
        """
        Insert a new app, drawing aliases until one is free.

        Only a unique violation on app.alias is retried. Losing the
        (bundle_id, platform) race to a concurrent upload returns the winner;
        any other failure propagates.
        """
        platform = info.platform.value
        context = {"bundle_id": info.bundle_id, "platform": platform}

        for attempt in range(1, self._alias_max_attempts + 1):
            alias = self._alias_factory()
            app = models.App(alias=alias, name=info.name, platform=platform, bundle_id=info.bundle_id)
            session.add(app)
            try:
                await session.flush()
            except IntegrityError as exc:
                await session.rollback()
                if is_app_alias_unique_error(exc):
                    logger.warning(f"Alias {alias!r} is taken (attempt {attempt}), drawing another")
                    continue
                if _is_app_natural_key_error(exc):
                    return await self._reload_app_after_race(session, info, exc)
                raise translate_integrity_error(exc, "could not insert app", **context) from exc
            except SQLAlchemyError as exc:
                raise StorageError("could not insert app", dict(context, detail=str(exc))) from exc

            logger.info(f"Created app {app.id} ({info.bundle_id}, {platform}) with alias {alias!r}")
            return app

        raise AliasExhaustedError(
            f"no free alias after {self._alias_max_attempts} attempts",
            dict(context, attempts=self._alias_max_attempts),
        )

    async def _reload_app_after_race(self, session: AsyncSession, info: AppInfo, exc: IntegrityError) -> models.App:
        platform = info.platform.value
        logger.warning(f"App ({info.bundle_id}, {platform}) was created concurrently; reusing it")
        app = await self._find_app(session, info.bundle_id, platform)
        if app is None:
            raise InvariantViolationError(
                "app missing after natural-key conflict",
                {"bundle_id": info.bundle_id, "platform": platform},
            ) from exc
        return app

    async def get_app_by_alias(self, alias: str) -> Optional[models.SimpleApp]:
        stmt = sa.select(models.SimpleApp).where(models.SimpleApp.alias == alias)
        async with self._sessionmaker() as session:
            return await self._one_or_none(session, stmt, "could not look up app by alias", alias=alias)

    async def get_app(self, app_id: int) -> Optional[models.SimpleApp]:
        async with self._sessionmaker() as session:
            with storage_errors("could not load app", app_id=app_id):
                return await session.get(models.SimpleApp, app_id)

    async def list_apps(self) -> List[models.SimpleApp]:
        stmt = sa.select(models.SimpleApp).order_by(models.SimpleApp.id)
        async with self._sessionmaker() as session:
            with storage_errors("could not list apps"):
                return list((await session.execute(stmt)).scalars().all())

    # ------------------------------------------------------------------
    # Versions

    async def _find_version(self, session: AsyncSession, app_id: int, full_version: str) -> Optional[models.Version]:
        stmt = sa.select(models.Version).where(
            models.Version.version == full_version,
            models.Version.app_id == app_id,
        )
        return await self._one_or_none(
            session, stmt, "could not look up version", app_id=app_id, version=full_version
        )

    async def _resolve_version(
        self, session: AsyncSession, app_id: int, info: AppInfo, remark: str
    ) -> models.Version:
        full_version = info.full_version()
        version = await self._find_version(session, app_id, full_version)
        if version is not None:
            return version

        context = {"app_id": app_id, "version": full_version}
        version = models.Version(
            version=full_version,
            app_id=app_id,
            android_version_code=info.android_version_code,
            android_version_name=info.android_version_name,
            ios_short_version=info.ios_short_version,
            ios_bundle_version=info.ios_bundle_version,
            sort_key=int(self._clock().timestamp()),
            remark=remark,
        )
        session.add(version)
        try:
            await session.flush()
        except IntegrityError as exc:
            # Earlier steps are committed already. In an atomic upload a
            # natural-key clash needs a pre-existing app, so only this row is lost.
            await session.rollback()
            if not _is_version_natural_key_error(exc):
                raise translate_integrity_error(exc, "could not insert version", **context) from exc
            logger.warning(f"Version {full_version} of app {app_id} was created concurrently; reusing it")
            version = await self._find_version(session, app_id, full_version)
            if version is None:
                raise InvariantViolationError("version missing after natural-key conflict", context) from exc
            return version
        except SQLAlchemyError as exc:
            raise StorageError("could not insert version", dict(context, detail=str(exc))) from exc

        logger.info(f"Created version {version.id} ({full_version}) for app {app_id}")
        return version

    async def get_version(self, version_id: int) -> Optional[models.DetailVersion]:
        async with self._sessionmaker() as session:
            with storage_errors("could not load version", version_id=version_id):
                return await session.get(models.DetailVersion, version_id)

    async def list_versions_for_app(self, app_id: int) -> List[models.DetailVersion]:
        """Versions of an app, most recently created first."""
        stmt = (
            sa.select(models.DetailVersion)
            .where(models.DetailVersion.app_id == app_id)
            .order_by(models.DetailVersion.sort_key.desc(), models.DetailVersion.id.desc())
        )
        async with self._sessionmaker() as session:
            with storage_errors("could not list versions", app_id=app_id):
                return list((await session.execute(stmt)).scalars().all())

    # ------------------------------------------------------------------
    # Packages

    async def _insert_package(
        self,
        session: AsyncSession,
        *,
        package_id: str,
        version_id: int,
        name: str,
        size: int,
        remark: str,
    ) -> models.Package:
        # No existence check: the uploader guarantees the id, a duplicate is an error.
        package = models.Package(
            id=package_id,
            version_id=version_id,
            name=name,
            size=size,
            created_at=self._clock(),
            remark=remark,
        )
        session.add(package)
        with storage_errors("could not insert package", package_id=package_id, version_id=version_id):
            await session.flush()
        return package

    async def get_package(self, package_id: str) -> Optional[models.Package]:
        async with self._sessionmaker() as session:
            with storage_errors("could not load package", package_id=package_id):
                return await session.get(models.Package, package_id)

    async def delete_package(self, package_id: str) -> None:
        """Delete a package by id. Deleting an unknown id is not an error."""
        stmt = sa.delete(models.Package).where(models.Package.id == package_id)
        async with self._sessionmaker() as session:
            with storage_errors("could not delete package", package_id=package_id):
                result = await session.execute(stmt)
                await session.commit()
        if result.rowcount:
            logger.info(f"Deleted package {package_id}")

    async def list_packages_for_version(self, version_id: int) -> List[models.Package]:
        """Packages of a version, most recent upload first."""
        stmt = (
            sa.select(models.Package)
            .where(models.Package.version_id == version_id)
            .order_by(models.Package.created_at.desc(), models.Package.id.desc())
        )
        async with self._sessionmaker() as session:
            with storage_errors("could not list packages", version_id=version_id):
                return list((await session.execute(stmt)).scalars().all())

    # ------------------------------------------------------------------

    async def _one_or_none(self, session: AsyncSession, stmt, operation: str, **context):
        with storage_errors(operation, **context):
            result = await session.execute(stmt)
        try:
            return result.scalar_one_or_none()
        except MultipleResultsFound as exc:
            raise InvariantViolationError(f"{operation}: more than one row", context) from exc


def create_repository(engine: AsyncEngine, config: Optional[Settings] = None) -> Repository:
    """Build a Repository on ``engine`` configured from settings."""
    config = config or default_settings
    return Repository(
        create_sessionmaker(engine),
        alias_length=config.alias_length,
        alias_max_attempts=config.alias_max_attempts,
        atomic_uploads=config.atomic_uploads,
    )
