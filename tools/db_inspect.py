#!/usr/bin/env python3
"""
Print what the package store holds.

    python -m tools.db_inspect apps
    python -m tools.db_inspect versions <alias>
    python -m tools.db_inspect packages <version id>

Reads DATABASE_URL through apphub.settings (environment or repository .env).
"""
import argparse
import asyncio
import logging
from typing import List, Optional

from apphub.database import init_engine
from apphub.repository import Repository, create_repository
from apphub.settings import settings


async def render(repo: Repository, command: str, target: Optional[str] = None) -> List[str]:
    if command == "apps":
        apps = await repo.list_apps()
        return [f"{app.id}\t{app.alias}\t{app.name}" for app in apps]

    if command == "versions":
        app = await repo.get_app_by_alias(target)
        if app is None:
            raise SystemExit(f"No app with alias '{target}'")
        versions = await repo.list_versions_for_app(app.id)
        return [
            f"{v.id}\t{v.version}\t{v.package_count} package(s)\t{v.remark}"
            for v in versions
        ]

    if command == "packages":
        try:
            version_id = int(target)
        except (TypeError, ValueError) as exc:
            raise SystemExit(f"Invalid version id '{target}'") from exc
        if await repo.get_version(version_id) is None:
            raise SystemExit(f"No version with id {version_id}")
        packages = await repo.list_packages_for_version(version_id)
        return [
            f"{p.id}\t{p.name}\t{p.size}\t{p.created_at.isoformat()}\t{p.remark}"
            for p in packages
        ]

    raise SystemExit(f"Unknown command '{command}'")


async def _run(command: str, target: Optional[str]) -> None:
    engine = init_engine()
    try:
        for line in await render(create_repository(engine), command, target):
            print(line)
    finally:
        await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Inspect the apphub package store")
    parser.add_argument("command", choices=["apps", "versions", "packages"])
    parser.add_argument("target", nargs="?", help="App alias (versions) or version id (packages)")
    args = parser.parse_args()

    logging.basicConfig(level=settings.log_level)
    asyncio.run(_run(args.command, args.target))


if __name__ == "__main__":
    main()
