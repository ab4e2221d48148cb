import pytest
from sqlalchemy.exc import IntegrityError

from apphub import models
from apphub.aliases import ALIAS_ALPHABET, generate_alias, is_app_alias_unique_error
from apphub.exceptions import AliasExhaustedError
from apphub.repository import Repository


def test_generate_alias_draws_from_alphabet():
    alias = generate_alias(6)
    assert len(alias) == 6
    assert set(alias) <= set(ALIAS_ALPHABET)


def test_generate_alias_uses_injected_choice():
    assert generate_alias(4, choice=lambda seq: seq[0]) == "aaaa"


def test_generate_alias_rejects_empty_length():
    with pytest.raises(ValueError):
        generate_alias(0)


async def _seed_apps(sessionmaker, *aliases):
    async with sessionmaker() as session:
        for idx, alias in enumerate(aliases):
            session.add(models.App(alias=alias, name=f"Seed {idx}", platform="android", bundle_id=f"seed.{idx}"))
        await session.commit()


@pytest.mark.asyncio
async def test_alias_retry_converges_on_first_free_alias(sessionmaker, make_info, count_rows):
    await _seed_apps(sessionmaker, "taken1", "taken2", "taken3")
    drawn = iter(["taken1", "taken2", "taken3", "free"])
    repo = Repository(sessionmaker, alias_factory=lambda: next(drawn))

    app = await repo.resolve_app(make_info())

    assert app.alias == "free"
    assert await count_rows(models.App) == 4
    assert (await repo.get_app_by_alias("free")).id == app.id


@pytest.mark.asyncio
async def test_alias_retry_gives_up_after_max_attempts(sessionmaker, make_info, count_rows):
    await _seed_apps(sessionmaker, "same")
    repo = Repository(sessionmaker, alias_factory=lambda: "same", alias_max_attempts=5)

    with pytest.raises(AliasExhaustedError) as excinfo:
        await repo.resolve_app(make_info())

    assert excinfo.value.context["attempts"] == 5
    assert await count_rows(models.App) == 1


async def _integrity_error(sessionmaker, app: models.App) -> IntegrityError:
    async with sessionmaker() as session:
        session.add(app)
        with pytest.raises(IntegrityError) as excinfo:
            await session.flush()
        await session.rollback()
    return excinfo.value


@pytest.mark.asyncio
async def test_alias_error_detection_inspects_the_column(sessionmaker):
    await _seed_apps(sessionmaker, "abcd")
    async with sessionmaker() as session:
        existing = await session.get(models.App, 1)

    alias_clash = await _integrity_error(
        sessionmaker, models.App(alias="abcd", name="Other", platform="ios", bundle_id="other")
    )
    natural_key_clash = await _integrity_error(
        sessionmaker,
        models.App(alias="wxyz", name="Dup", platform=existing.platform, bundle_id=existing.bundle_id),
    )

    assert is_app_alias_unique_error(alias_clash)
    assert not is_app_alias_unique_error(natural_key_clash)


class _PgError(Exception):
    def __init__(self, sqlstate, constraint_name, message):
        super().__init__(message)
        self.sqlstate = sqlstate
        self.constraint_name = constraint_name


def test_alias_error_detection_with_postgres_errors():
    alias = IntegrityError(
        "INSERT", {}, _PgError("23505", "uq_app_alias", 'duplicate key value violates unique constraint "uq_app_alias"')
    )
    natural_key = IntegrityError(
        "INSERT",
        {},
        _PgError("23505", "uq_app_bundle_platform", 'duplicate key value violates unique constraint "uq_app_bundle_platform"'),
    )
    not_null = IntegrityError("INSERT", {}, _PgError("23502", None, 'null value in column "alias"'))

    assert is_app_alias_unique_error(alias)
    assert not is_app_alias_unique_error(natural_key)
    assert not is_app_alias_unique_error(not_null)
