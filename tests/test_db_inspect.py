import pytest

from tools.db_inspect import render


@pytest.mark.asyncio
async def test_render_walks_apps_versions_and_packages(repo, make_info):
    pkg = await repo.create_package(make_info(), "a.ipa", "beta", "nightly", "pkg-1")
    app = await repo.resolve_app(make_info())

    apps = await render(repo, "apps")
    assert apps == [f"{app.id}\t{app.alias}\tExample"]

    versions = await render(repo, "versions", app.alias)
    assert versions == [f"{pkg.version_id}\t1.2.3(45)\t1 package(s)\tbeta"]

    packages = await render(repo, "packages", str(pkg.version_id))
    assert len(packages) == 1
    assert packages[0].startswith("pkg-1\ta.ipa\t1000\t")
    assert packages[0].endswith("\tnightly")


@pytest.mark.asyncio
async def test_render_rejects_unknown_targets(repo):
    with pytest.raises(SystemExit):
        await render(repo, "versions", "zzzz")
    with pytest.raises(SystemExit):
        await render(repo, "packages", "not-a-number")
    with pytest.raises(SystemExit):
        await render(repo, "packages", "42")
