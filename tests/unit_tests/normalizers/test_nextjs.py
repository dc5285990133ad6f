import json

import pytest

from preview_deploy.exceptions import BuildNormalizationError, SubprocessFailure
from preview_deploy.models import Framework
from preview_deploy.normalizers import normalize
from preview_deploy.normalizers.nextjs import NOOP_SCRIPTS, OPEN_NEXT_BUILD
from tests.fixtures.build_trees import make_static_build, write_file
from tests.fixtures.fakes import FakeRunner

ORIGINAL_MANIFEST = {"name": "site", "scripts": {"build": "next build", "dev": "next dev"}}


@pytest.fixture
def next_project(tmp_path):
    project = tmp_path / "site"
    write_file(project / "package.json", json.dumps(ORIGINAL_MANIFEST))
    write_file(project / ".next" / "standalone" / ".next" / "server" / "app" / "index.html", "<html>ssr</html>")
    return project


def fake_open_next(seen_manifests):
    def on_run(command, cwd):
        seen_manifests.append(json.loads((cwd / "package.json").read_text()))
        write_file(cwd / ".open-next" / "assets" / "_next" / "app.js", "1")
        write_file(cwd / ".open-next" / "server-functions" / "default" / "index.mjs", "export {}")
    return on_run


def test_static_export_is_not_bundled(tmp_path, fake_runner):
    build = make_static_build(tmp_path / "out")

    metadata = normalize(build, Framework.NEXTJS, runner=fake_runner)

    assert metadata.client_directory == build.resolve()
    assert metadata.server_directory is None
    assert fake_runner.calls == []


def test_standalone_build_is_split_by_open_next(next_project):
    seen = []
    runner = FakeRunner(on_run=fake_open_next(seen))

    metadata = normalize(next_project / ".next", Framework.NEXTJS, runner=runner)

    assert runner.commands == [OPEN_NEXT_BUILD]
    assert runner.calls[0]["cwd"] == next_project.resolve()
    assert seen[0]["scripts"] == NOOP_SCRIPTS
    assert metadata.client_directory == (next_project / ".open-next" / "assets").resolve()
    assert metadata.server_directory == (next_project / ".open-next" / "server-functions" / "default").resolve()
    assert metadata.has_index_html is True
    assert json.loads((next_project / "package.json").read_text()) == ORIGINAL_MANIFEST
    assert not (next_project / "package.json.bak").exists()


def test_manifest_is_restored_when_open_next_fails(next_project):
    runner = FakeRunner(fail_on=OPEN_NEXT_BUILD)

    with pytest.raises(SubprocessFailure):
        normalize(next_project / ".next", Framework.NEXTJS, runner=runner)

    assert json.loads((next_project / "package.json").read_text()) == ORIGINAL_MANIFEST
    assert not (next_project / "package.json.bak").exists()


def test_missing_open_next_output(next_project, fake_runner):
    with pytest.raises(BuildNormalizationError, match="OpenNext assets"):
        normalize(next_project / ".next", Framework.NEXTJS, runner=fake_runner)


def test_missing_manifest(tmp_path, fake_runner):
    build = tmp_path / "site" / ".next"
    build.mkdir(parents=True)

    with pytest.raises(BuildNormalizationError, match="package.json"):
        normalize(build, Framework.NEXTJS, runner=fake_runner)
    assert fake_runner.calls == []
