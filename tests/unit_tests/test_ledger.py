import json
import os
import stat
import threading

import pytest

from preview_deploy import ledger as ledger_module
from preview_deploy.exceptions import ConfigurationError, NotFoundError
from preview_deploy.ledger import (
    DEFAULT_FILE_MODE,
    ProjectStore,
    VersionLedger,
    append_version,
    find_version,
    latest_version,
)
from preview_deploy.models import Environment, Framework, Version
from tests.consts import TEST_ENVIRONMENT_ID
from tests.fixtures.build_trees import make_project


def environment_with(*version_ids):
    environment = Environment(environment_id=TEST_ENVIRONMENT_ID)
    for version_id in version_ids:
        environment = append_version(environment, Version(version_id=version_id, message=f"msg {version_id}"))
    return environment


def test_append_keeps_exactly_one_latest():
    environment = environment_with("v1", "v2", "v3")

    assert [v.version_id for v in environment.versions] == ["v1", "v2", "v3"]
    assert [v.is_latest for v in environment.versions] == [False, False, True]
    assert latest_version(environment).version_id == "v3"


def test_find_unknown_version():
    with pytest.raises(NotFoundError, match="'v9' does not exist"):
        find_version(environment_with("v1"), "v9")


def test_save_writes_camel_case_and_ignores_file(tmp_path):
    store = make_project(tmp_path, Framework.REMIX, "build", package_json_path="package.json")

    raw = json.loads(store.config_file.read_text())
    assert raw == {
        "framework": "remix",
        "awsHostedZone": "mydomain.com",
        "buildOutputDirectory": "build",
        "packageJsonPath": "package.json",
    }
    assert ".preview-environment.json" in (tmp_path / ".gitignore").read_text().splitlines()
    assert store.load().package_json_path == "package.json"


def test_record_preserves_other_keys(tmp_path):
    store = make_project(tmp_path, Framework.REACT, "build", environment=Environment(environment_id=TEST_ENVIRONMENT_ID))
    raw = json.loads(store.config_file.read_text())
    raw["customKey"] = "kept"
    store.config_file.write_text(json.dumps(raw))

    VersionLedger(store).record(Version(version_id="v1", message="first"))

    raw = json.loads(store.config_file.read_text())
    assert raw["customKey"] == "kept"
    assert raw["environment"]["versions"][0]["versionId"] == "v1"
    assert raw["environment"]["versions"][0]["isLatest"] is True


def test_record_without_environment(tmp_path):
    store = make_project(tmp_path, Framework.REACT, "build")

    with pytest.raises(ConfigurationError):
        VersionLedger(store).record(Version(version_id="v1"))


def test_latest_on_empty_history(tmp_path):
    store = make_project(tmp_path, Framework.REACT, "build", environment=Environment(environment_id=TEST_ENVIRONMENT_ID))

    with pytest.raises(NotFoundError):
        VersionLedger(store).latest()


def test_missing_and_invalid_config_file(tmp_path):
    store = ProjectStore(tmp_path / ".preview-environment.json")
    with pytest.raises(ConfigurationError, match="does not exist"):
        store.load()

    store.config_file.write_text("{broken")
    with pytest.raises(ConfigurationError, match="not valid JSON"):
        store.load()


def test_failed_write_leaves_previous_file_intact(tmp_path, monkeypatch):
    store = make_project(tmp_path, Framework.REACT, "build", environment=Environment(environment_id=TEST_ENVIRONMENT_ID))
    before = store.config_file.read_text()

    def failing_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(ledger_module.os, "replace", failing_replace)

    with pytest.raises(OSError):
        VersionLedger(store).record(Version(version_id="v1"))

    assert store.config_file.read_text() == before
    assert not list(tmp_path.glob("*.tmp"))


def test_concurrent_records_are_not_lost(tmp_path):
    store = make_project(tmp_path, Framework.REACT, "build", environment=Environment(environment_id=TEST_ENVIRONMENT_ID))
    ledger = VersionLedger(store)

    threads = [
        threading.Thread(target=ledger.record, args=(Version(version_id=f"v{i}"),))
        for i in range(8)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    versions = ledger.environment().versions
    assert sorted(v.version_id for v in versions) == [f"v{i}" for i in range(8)]
    assert sum(v.is_latest for v in versions) == 1
    assert versions[-1].is_latest


def test_update_environment_to_none_removes_key(tmp_path):
    store = make_project(tmp_path, Framework.REACT, "build", environment=Environment(environment_id=TEST_ENVIRONMENT_ID))

    config = store.update_environment(lambda _: None)

    assert config.environment is None
    assert "environment" not in json.loads(store.config_file.read_text())


def test_rewrites_keep_file_permissions(tmp_path):
    store = make_project(tmp_path, Framework.REACT, "build", environment=Environment(environment_id=TEST_ENVIRONMENT_ID))
    assert stat.S_IMODE(store.config_file.stat().st_mode) == DEFAULT_FILE_MODE

    os.chmod(store.config_file, 0o664)
    VersionLedger(store).record(Version(version_id="v1"))

    assert stat.S_IMODE(store.config_file.stat().st_mode) == 0o664
