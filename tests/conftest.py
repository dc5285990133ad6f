import os

import pytest
from moto import mock_aws

from preview_deploy.settings import get_settings
from tests.fixtures.fakes import FakeRunner

# Never let a developer's real credentials reach a test
for _var in ("ZONKE_API_KEY", "ZONKE_API_TOKEN", "ZONKE_API_ENDPOINT", "PREVIEW_CONFIG_FILE"):
    os.environ.pop(_var, None)


@pytest.fixture
def mocked_aws(monkeypatch):
    """Point boto3 at moto's in-memory AWS."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    with mock_aws():
        yield


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def project_dir(tmp_path, monkeypatch):
    """Run the test from inside an empty project directory."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def fake_runner():
    return FakeRunner()
