# tests/conftest.py
#
# Shared fixtures: virtual clock, keyring isolation, engine factory.

import pytest

from fake_clock import FakeClock
from fakes import FakeApiClient, FakeDownloadManager

from media_resolver.core.engine import MediaResolutionEngine
from media_resolver.core.settings import EngineSettings


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture(autouse=True)
def isolated_keyring(monkeypatch):
    """Keep tests away from the real OS keyring."""
    store = {}

    def get_password(service, name):
        return store.get((service, name))

    def set_password(service, name, value):
        store[(service, name)] = value

    monkeypatch.setattr("keyring.get_password", get_password)
    monkeypatch.setattr("keyring.set_password", set_password)
    return store


@pytest.fixture()
def make_engine(clock, tmp_path):
    def _make(source, client=None, downloads=None, **settings_overrides):
        client = client or FakeApiClient()
        downloader = FakeDownloadManager(downloads or {}, download_dir=tmp_path / "downloads")
        settings = EngineSettings(**settings_overrides)
        return MediaResolutionEngine(source, client, downloader, settings=settings, clock=clock)

    return _make
