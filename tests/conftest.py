"""Shared fixtures for the HTTP layer."""

import pytest

from cgprovision.common.http_cache import HttpCache
from cgprovision.common.http_client import HttpClient
from helpers import FakeSession


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def http_cache(tmp_path):
    return HttpCache(tmp_path / "http")


@pytest.fixture
def http_client(http_cache, fake_session):
    return HttpClient(http_cache, session=fake_session)
