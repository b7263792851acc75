"""Shared fixtures for pytfs tests."""

import httpx
import pytest

from pytfs.http import HttpExecutor

TFS_ENV_VARS = (
    "TFS_CONFIG",
    "TFS_URL",
    "TFS_PROJECT",
    "TFS_BRANCH",
    "TFS_USERNAME",
    "TFS_PASSWORD",
)


@pytest.fixture(autouse=True)
def clean_tfs_env(monkeypatch):
    """Keep the developer's TFS_* environment out of the tests."""
    for name in TFS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def make_executor():
    """Build executors backed by an httpx.MockTransport handler."""
    executors = []

    def factory(handler):
        executor = HttpExecutor(transport=httpx.MockTransport(handler))
        executors.append(executor)
        return executor

    yield factory

    for executor in executors:
        executor.close()
