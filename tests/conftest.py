from __future__ import annotations

from pathlib import Path

import pytest

from sdkgen.config import Settings, default_settings
from sdkgen.hosting import HttpResponse
from sdkgen.models import ChangeEvent
from sdkgen.stores.blob import InMemoryBlobStore
from tests._fixtures.doubles import (
    DIFF_URL,
    FakeSourceHost,
    RecordingHttpClient,
    SQL_DIFF,
    webhook_payload,
)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings rooted at the pytest tmp_path with a small worker pool."""
    config = default_settings(tmp_path)
    config.max_workers = 2
    return config


@pytest.fixture
def event() -> ChangeEvent:
    return ChangeEvent.from_webhook(webhook_payload())


@pytest.fixture
def http() -> RecordingHttpClient:
    return RecordingHttpClient({DIFF_URL: HttpResponse(status_code=200, body=SQL_DIFF)})


@pytest.fixture
def host() -> FakeSourceHost:
    return FakeSourceHost()


@pytest.fixture
def blobs() -> InMemoryBlobStore:
    return InMemoryBlobStore()
