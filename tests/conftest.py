from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from lensexec.config import Settings
from lensexec.main import app
from lensexec.services.collaborators import Collaborators
from lensexec.services.collaborators.memory_presenter import InMemoryPresenter
from lensexec.services.session import ScanSession, set_session
from tests.fakes import (
    FakeCapture,
    FakeDetector,
    FakeExtractor,
    FakeProvider,
    make_frame,
    make_region,
)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        llm_api_key="test-key",
        llm_model="gpt-4o",
        llm_timeout=1.0,
        backoff_base=0.0,
        backoff_cap=0.0,
        camera_width=640,
        camera_height=480,
    )


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def collaborators() -> Collaborators:
    return Collaborators(
        capture=FakeCapture(make_frame()),
        detector=FakeDetector([make_region()]),
        extractor=FakeExtractor(),
        presenter=InMemoryPresenter(),
    )


@pytest.fixture
def client(
    settings: Settings, collaborators: Collaborators, fake_provider: FakeProvider
) -> Generator[TestClient, None, None]:
    session = ScanSession(
        settings=settings,
        collaborators=collaborators,
        provider_factory=lambda model: fake_provider,
    )
    set_session(session)
    with TestClient(app) as test_client:
        yield test_client
    set_session(None)
