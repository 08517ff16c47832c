"""Shared test fixtures for backend tests."""

import asyncio
from typing import AsyncIterator
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from chathome.core.blobs import BlobStore
from chathome.core.config import settings
from chathome.core.database import get_session
from chathome.core.errors import UpstreamUnavailable
from chathome.core.security import hash_password, identity_for, issue_token
from chathome.models.user import Role, User
from chathome.services.llm.base import BaseLLMProvider, LLMRequest
from chathome.services.search.base import BaseSearchProvider, SearchResult
from chathome.services.store import ConversationStore

# In-memory SQLite with StaticPool so all connections (including threads) share one DB
test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


def get_test_session():
    with Session(test_engine) as session:
        yield session


class FakeLLM(BaseLLMProvider):
    """Scripted provider. Replies are keyed by request purpose."""

    def __init__(self):
        self.replies = {
            "classify": "NO",
            "search_query": "search query",
            "title": "Test Title",
            "rewrite": "Rewritten message",
        }
        self.chunks = ["Hello", " from", " the", " assistant"]
        self.failing: set[str] = set()
        self.crashing: dict[str, Exception] = {}  # purpose -> non-upstream error to raise
        self.fail_stream_after: int | None = None
        self.requests: list[LLMRequest] = []

    def purposes(self) -> list[str]:
        return [r.purpose for r in self.requests]

    def last(self, purpose: str) -> LLMRequest:
        return [r for r in self.requests if r.purpose == purpose][-1]

    async def complete(self, request: LLMRequest) -> str:
        self.requests.append(request)
        if request.purpose in self.crashing:
            raise self.crashing[request.purpose]
        if request.purpose in self.failing:
            raise UpstreamUnavailable(f"{request.purpose} failed")
        return self.replies.get(request.purpose, "")

    async def stream(self, request: LLMRequest) -> AsyncIterator[str]:
        self.requests.append(request)
        if request.purpose in self.crashing:
            raise self.crashing[request.purpose]
        if request.purpose in self.failing:
            raise UpstreamUnavailable("stream failed")
        for i, chunk in enumerate(self.chunks):
            if self.fail_stream_after is not None and i >= self.fail_stream_after:
                raise UpstreamUnavailable("stream broke")
            await asyncio.sleep(0)
            yield chunk


class FakeSearch(BaseSearchProvider):
    def __init__(self):
        self.results = [
            SearchResult(title="Weather in Paris", link="https://weather.example/paris", snippet="Sunny, 21C"),
        ]
        self.fail = False
        self.queries: list[str] = []

    async def search(self, query: str, num_results: int = 5) -> list[SearchResult]:
        self.queries.append(query)
        if self.fail:
            raise UpstreamUnavailable("search down")
        return self.results[:num_results]


@pytest.fixture(autouse=True)
def setup_test_db():
    """Create all tables before each test, drop after."""
    import chathome.models  # noqa: F401 - register models
    SQLModel.metadata.create_all(test_engine)
    yield
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture
def engine():
    return test_engine


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def fake_search():
    return FakeSearch()


@pytest.fixture
def blobs(tmp_path):
    return BlobStore(tmp_path / "files")


@pytest.fixture
def store(blobs):
    return ConversationStore(test_engine, blobs)


@pytest.fixture
def make_user():
    """Insert a user directly into the test DB and return (user, identity)."""
    def _make(username="alice", role=Role.ADULT, display_name="", password="secret123"):
        with Session(test_engine) as session:
            user = User(
                username=username,
                display_name=display_name or username.capitalize(),
                role=role.value,
                password_hash=hash_password(password),
            )
            session.add(user)
            session.commit()
            session.refresh(user)
            return user, identity_for(user)
    return _make


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {issue_token(user)}"}
    return _headers


@pytest.fixture
def client(fake_llm, fake_search, tmp_path):
    """FastAPI TestClient with providers faked and storage in a temp dir."""
    with (
        patch("chathome.core.database.engine", test_engine),
        patch("chathome.main.get_llm_provider", return_value=fake_llm),
        patch("chathome.main.get_search_provider", return_value=fake_search),
        patch.object(settings, "data_dir", tmp_path / "data"),
    ):
        from chathome.main import app

        # Use FastAPI's dependency override for get_session
        app.dependency_overrides[get_session] = get_test_session

        with TestClient(app) as c:
            yield c

        app.dependency_overrides.clear()
