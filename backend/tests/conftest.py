"""Test configuration and fixtures."""
import asyncio
import copy
import os

# Must be set before anything imports contentbot.config / contentbot.database
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ["REDIS_URL"] = ""
os.environ.setdefault("RESEARCH_WEBHOOK_SECRET", "test-webhook-secret")
os.environ["UNSPLASH_ACCESS_KEY"] = ""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import contentbot.models  # noqa: F401  registers every mapper
from contentbot.config import Settings
from contentbot.database import Base
from contentbot.models import Article, Project, UserCredit
from contentbot.services.content_generator import GenerationError

USER_ID = "user_test_1"

GOOD_ARTICLE = """# Cold Brew Coffee Guide

Intro text written by the model.

## TL;DR

Cold brew is smooth and sweet. It costs 50% less than cafe drinks and keeps 20% more aroma.

## How to Make Cold Brew Coffee

Mix coarse grounds with cold water. Steep the jar for twelve hours in the fridge.
Read [our grinder guide](/grinders) and the [SCA brewing notes](https://sca.coffee/brew).

## Choosing Beans

Pick a medium roast with chocolate notes. A [roasting study](https://example.org/roast) explains why.

## Frequently Asked Questions

### How long does cold brew last?

About two weeks in a sealed jar in the fridge.

### Is cold brew stronger than hot coffee?

It often has more caffeine per cup because the ratio is higher.
"""

WRITE_RESPONSE = {
    "title": "Cold Brew Coffee Guide",
    "slug": "cold-brew-coffee-guide",
    "meta_description": "Learn how to make smooth cold brew coffee at home with simple tools and the right beans.",
    "intro_paragraph": "Cold brew coffee is the easiest way to make smooth iced coffee at home.",
    "tags": ["cold brew", "coffee"],
    "content": GOOD_ARTICLE,
}


def default_responses() -> dict:
    return {
        "research": {
            "research_data": "## Executive Summary\n\nCold brew is popular [S1].",
            "sources": [{"url": "https://sca.coffee/brew", "title": "SCA"}],
            "videos": [],
        },
        "outline": {"sections": [{"heading": "How to Make Cold Brew Coffee", "points": ["ratio", "time"]}]},
        "write": WRITE_RESPONSE,
        "quality-control": {"is_valid": True, "issues": []},
        "validation": {"is_valid": True, "issues": []},
        "update": GOOD_ARTICLE,
        "seo-remediation": GOOD_ARTICLE,
    }


class FakeGenerator:
    """Scripted ``Generator``: one response per task, a list means one per call."""

    def __init__(self, responses: dict | None = None, fail_on: set | None = None, delays: dict | None = None):
        self.responses = {**default_responses(), **(responses or {})}
        self.fail_on = set(fail_on or ())
        self.delays = delays or {}
        self.calls: list[str] = []

    async def generate(self, prompt, *, task, structured=False):
        self.calls.append(task)
        if task in self.delays:
            await asyncio.sleep(self.delays[task])
        if task in self.fail_on:
            raise GenerationError(f"{task} provider error")
        value = self.responses[task]
        if isinstance(value, list):
            value = value.pop(0) if len(value) > 1 else value[0]
        return copy.deepcopy(value)


class FakeResearchClient:
    def __init__(self, run_id: str = "run_123", result: dict | None = None, fetch_error: Exception | None = None):
        self.run_id = run_id
        self.result = result or default_responses()["research"]
        self.fetch_error = fetch_error
        self.created: list[dict] = []
        self.fetched: list[str] = []

    async def create_task(self, title, keywords, notes=None, excluded_domains=None, metadata=None):
        self.created.append({"title": title, "keywords": keywords, "metadata": metadata})
        return self.run_id

    async def fetch_result(self, run_id):
        self.fetched.append(run_id)
        if self.fetch_error:
            raise self.fetch_error
        return copy.deepcopy(self.result)


class RecordingDispatcher:
    """Stands in for the Celery hand-off; records every call."""

    def __init__(self, error: Exception | None = None):
        self.calls: list[tuple] = []
        self.error = error

    def __call__(self, *args):
        self.calls.append(args)
        if self.error:
            raise self.error


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, autocommit=False, autoflush=False)


@pytest.fixture
def db_session(session_factory):
    """Create an in-memory SQLite database for tests."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def test_settings():
    """Thresholds loose enough that the sample article passes every gate."""
    return Settings(
        REDIS_URL="",
        UNSPLASH_ACCESS_KEY="",
        RESEARCH_MODE="sync",
        SEO_MIN_CHARS=200,
        SEO_MIN_WORDS=50,
        SEO_MIN_READING_EASE=-100.0,
        VALIDATION_TIMEOUT_SECONDS=5.0,
    )


@pytest.fixture
def async_research_settings(test_settings):
    return test_settings.model_copy(update={
        "RESEARCH_MODE": "async",
        "RESEARCH_API_KEY": "research-key",
        "RESEARCH_WEBHOOK_URL": "https://contentbot.test/api/v1/webhooks/research",
    })


@pytest.fixture
def make_project(db_session):
    def _make(user_id=USER_ID, **fields):
        project = Project(
            user_id=user_id,
            name=fields.pop("name", "Coffee Blog"),
            website_url=fields.pop("website_url", "https://coffee.example"),
            tone_of_voice=fields.pop("tone_of_voice", "friendly"),
            **fields,
        )
        db_session.add(project)
        db_session.commit()
        return project
    return _make


@pytest.fixture
def make_article(db_session, make_project):
    def _make(project=None, status="idea", **fields):
        project = project or make_project()
        article = Article(
            user_id=project.user_id,
            project_id=project.id,
            title=fields.pop("title", "Cold Brew Coffee Guide"),
            keywords=fields.pop("keywords", ["cold brew coffee", "iced coffee"]),
            status=status,
            **fields,
        )
        db_session.add(article)
        db_session.commit()
        return article
    return _make


@pytest.fixture
def give_credits(db_session):
    def _give(amount=50, user_id=USER_ID):
        row = db_session.get(UserCredit, user_id)
        if row is None:
            row = UserCredit(user_id=user_id, amount=amount)
            db_session.add(row)
        else:
            row.amount = amount
        db_session.commit()
        return row
    return _give


@pytest.fixture
def fake_generator():
    return FakeGenerator()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def make_generator():
    return FakeGenerator


@pytest.fixture
def make_research_client():
    return FakeResearchClient


@pytest.fixture
def make_dispatcher():
    return RecordingDispatcher


@pytest.fixture
def research_client():
    return FakeResearchClient()


@pytest.fixture
def api_client(session_factory, dispatcher, research_client):
    """TestClient bound to the test database with Celery and research stubbed out.

    Lifespan is not entered, so no tables are created on the real engine.
    """
    from fastapi.testclient import TestClient

    from contentbot.api.v1.deps import get_generation_dispatcher, get_research_client, get_resume_dispatcher
    from contentbot.database import get_db
    from contentbot.main import app

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_generation_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_resume_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_research_client] = lambda: research_client
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
