"""
Shared fixtures: an in-memory database, fake collaborators and an API
client wired to them, so no test touches WordPress or Hugging Face.
"""
from datetime import datetime, timezone

import pytest
from cryptography.fernet import Fernet
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from autopublish.config import settings
from autopublish.db.base import Base
from autopublish.db import crud, crud_sites
from autopublish.errors import GenerationError, ImageError, PublishError
from autopublish.services.controller import AutomationController
from autopublish.services.pipeline import ArticlePipeline
from autopublish.services.publisher import Publisher
from autopublish.services.scheduler import Scheduler
from autopublish.services.schemas import ArticleBody, ArticleIdea, ContentProfile, PublishResult

NOW = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)
OWNER = "owner-1"

PROFILE = {
    "niche": "home gardening",
    "topics": ["tomatoes", "composting"],
    "categories": ["Vegetables", "Soil"],
    "tags": ["garden", "organic"],
    "writing_style": {"tone": "friendly", "complexity": "beginner", "average_length": 900},
    "content_types": ["how-to", "listicle"],
}


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------

class FakeGenerator:
    def __init__(self, fail_stage=None, fail_niches=(), ideas_empty=False):
        self.fail_stage = fail_stage
        self.fail_niches = set(fail_niches)
        self.ideas_empty = ideas_empty
        self.calls = []

    def ideas(self, profile: ContentProfile, count: int):
        self.calls.append(("ideas", profile.niche))
        if self.fail_stage == "ideas" or profile.niche in self.fail_niches:
            raise GenerationError("model unavailable")
        if self.ideas_empty:
            return []
        return [ArticleIdea(
            title="Growing Tomatoes", prompt="Write about tomatoes", category="Vegetables",
            tags=["garden", "tomatoes", "garden"], content_type="how-to", estimated_length=800,
        )]

    def article(self, idea: ArticleIdea, profile: ContentProfile):
        self.calls.append(("article", idea.title))
        if self.fail_stage == "article":
            raise RuntimeError("connection reset")
        return ArticleBody(title=idea.title, content="<p>Tomatoes.</p>", excerpt="All about tomatoes.")


class FakeTarget:
    def __init__(self, fail=False, category_id=7):
        self.fail = fail
        self.category_id = category_id
        self.published = []

    def resolve_category(self, site, name):
        return self.category_id

    def publish(self, site, title, content, category_id, image_url, excerpt=""):
        if self.fail:
            raise PublishError("rest_forbidden: Sorry, you are not allowed to create posts")
        self.published.append({"site": site.id, "title": title, "category_id": category_id, "image_url": image_url})
        return PublishResult(external_id=str(100 + len(self.published)), link=f"https://blog.example.com/?p={100 + len(self.published)}")


class FakeImageGenerator:
    def __init__(self, fail=False):
        self.fail = fail
        self.subjects = []

    def generate(self, subject):
        self.subjects.append(subject)
        if self.fail:
            raise ImageError("quota exceeded")
        return "https://img.example.com/cover.png"


class FakeSleep:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def fernet_key(monkeypatch):
    monkeypatch.setattr(settings, "fernet_key", Fernet.generate_key().decode())


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def site(db):
    return crud_sites.create_site(db, OWNER, "Garden Blog", "https://blog.example.com/", "editor", "app pass word")


@pytest.fixture
def make_schedule(db, site):
    def _make(frequency="daily", time_of_day="09:00", tz="UTC", created_at=None, profile=PROFILE, **kwargs):
        created_at = created_at or datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc)
        schedule = crud.create_schedule(db, OWNER, site.id, frequency, time_of_day, tz, created_at)
        if profile is not None:
            crud.set_schedule_profile(db, schedule, dict(profile, **kwargs), created_at)
        return schedule
    return _make


@pytest.fixture
def make_article(db):
    def _make(schedule, scheduled_for=NOW, **kwargs):
        fields = dict(
            title="Ready Article", content="<p>Body</p>", excerpt="Body", category="Vegetables",
            tags=["garden"], scheduled_for=scheduled_for,
        )
        fields.update(kwargs)
        return crud.create_article(db, schedule_id=schedule.id, **fields)
    return _make


# ---------------------------------------------------------------------------
# Core component fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def target():
    return FakeTarget()


@pytest.fixture
def publisher(session_factory, target):
    return Publisher(session_factory, target)


@pytest.fixture
def scheduler(session_factory, generator, publisher):
    sched = Scheduler(
        session_factory, ArticlePipeline(generator), publisher,
        poll_interval_seconds=3600, run_on_start=False, clock=lambda: NOW,
    )
    yield sched
    sched.stop()


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def controller(session_factory, scheduler, publisher, fake_sleep):
    return AutomationController(session_factory, scheduler, publisher, restart_grace_seconds=1.0, sleep=fake_sleep)


@pytest.fixture
def client(session_factory, controller):
    from autopublish.main import app
    from autopublish.deps import get_db

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.state.controller = controller
    yield TestClient(app)
    app.dependency_overrides.clear()
    del app.state.controller
