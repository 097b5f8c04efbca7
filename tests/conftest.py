"""
Test configuration and fixtures for the content dashboard API.
This centralizes all test setup, making individual tests clean.
"""

import os

# Settings are read at import time, so configure them before importing the app
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["CACHE_BACKEND"] = "memory"
os.environ["QUEUE_BACKEND"] = "memory"
os.environ["ADMIN_KEY"] = "test-admin-key"
os.environ["ADMIN_SECRET_KEY"] = ""

import asyncio

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from main import app
from dashboard_app.cache.factory import CacheFactory
from dashboard_app.database.connection import Base, get_db
from dashboard_app.dependencies import get_cache, get_queue
from dashboard_app.event_processor.event_worker import AnalyticsEventWorker
from dashboard_app.models import Model, Organization, TrackingLink, TrafficSource
from dashboard_app.queue.factory import QueueFactory
from dashboard_app.services.tracking_service import TrackingService
from dashboard_app.utils import new_uuid

ADMIN_KEY = "test-admin-key"

# Test database configuration
SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def _reset_singletons():
    CacheFactory.clear_instance()
    QueueFactory.clear_instance()
    get_cache.cache_clear()
    get_queue.cache_clear()


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    This ensures tests are isolated and don't affect each other.
    """
    Base.metadata.create_all(bind=engine)
    _reset_singletons()

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        _reset_singletons()


@pytest.fixture(scope="function")
def client(db_session):
    """
    Create a test client with database dependency overridden.
    Startup seeds the default traffic sources.
    """
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {ADMIN_KEY}"}


@pytest.fixture
def queue(db_session):
    """The in-memory queue the app publishes to."""
    return get_queue()


@pytest.fixture
def seeded_sources(db_session):
    TrackingService(db_session).seed_default_sources()
    return {source.name: source for source in db_session.query(TrafficSource).all()}


@pytest.fixture
def make_organization(db_session):
    def _make(name="Acme Agency", api_key=None):
        organization = Organization(name=name, api_key=api_key or new_uuid())
        db_session.add(organization)
        db_session.commit()
        db_session.refresh(organization)
        return organization
    return _make


@pytest.fixture
def make_model(db_session):
    def _make(name="Luna Star", slug=None, organization=None, **fields):
        model = Model(
            name=name,
            slug=slug or name.lower().replace(" ", "-"),
            organization_id=organization.id if organization else None,
            **fields,
        )
        db_session.add(model)
        db_session.commit()
        db_session.refresh(model)
        return model
    return _make


@pytest.fixture
def make_link(db_session):
    def _make(model=None, slug="c1", source=None, organization=None, **fields):
        link = TrackingLink(
            model_id=model.id if model else None,
            organization_id=organization.id if organization else (
                model.organization_id if model else None
            ),
            source_id=source.id if source else None,
            slug=slug,
            **fields,
        )
        db_session.add(link)
        db_session.commit()
        db_session.refresh(link)
        return link
    return _make


@pytest.fixture
def worker(queue):
    """Event worker bound to the test database; interval refresh disabled."""
    return AnalyticsEventWorker(
        queue=queue, db_session_factory=TestingSessionLocal, refresh_interval=0
    )


@pytest.fixture
def drain_events(db_session, worker):
    """Run the worker until the queue is empty, then expire cached rows."""
    def _drain():
        db_session.commit()
        stored = asyncio.run(worker.drain())
        db_session.expire_all()
        return stored
    return _drain
