"""
Pytest configuration and fixtures.
Each test gets a fresh in-memory SQLite schema; the Redis word count cache is
cleared around every test so cached counts never leak between databases.
"""
import fnmatch
import os

# Keep app.main from connecting to PostgreSQL at import time
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from app.database import Base, get_db
from app.indexing import reindex_decision
from app.main import app
from app.redis_client import RedisClient, get_redis_client

# Use in-memory SQLite for testing
SQLALCHEMY_DATABASE_URL = "sqlite://"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def clean_word_cache():
    """Clear cached word counts before and after each test."""
    client = get_redis_client()
    client.clear_word_counts()
    yield
    client.clear_word_counts()


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    """Create a test client with a test database."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def index_text(db_session):
    """Index a text under a decision id and return the ingest counts."""
    def _index(text, decision_id=1):
        return reindex_decision(db_session, decision_id, text)
    return _index


@pytest.fixture
def statement_counter():
    """Count SQL statements executed on the test engine."""
    statements = []

    def _record(conn, cursor, statement, parameters, context, executemany):
        statements.append(statement)

    event.listen(engine, "before_cursor_execute", _record)
    yield statements
    event.remove(engine, "before_cursor_execute", _record)


class InMemoryRedis:
    """Dict-backed double for the Redis commands the word count cache issues."""

    def __init__(self):
        self.hashes = {}

    def ping(self):
        return True

    def hgetall(self, key):
        return dict(self.hashes.get(key, {}))

    def hset(self, key, mapping):
        self.hashes.setdefault(key, {}).update({k: str(v) for k, v in mapping.items()})

    def expire(self, key, seconds):
        return key in self.hashes

    def delete(self, *keys):
        for key in keys:
            self.hashes.pop(key, None)

    def scan_iter(self, match="*"):
        return [key for key in list(self.hashes) if fnmatch.fnmatchcase(key, match)]

    def pipeline(self, transaction=True):
        return InMemoryPipeline(self)


class InMemoryPipeline:
    """Queues commands and applies them together on execute()."""

    def __init__(self, server):
        self.server = server
        self.commands = []

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            self.commands.append((name, args, kwargs))
            return self
        return queue

    def execute(self):
        results = [getattr(self.server, name)(*args, **kwargs) for name, args, kwargs in self.commands]
        self.commands = []
        return results


@pytest.fixture
def memory_word_cache(monkeypatch):
    """A word count cache backed by InMemoryRedis, used by indexing and queries."""
    cache = RedisClient()
    cache.client = InMemoryRedis()
    monkeypatch.setattr("app.indexing.get_redis_client", lambda: cache)
    monkeypatch.setattr("app.services.get_redis_client", lambda: cache)
    return cache
