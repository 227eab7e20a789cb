"""
Shared pytest fixtures for docwiki tests.
Every test gets its own SQLite file under tmp_path.
"""
import os
import sys

import pytest

# Ensure docwiki package is importable
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from fastapi.testclient import TestClient

from docwiki.comments.store import CommentStore
from docwiki.config import DatabaseConfig, DocwikiConfig, LoggingConfig
from docwiki.events import EventStore
from docwiki.pages.store import PageStore
from docwiki.users.store import UserStore


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "docwiki.db"


@pytest.fixture
def events(db_path):
    return EventStore(db_path)


@pytest.fixture
def pages(db_path, events):
    return PageStore(db_path, events=events)


@pytest.fixture
def comments(db_path, events):
    return CommentStore(db_path, events=events)


@pytest.fixture
def users(db_path):
    return UserStore(db_path)


@pytest.fixture
def cfg(db_path):
    return DocwikiConfig(
        database=DatabaseConfig(path=str(db_path)),
        logging=LoggingConfig(level="WARNING", json_format=False),
    )


@pytest.fixture
def client(cfg):
    """TestClient on a fresh app bound to the per-test database."""
    from docwiki.server import create_app

    with TestClient(create_app(cfg), headers={"X-User-ID": "u-alice", "X-Workspace-ID": "w-1"}) as c:
        yield c
