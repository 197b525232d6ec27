import pytest
from sqlmodel import create_engine
from sqlmodel.pool import StaticPool

import geostream.database as database
import geostream.services.usage as usage


@pytest.fixture
def memory_engine(monkeypatch):
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    monkeypatch.setattr(database, "engine", engine)
    monkeypatch.setattr(usage, "_usage_initialized", False)
    database.init_db()
    return engine
