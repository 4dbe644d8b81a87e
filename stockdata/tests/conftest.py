import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from stockdata.database import Base
from stockdata import models  # noqa: F401  (registers tables on Base.metadata)


@pytest.fixture
def session_factory():
    """In-memory SQLite shared across threads, schema created."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def seed(session_factory):
    """seed(*orm_rows) -> inserts and commits the rows."""

    def _seed(*rows):
        with session_factory() as db:
            db.add_all(rows)
            db.commit()

    return _seed
