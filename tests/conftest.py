import os
import sys
from pathlib import Path

import pytest

# Ensure project root is on sys.path for `import credit_oracle`
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Force SQLite for tests so nothing touches a configured Postgres
test_db_path = ROOT / "test_run.db"
if test_db_path.exists():
    test_db_path.unlink()

os.environ["DATABASE_URL"] = f"sqlite:///{test_db_path}"
os.environ.setdefault("AUTO_CREATE_TABLES", "1")

from credit_oracle.db.database import Base, create_session_factory, engine
import credit_oracle.models.models  # noqa: F401 ensures models are registered

Base.metadata.create_all(bind=engine)


@pytest.fixture
def session_factory(tmp_path):
    """Fresh SQLite database per test."""
    factory = create_session_factory(f"sqlite:///{tmp_path / 'oracle.db'}")
    Base.metadata.create_all(bind=factory.kw["bind"])
    yield factory
    factory.kw["bind"].dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()
