"""Test configuration and fixtures."""

from pathlib import Path
from typing import Generator, List, Optional

import pytest
from sqlalchemy.orm import Session, sessionmaker

from compliance_posture.db import audit_models, models  # noqa: F401
from compliance_posture.db.base import Base, create_db_engine
from compliance_posture.db.models import FrameworkModel
from compliance_posture.engine.catalog import FrameworkCatalog
from compliance_posture.storage import FileObjectStore


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    """Create a fresh in-memory database for each test."""
    engine = create_db_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine)()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def object_store(tmp_path: Path) -> FileObjectStore:
    """Evidence store rooted in the test's temporary directory."""
    return FileObjectStore(tmp_path / "evidence-store")


def make_framework(
    db: Session,
    key: str = "ISO27001",
    refs: Optional[List[str]] = None,
    embeddings: Optional[dict] = None,
    name: Optional[str] = None,
) -> FrameworkModel:
    """Load a framework with the given control references."""
    refs = refs if refs is not None else [f"A.5.{i}" for i in range(1, 11)]
    embeddings = embeddings or {}
    return FrameworkCatalog(db).load(
        {
            "key": key,
            "name": name or f"{key} test framework",
            "controls": [
                {
                    "control_ref": ref,
                    "control_name": f"Control {ref}",
                    "control_text": f"Requirement text for {ref}",
                    "embedding": embeddings.get(ref),
                }
                for ref in refs
            ],
        }
    )


@pytest.fixture
def iso_framework(db_session) -> FrameworkModel:
    """ISO27001 with ten controls A.5.1 .. A.5.10 and no embeddings."""
    return make_framework(db_session)


@pytest.fixture
def framework_factory(db_session):
    """Callable loading a framework into the test database."""

    def factory(**kwargs) -> FrameworkModel:
        return make_framework(db_session, **kwargs)

    return factory
