import os

# Base SQLite en mémoire pour les tests, jamais la base configurée en .env
os.environ["DATABASE_URL"] = "sqlite://"

from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from backoffice.app.api.deps import get_db  # noqa: E402
from backoffice.app.db.base import Base  # noqa: E402
from backoffice.app.db.models import models_v1  # noqa: F401,E402
from backoffice.app.db.session import SessionLocal, engine  # noqa: E402
from backoffice.services.products import create_product  # noqa: E402


@pytest.fixture(scope="function")
def db_session() -> Session:
    """
    Session DB isolée par test.

    Schéma neuf en mémoire (StaticPool : une seule connexion partagée),
    détruit à la fin du test. Les services peuvent commit() librement.
    """

    Base.metadata.create_all(bind=engine)
    session = SessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def make_product(db_session):
    def _make(name: str, unit: str, quantity="0", unit_price=None, **kwargs):
        return create_product(
            db_session,
            name=name,
            unit=unit,
            quantity=Decimal(quantity),
            unit_price=Decimal(unit_price) if unit_price is not None else None,
            **kwargs,
        )

    return _make


@pytest.fixture
def client(db_session):
    from backoffice.app.main import app

    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
