import os

# avant tout import de l'app: les settings sont lus une fois (lru_cache)
os.environ["APP_ENV"] = "test"
os.environ["APP_NAME"] = "Flashcards Content API (tests)"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["API_KEY"] = "change_me"
os.environ["CORS_ORIGINS"] = "http://localhost"

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import get_settings
from app.db.database import Base, get_db, make_engine
from app.db.models import User, UserGroup
from app.main import create_app

API_KEY = "change_me"


@pytest.fixture()
def engine():
    """
    Base SQLite en mémoire, une seule connexion partagée (StaticPool)
    pour que la session de test et celles de l'app voient les mêmes tables.
    """
    from app.db import models  # noqa: F401

    eng = make_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=True, expire_on_commit=False)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def seed(db):
    author = User(email="author@example.com", username="author")
    other = User(email="other@example.com", username="other")
    admin = User(email="admin@example.com", username="admin", is_admin=True)
    group = UserGroup(name="Promo 2026", description="L1 droit")
    db.add_all([author, other, admin, group])
    db.commit()
    return SimpleNamespace(author=author, other=other, admin=admin, group=group)


@pytest.fixture()
def test_client(session_factory, seed):
    get_settings.cache_clear()

    def _get_db():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()

    app = create_app(create_tables=False)
    app.dependency_overrides[get_db] = _get_db
    return TestClient(app)


@pytest.fixture()
def headers():
    """En-têtes d'un appel authentifié, par défaut en tant qu'auteur."""
    def _headers(email: str = "author@example.com") -> dict:
        return {"x-api-key": API_KEY, "x-user-email": email}
    return _headers
