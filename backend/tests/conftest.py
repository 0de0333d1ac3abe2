"""
Configuration partagée pour tous les tests.
Override les dépendances get_db, get_storage et get_current_user pour éviter
toute connexion réelle à PostgreSQL, S3 ou toute vérification de jeton.
"""

import uuid
from datetime import datetime
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from app.database import get_db
from app.dependencies import get_current_user
from app.main import app
from app.schemas.auth import CurrentUser
from app.services.storage_service import get_storage


@pytest.fixture
def db():
    """Session SQLAlchemy mockée."""
    return MagicMock()


@pytest.fixture
def storage():
    """Service S3 mocké."""
    s = MagicMock()
    s.bucket = "test-bucket"
    return s


@pytest.fixture
def client(db, storage):
    """Client HTTP de test avec la BDD et S3 mockés."""
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_storage] = lambda: storage
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def instructor():
    return CurrentUser(id=uuid.uuid4(), role="instructor")


@pytest.fixture
def student():
    return CurrentUser(id=uuid.uuid4(), role="student")


@pytest.fixture
def login_as():
    """Authentifie les requêtes suivantes avec l'utilisateur donné."""
    def _login(user: CurrentUser) -> CurrentUser:
        app.dependency_overrides[get_current_user] = lambda: user
        return user
    return _login


def _refresh(obj):
    if getattr(obj, "id", None) is None:
        obj.id = uuid.uuid4()
    for field in ("created_at", "updated_at"):
        if hasattr(type(obj), field) and getattr(obj, field, None) is None:
            setattr(obj, field, datetime.now())


@pytest.fixture
def fake_refresh():
    """Simule db.refresh : renseigne id et horodatages générés par PostgreSQL."""
    return _refresh
