"""
Shared fixtures: a SQLite database file and local object storage in a temp dir.

Environment is set before the application modules are imported so that
config picks it up.
"""
import os
import shutil
import tempfile

_TMP_DIR = tempfile.mkdtemp(prefix="learnhub-test-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["STORAGE_BACKEND"] = "local"
os.environ["UPLOADS_DIR"] = os.path.join(_TMP_DIR, "uploads")
os.environ["LOG_FILE"] = os.path.join(_TMP_DIR, "logs", "test.log")
os.environ["PUBLIC_BASE_URL"] = "http://testserver"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["RATE_LIMIT_PER_MINUTE"] = "100000"
os.environ["RATE_LIMIT_PER_HOUR"] = "1000000"
os.environ["SEED_DEFAULT_CATEGORIES"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

import config  # noqa: E402
from app import app  # noqa: E402
from database.models import AppRole  # noqa: E402
from services.auth_service import AuthService  # noqa: E402
from services.role_service import RoleService  # noqa: E402

PASSWORD = "Passw0rd!"
PDF_BYTES = b"%PDF-1.4\n1 0 obj << /Type /Catalog >> endobj\ntrailer << >>\n%%EOF\n"


@pytest.fixture(scope="session")
def client():
    with TestClient(app) as test_client:
        yield test_client
    shutil.rmtree(_TMP_DIR, ignore_errors=True)


@pytest.fixture(autouse=True)
def clean_state(client):
    """Fresh tables and an empty bucket for every test."""
    config.db.drop_tables()
    config.db.create_tables()
    shutil.rmtree(config.storage.root, ignore_errors=True)
    config.storage.root.mkdir(parents=True, exist_ok=True)
    yield


@pytest.fixture
def db(clean_state):
    with config.db.get_session() as session:
        yield session


@pytest.fixture
def storage(client):
    return config.storage


@pytest.fixture
def make_user(db):
    """
    Create a principal holding exactly ``roles`` (student when none given).
    """
    counter = {"n": 0}

    def _make(*roles, email=None, full_name=None):
        counter["n"] += 1
        email = email or f"user{counter['n']}@school.edu"
        user = AuthService.sign_up(db, email=email, password=PASSWORD, full_name=full_name or email.split("@")[0])
        wanted = set(roles) or {AppRole.STUDENT}
        for role in wanted:
            RoleService.grant(db, user.id, role)
        if AppRole.STUDENT not in wanted:
            RoleService.revoke(db, user.id, AppRole.STUDENT)
        return user
    return _make


@pytest.fixture
def login(client):
    """Sign in through the API and return bearer headers."""
    def _login(user_or_email, password=PASSWORD):
        email = getattr(user_or_email, "email", user_or_email)
        response = client.post("/api/auth/login", json={"email": email, "password": password})
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['access_token']}"}
    return _login


@pytest.fixture
def upload(client):
    """Upload a resource through the API."""
    def _upload(headers, title="Algebra Basics", data=PDF_BYTES, filename="algebra.pdf",
                content_type="application/pdf", **fields):
        form = {"title": title}
        form.update({k: v for k, v in fields.items() if v is not None})
        return client.post(
            "/api/resources",
            headers=headers,
            data=form,
            files={"file": (filename, data, content_type)},
        )
    return _upload
