"""Pytest fixtures for the API tests.

The application runs against an in-memory mongomock client and stores
uploaded images under a temporary directory.
"""

import mongomock
import pytest
from fastapi.testclient import TestClient
from pydantic import SecretStr

from matziplog.config import Settings
from matziplog.main import API_PREFIX, create_app
from matziplog.storage import LocalImageStorage

DEFAULT_PASSWORD = "secret1"
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 64


@pytest.fixture
def api_settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        jwt_secret=SecretStr("test-jwt-secret-for-testing-only"),
        database_name="matziplog_test",
        bcrypt_rounds=4,
        upload_dir=str(tmp_path / "uploads"),
        public_base_url="http://testserver",
        front_origin="http://localhost:5173",
    )


@pytest.fixture
def mongo_client():
    return mongomock.MongoClient()


@pytest.fixture
def app(api_settings, mongo_client, tmp_path):
    storage = LocalImageStorage(str(tmp_path / "uploads"), "http://testserver")
    return create_app(settings=api_settings, mongo_client=mongo_client, storage=storage)


@pytest.fixture
def db(app):
    return app.state.db


@pytest.fixture
def test_client(app):
    with TestClient(app) as client:
        yield client


@pytest.fixture
def api():
    return API_PREFIX


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def register(test_client, api):
    def _register(email: str, password: str = DEFAULT_PASSWORD, **extra):
        body = {"email": email, "password": password, **extra}
        return test_client.post(f"{api}/auth/register", json=body)
    return _register


@pytest.fixture
def login(test_client, api):
    def _login(email: str, password: str = DEFAULT_PASSWORD):
        return test_client.post(f"{api}/auth/login", json={"email": email, "password": password})
    return _login


@pytest.fixture
def make_user(register, login):
    """Register and log in; returns (user dict, token)."""
    def _make_user(email: str, password: str = DEFAULT_PASSWORD, **extra):
        user = register(email, password, **extra).json()["user"]
        token = login(email, password).json()["token"]
        return user, token
    return _make_user


@pytest.fixture
def make_admin(register, login, db):
    def _make_admin(email: str = "admin@matzip.kr", password: str = DEFAULT_PASSWORD):
        user = register(email, password).json()["user"]
        db["user"].update_one({"email": email}, {"$set": {"role": "admin"}})
        token = login(email, password).json()["token"]
        return user, token
    return _make_admin


@pytest.fixture
def alice(make_user):
    return make_user("alice@matzip.kr", displayName="Alice")


@pytest.fixture
def bob(make_user):
    return make_user("bob@matzip.kr", displayName="Bob")


@pytest.fixture
def admin(make_admin):
    return make_admin()


@pytest.fixture
def create_photo(test_client, api):
    """Post a multipart photo record; extra keyword args become form fields."""
    def _create_photo(token: str, image=True, **fields):
        data = {"name": "Gimbap Heaven", "address": "Seoul, Mapo-gu 12", "rating": "4"}
        data.update({k: str(v) for k, v in fields.items()})
        files = {"image": ("dish.jpg", JPEG_BYTES, "image/jpeg")} if image else None
        return test_client.post(f"{api}/photos", headers=auth(token), data=data, files=files)
    return _create_photo
