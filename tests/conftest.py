"""
Configuración de pytest para tests.

Cada test recibe una app nueva con MongoDB en memoria (mongomock-motor) y
un directorio de media temporal, así que no hace falta un MongoDB real.
"""
from datetime import timedelta
import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from petcare.config import Settings
from petcare.main import create_app
from petcare.utils import utcnow


@pytest.fixture
def settings(tmp_path):
    return Settings(
        db_name="petcare_test",
        jwt_secret="test-secret",
        media_dir=str(tmp_path / "media"),
        max_upload_bytes=1024 * 1024,
    )


@pytest.fixture
def app(settings):
    app = create_app(settings, mongo_client=AsyncMongoMockClient())
    # Sin rate limiting en tests
    app.state.limiter = None
    return app


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def register(client, name="Test User", email="owner@example.com", role="owner", password="password123"):
    r = client.post("/auth/register", json={
        "name": name,
        "email": email,
        "password": password,
        "role": role,
    })
    assert r.status_code == 201, r.text
    body = r.json()
    return body["token"], body["data"]["user"]


@pytest.fixture
def owner(client):
    return register(client, "Olivia Owner", "owner@example.com", "owner")


@pytest.fixture
def other_owner(client):
    return register(client, "Oscar Owner", "other@example.com", "owner")


@pytest.fixture
def sitter(client):
    return register(client, "Sam Sitter", "sitter@example.com", "sitter")


def create_pet(client, token, **overrides):
    payload = {"name": "Luna", "species": "dog", "breed": "Beagle", "age": 3, "weight": 12.5}
    payload.update(overrides)
    r = client.post("/pets", json=payload, headers=auth(token))
    assert r.status_code == 201, r.text
    return r.json()["data"]["pet"]


def create_service(client, token, **overrides):
    payload = {
        "title": "Dog walking in the park",
        "description": "Long walks for energetic dogs",
        "service_type": "dog_walking",
        "price": 10,
        "price_type": "hourly",
        "duration": 60,
        "pet_types": ["dog"],
        "location": {"address": "1 Main St", "city": "Springfield", "state": "IL", "zip_code": "62701"},
    }
    payload.update(overrides)
    r = client.post("/services/my", json=payload, headers=auth(token))
    assert r.status_code == 201, r.text
    return r.json()["data"]["service"]


def slot(hours_from_now: float, duration: timedelta):
    start = utcnow() + timedelta(hours=hours_from_now)
    return start.isoformat(), (start + duration).isoformat()


def create_booking(client, token, service_id, pet_id, hours_from_now=72, duration=timedelta(minutes=90)):
    start, end = slot(hours_from_now, duration)
    return client.post("/bookings", json={
        "service_id": service_id,
        "pet_id": pet_id,
        "start_date": start,
        "end_date": end,
    }, headers=auth(token))
