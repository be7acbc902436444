"""
Tests para endpoints de autenticación
"""
from datetime import timedelta
from fastapi import status
from fastapi.testclient import TestClient
from jose import jwt
from mongomock_motor import AsyncMongoMockClient

from conftest import auth, register
from petcare.main import create_app
from petcare.security import ALGO
from petcare.utils import utcnow


def test_register_success(client):
    """Registro correcto: 201 con token y sin exponer la contraseña"""
    response = client.post("/auth/register", json={
        "name": "Test User",
        "email": "NewUser@Example.com",
        "password": "password123",
        "role": "owner",
    })
    assert response.status_code == status.HTTP_201_CREATED
    body = response.json()
    assert body["status"] == "success"
    assert body["token"]
    user = body["data"]["user"]
    assert user["email"] == "newuser@example.com"
    assert user["role"] == "owner"
    assert "password" not in user
    assert "password_hash" not in user


def test_register_duplicate_email_is_case_insensitive(client):
    register(client, email="duplicate@example.com")
    response = client.post("/auth/register", json={
        "name": "User 2",
        "email": "DUPLICATE@example.com",
        "password": "pass456",
        "role": "sitter",
    })
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["status"] == "fail"


def test_register_weak_password(client):
    response = client.post("/auth/register", json={
        "name": "Test User",
        "email": "weak@example.com",
        "password": "123",
        "role": "owner",
    })
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    body = response.json()
    assert body["message"] == "Validation failed"
    assert any(e["field"] == "password" for e in body["errors"])


def test_register_invalid_email(client):
    response = client.post("/auth/register", json={
        "name": "Test User",
        "email": "not-an-email",
        "password": "password123",
        "role": "owner",
    })
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_register_invalid_role_and_phone(client):
    response = client.post("/auth/register", json={
        "name": "Test User",
        "email": "role@example.com",
        "password": "password123",
        "role": "admin",
        "phone": "abc",
    })
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    fields = {e["field"] for e in response.json()["errors"]}
    assert {"role", "phone"} <= fields


def test_login_success_records_last_login(client):
    register(client, email="login@example.com")
    response = client.post("/auth/login", json={"email": "Login@example.com", "password": "password123"})
    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["token"]
    assert body["data"]["user"]["last_login"] is not None


def test_login_wrong_password(client):
    register(client, email="wrong@example.com")
    response = client.post("/auth/login", json={"email": "wrong@example.com", "password": "nope-nope"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_login_unknown_user(client):
    response = client.post("/auth/login", json={"email": "ghost@example.com", "password": "password123"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_me_requires_token(client):
    response = client.get("/auth/me")
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["status"] == "fail"


def test_me_with_garbage_token(client):
    response = client.get("/auth/me", headers=auth("not.a.token"))
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_me_with_expired_token(client, settings, owner):
    token = jwt.encode(
        {"sub": owner[1]["id"], "role": "owner", "exp": utcnow() - timedelta(hours=1)},
        settings.jwt_secret,
        algorithm=ALGO,
    )
    response = client.get("/auth/me", headers=auth(token))
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert "expired" in response.json()["message"]


def test_me_returns_profile_and_counts(client, owner):
    response = client.get("/auth/me", headers=auth(owner[0]))
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["user"]["email"] == "owner@example.com"
    assert data["pet_count"] == 0


def test_update_me_whitelist(client, owner):
    response = client.put("/auth/me", json={"bio": "Dog lover", "role": "sitter", "email": "x@y.com"},
                          headers=auth(owner[0]))
    assert response.status_code == 200
    user = response.json()["data"]["user"]
    assert user["bio"] == "Dog lover"
    assert user["role"] == "owner"
    assert user["email"] == "owner@example.com"


def test_update_me_rejects_password(client, owner):
    response = client.put("/auth/me", json={"password": "newpassword"}, headers=auth(owner[0]))
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert "/auth/updatePassword" in response.json()["message"]


def test_update_password(client, owner):
    response = client.put("/auth/updatePassword", json={
        "current_password": "wrong-one",
        "new_password": "brandnew123",
    }, headers=auth(owner[0]))
    assert response.status_code == status.HTTP_401_UNAUTHORIZED

    response = client.put("/auth/updatePassword", json={
        "current_password": "password123",
        "new_password": "brandnew123",
    }, headers=auth(owner[0]))
    assert response.status_code == 200
    assert response.json()["token"]

    response = client.post("/auth/login", json={"email": "owner@example.com", "password": "brandnew123"})
    assert response.status_code == 200


def test_deactivate_and_reactivate(client, owner):
    token = owner[0]
    assert client.delete("/auth/me", headers=auth(token)).status_code == status.HTTP_204_NO_CONTENT

    # El token sigue siendo válido pero la cuenta no
    response = client.get("/auth/me", headers=auth(token))
    assert response.status_code == status.HTTP_401_UNAUTHORIZED

    response = client.post("/auth/login", json={"email": "owner@example.com", "password": "password123"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED

    response = client.put("/auth/reactivate", json={"email": "owner@example.com", "password": "bad-password"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED

    response = client.put("/auth/reactivate", json={"email": "owner@example.com", "password": "password123"})
    assert response.status_code == 200
    new_token = response.json()["token"]
    assert client.get("/auth/me", headers=auth(new_token)).status_code == 200


def test_reactivate_active_account_is_not_found(client, owner):
    response = client.put("/auth/reactivate", json={"email": "owner@example.com", "password": "password123"})
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_forgot_password_and_logout(client):
    assert client.post("/auth/forgotPassword").status_code == 200
    assert client.post("/auth/logout").status_code == 200


def test_health(client):
    assert client.get("/health").json()["status"] == "ok"


def test_login_is_rate_limited(settings):
    """Con el limiter activo, el intento 11 dentro del minuto devuelve 429"""
    app = create_app(settings, mongo_client=AsyncMongoMockClient())
    with TestClient(app) as c:
        codes = [
            c.post("/auth/login", json={"email": "ghost@example.com", "password": "password123"}).status_code
            for _ in range(11)
        ]
        last = c.post("/auth/login", json={"email": "ghost@example.com", "password": "password123"})
    assert codes[:10] == [status.HTTP_401_UNAUTHORIZED] * 10
    assert codes[10] == status.HTTP_429_TOO_MANY_REQUESTS
    assert last.status_code == status.HTTP_429_TOO_MANY_REQUESTS
    assert last.json()["status"] == "fail"
    assert "10/minute" in last.json()["message"]
