import pytest
from fastapi import status

from conftest import auth, create_pet, create_service, register
from petcare.errors import Forbidden
from petcare.schemas.user import Role
from petcare.security import authorize, authorize_ownership, has_role

OWNER = {"id": "a" * 24, "role": "owner"}
SITTER = {"id": "b" * 24, "role": "sitter"}


def test_authorize_accepts_matching_role():
    authorize(OWNER, (Role.owner,))
    authorize(SITTER, (Role.owner, Role.sitter))


def test_owner_on_sitter_action_gets_specific_message():
    with pytest.raises(Forbidden) as exc:
        authorize(OWNER, (Role.sitter,))
    assert exc.value.detail.startswith("Only pet sitters can perform this action")
    assert exc.value.extra == {"user_role": "owner", "required_roles": ["sitter"]}


def test_sitter_on_owner_action_gets_specific_message():
    with pytest.raises(Forbidden) as exc:
        authorize(SITTER, (Role.owner,))
    assert exc.value.detail.startswith("Only pet owners can perform this action")


def test_authorize_ownership():
    authorize_ownership(OWNER, {"owner_id": OWNER["id"]})
    authorize_ownership(SITTER, {"sitter_id": SITTER["id"]}, "sitter_id")
    with pytest.raises(Forbidden):
        authorize_ownership(SITTER, {"owner_id": OWNER["id"]})


def test_has_role():
    assert has_role(OWNER, Role.owner)
    assert not has_role(OWNER, Role.sitter)
    assert not has_role(None, Role.owner)


def test_sitter_cannot_manage_pets(client, sitter):
    response = client.get("/pets", headers=auth(sitter[0]))
    assert response.status_code == status.HTTP_403_FORBIDDEN
    body = response.json()
    assert body["user_role"] == "sitter"
    assert body["required_roles"] == ["owner"]


def test_owner_cannot_create_services(client, owner):
    response = client.post("/services/my", json={"title": "Nope"}, headers=auth(owner[0]))
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert "Pet owners cannot create or manage services" in response.json()["message"]


def test_anonymous_requests_are_rejected(client):
    assert client.get("/pets").status_code == status.HTTP_401_UNAUTHORIZED
    assert client.get("/bookings").status_code == status.HTTP_401_UNAUTHORIZED
    assert client.get("/services/my/services").status_code == status.HTTP_401_UNAUTHORIZED


def test_pet_of_another_owner_is_not_found(client, owner, other_owner):
    pet = create_pet(client, owner[0])
    headers = auth(other_owner[0])
    assert client.get(f"/pets/{pet['id']}", headers=headers).status_code == status.HTTP_404_NOT_FOUND
    assert client.put(f"/pets/{pet['id']}", json={"name": "Mine"}, headers=headers).status_code == 404
    assert client.delete(f"/pets/{pet['id']}", headers=headers).status_code == 404


def test_service_of_another_sitter_cannot_be_managed(client, sitter):
    service = create_service(client, sitter[0])
    other_token, _ = register(client, "Other Sitter", "sitter2@example.com", "sitter")
    response = client.put(f"/services/{service['id']}/manage", json={"price": 1}, headers=auth(other_token))
    assert response.status_code == status.HTTP_404_NOT_FOUND
