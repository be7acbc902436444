from pathlib import Path
from fastapi import status

from conftest import auth, create_pet

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def _photo(name="luna.png"):
    return ("photos", (name, PNG, "image/png"))


def test_create_pet_json(client, owner):
    pet = create_pet(client, owner[0], medications=["vitamins"], vet_info={"name": "Dr. Vet"})
    assert pet["owner_id"] == owner[1]["id"]
    assert pet["is_active"] is True
    assert pet["photos"] == []
    assert pet["gender"] == "unknown"
    assert pet["vet_info"]["name"] == "Dr. Vet"


def test_create_pet_multipart_with_photos(client, owner, settings):
    response = client.post(
        "/pets",
        data={"name": "Luna", "species": "dog", "age": "4", "weight": "", "vaccinated": "true",
              "allergies": "pollen,chicken"},
        files=[_photo("a.png"), _photo("b.png")],
        headers=auth(owner[0]),
    )
    assert response.status_code == status.HTTP_201_CREATED, response.text
    pet = response.json()["data"]["pet"]
    assert pet["age"] == 4
    assert pet["weight"] is None
    assert pet["vaccinated"] is True
    assert pet["allergies"] == ["pollen", "chicken"]
    assert len(pet["photos"]) == 2
    assert all(url.startswith("/media/pets/pets-") for url in pet["photos"])

    # Los ficheros se sirven desde /media
    assert client.get(pet["photos"][0]).status_code == 200


def test_create_pet_validation(client, owner):
    response = client.post("/pets", json={"name": "", "species": "dragon"}, headers=auth(owner[0]))
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    fields = {e["field"] for e in response.json()["errors"]}
    assert {"name", "species"} <= fields


def test_non_image_upload_is_rejected(client, owner):
    response = client.post(
        "/pets",
        data={"name": "Luna", "species": "dog"},
        files=[("photos", ("notes.txt", b"hello", "text/plain"))],
        headers=auth(owner[0]),
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_list_and_get_pets(client, owner):
    create_pet(client, owner[0], name="First")
    second = create_pet(client, owner[0], name="Second")
    response = client.get("/pets", headers=auth(owner[0]))
    body = response.json()
    assert body["results"] == 2
    assert {p["name"] for p in body["data"]["pets"]} == {"First", "Second"}

    response = client.get(f"/pets/{second['id']}", headers=auth(owner[0]))
    assert response.json()["data"]["pet"]["name"] == "Second"


def test_malformed_id_is_not_found(client, owner):
    assert client.get("/pets/123", headers=auth(owner[0])).status_code == status.HTTP_404_NOT_FOUND


def test_update_pet_partial(client, owner):
    pet = create_pet(client, owner[0])
    response = client.put(f"/pets/{pet['id']}", json={"age": 5}, headers=auth(owner[0]))
    assert response.status_code == 200
    updated = response.json()["data"]["pet"]
    assert updated["age"] == 5
    assert updated["name"] == pet["name"]
    assert updated["owner_id"] == owner[1]["id"]


def test_update_appends_or_replaces_photos(client, owner, settings):
    headers = auth(owner[0])
    pet = client.post("/pets", data={"name": "Luna", "species": "dog"}, files=[_photo()],
                      headers=headers).json()["data"]["pet"]
    first = pet["photos"][0]

    response = client.put(f"/pets/{pet['id']}", data={"color": "brown"}, files=[_photo()], headers=headers)
    photos = response.json()["data"]["pet"]["photos"]
    assert len(photos) == 2
    assert photos[0] == first

    response = client.put(f"/pets/{pet['id']}", data={"replace_photos": "true"}, files=[_photo()],
                          headers=headers)
    photos = response.json()["data"]["pet"]["photos"]
    assert len(photos) == 1
    assert first not in photos
    # El fichero reemplazado se borra del disco
    assert client.get(first).status_code == 404


def test_delete_photo_by_index(client, owner):
    headers = auth(owner[0])
    pet = client.post("/pets", data={"name": "Luna", "species": "dog"}, files=[_photo(), _photo()],
                      headers=headers).json()["data"]["pet"]
    keep, drop = pet["photos"]

    response = client.delete(f"/pets/{pet['id']}/photos/5", headers=headers)
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["message"] == "Invalid photo index"

    response = client.delete(f"/pets/{pet['id']}/photos/1", headers=headers)
    assert response.status_code == 200
    assert response.json()["data"]["pet"]["photos"] == [keep]
    assert client.get(drop).status_code == 404


def test_soft_delete_is_idempotent(client, owner):
    pet = create_pet(client, owner[0])
    headers = auth(owner[0])
    assert client.delete(f"/pets/{pet['id']}", headers=headers).status_code == 200
    assert client.delete(f"/pets/{pet['id']}", headers=headers).status_code == 200
    assert client.get(f"/pets/{pet['id']}", headers=headers).status_code == status.HTTP_404_NOT_FOUND
    assert client.get("/pets", headers=headers).json()["results"] == 0


def test_pet_stats(client, owner):
    create_pet(client, owner[0], name="A", species="dog", age=2)
    create_pet(client, owner[0], name="B", species="dog", age=4)
    create_pet(client, owner[0], name="C", species="cat", age=1)
    stats = client.get("/pets/stats", headers=auth(owner[0])).json()["data"]
    assert stats["total_pets"] == 3
    assert stats["species_breakdown"][0] == {"species": "dog", "count": 2, "avg_age": 3.0}


def test_me_counts_active_pets(client, owner):
    create_pet(client, owner[0])
    assert client.get("/auth/me", headers=auth(owner[0])).json()["data"]["pet_count"] == 1


def _stored_files(settings, folder="pets"):
    directory = Path(settings.media_dir) / folder
    return sorted(p.name for p in directory.iterdir()) if directory.exists() else []


def test_too_many_photos_are_rejected(client, owner, settings):
    response = client.post(
        "/pets",
        data={"name": "Luna", "species": "dog"},
        files=[_photo(f"{i}.png") for i in range(settings.max_upload_files + 1)],
        headers=auth(owner[0]),
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert "Maximum 5 photos" in response.json()["message"]
    assert _stored_files(settings) == []
    assert client.get("/pets", headers=auth(owner[0])).json()["results"] == 0


def test_oversized_photo_rolls_back_the_batch(client, owner, settings):
    big = b"\x00" * (settings.max_upload_bytes + 1)
    response = client.post(
        "/pets",
        data={"name": "Luna", "species": "dog"},
        files=[_photo("small.png"), ("photos", ("big.png", big, "image/png"))],
        headers=auth(owner[0]),
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["message"] == "File too large. Maximum size is 1MB."
    assert _stored_files(settings) == []
    assert client.get("/pets", headers=auth(owner[0])).json()["results"] == 0


def test_non_finite_numbers_are_treated_as_absent(client, owner):
    response = client.post("/pets", data={"name": "Luna", "species": "dog", "age": "inf", "weight": "1e400"},
                           headers=auth(owner[0]))
    assert response.status_code == status.HTTP_201_CREATED
    pet = response.json()["data"]["pet"]
    assert pet["age"] is None
    assert pet["weight"] is None

    response = client.post("/pets", content=b'{"name": "Rex", "species": "dog", "age": 1e400}',
                           headers={**auth(owner[0]), "Content-Type": "application/json"})
    assert response.status_code == status.HTTP_201_CREATED
    assert response.json()["data"]["pet"]["age"] is None


def test_pets_are_paginated(client, owner):
    for name in ("A", "B", "C"):
        create_pet(client, owner[0], name=name)
    body = client.get("/pets", params={"limit": 2}, headers=auth(owner[0])).json()
    assert body["results"] == 2
    assert body["pagination"] == {"page": 1, "limit": 2, "pages": 2, "total": 3}
