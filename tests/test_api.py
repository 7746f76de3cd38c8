from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient

import community
import directory
from conftest import ADMIN_EMAIL, ADMIN_PASSWORD, STRONG_PASSWORD, login
from constants import Role
from main import app

client = TestClient(app)


def test_dashboard_mode_returns_every_status(make_user, make_pet):
    owner = make_user()
    make_pet(owner)
    make_pet(owner, status="Encontrado")
    make_pet(owner, now=datetime.now(timezone.utc) - timedelta(days=61), name="Viejito")

    body = client.get("/api/pets").json()
    assert body["total"] == 2
    assert body["nextCursor"] is None
    assert {p["status"] for p in body["data"]} == {"Perdido", "Encontrado"}
    assert all(p["name"] != "Viejito" for p in body["data"])


def test_paginated_listing(make_user, make_pet):
    owner = make_user()
    for name in ["Uno", "Dos", "Tres"]:
        make_pet(owner, name=name)
    make_pet(owner, status="Encontrado")

    first = client.get("/api/pets", params={"status": "Perdido", "page_size": 2}).json()
    assert first["total"] == 3
    assert len(first["data"]) == 2
    assert first["nextCursor"] == 1

    last = client.get("/api/pets", params={"status": "Perdido", "page_size": 2, "page": 1}).json()
    assert len(last["data"]) == 1
    assert last["nextCursor"] is None


def test_pet_view_shape(make_user, make_pet):
    owner = make_user()
    pet = make_pet(owner, reward=100, currency="S/")
    community.add_comment(make_user(), pet.id, "Lo vi ayer")

    view = client.get(f"/api/pets/{pet.id}").json()
    assert view["userEmail"] == owner.email
    assert view["animalType"] == "Perro"
    assert view["reward"] == 100
    assert [c["text"] for c in view["comments"]] == ["Lo vi ayer"]

    r = client.get("/api/pets/no-existe")
    assert r.status_code == 404
    assert r.json() == {"detail": "Publicación no encontrada."}


def test_matches_endpoint(make_user, make_pet):
    lost = make_pet(make_user())
    found = make_pet(make_user(), status="Encontrado")
    [match] = client.get(f"/api/pets/{lost.id}/matches").json()
    assert match["pet"]["id"] == str(found.id)
    assert match["score"] == 100
    assert match["explanation"]


def test_map_endpoints(make_user, make_pet):
    owner = make_user()
    pinned = make_pet(owner, lat=-12.12, lng=-77.03, image_urls=["/static/uploads/a.jpg"])
    make_pet(owner)
    staff = make_user(role=Role.ADMIN)
    directory.create_campaign(staff, {"type": "Adopción", "title": "Feria", "lat": -12.1, "lng": -77.0})
    directory.create_business(owner, {"name": "Vet Sol", "type": "Veterinaria", "lat": -12.2, "lng": -77.1})

    [pin] = client.get("/api/map/pets").json()
    assert pin["id"] == str(pinned.id)
    assert pin["imageUrl"] == "/static/uploads/a.jpg"
    assert pin["url"] == f"/pets/{pinned.id}"

    [campaign] = client.get("/api/map/campaigns").json()
    assert campaign["title"] == "Feria"
    [business] = client.get("/api/map/businesses").json()
    assert business["name"] == "Vet Sol"
    assert business["url"].startswith("/businesses/")


def test_gamification_endpoints(make_user, make_pet):
    owner = make_user()
    make_pet(owner)
    [row] = client.get("/api/leaderboard").json()
    assert row["username"] == owner.display_name
    assert row["rank"] == 1

    summary = client.get(f"/api/users/{owner.id}/gamification").json()
    assert summary["points"] == 15
    assert summary["level"]["name"] == "Chihuahua"
    assert summary["history"][0]["actionType"] == "report_pet"


def test_ai_helpers_need_login_and_fall_back(make_user):
    client.get("/logout")
    assert client.post("/api/ai/describe", data={"animal_type": "Gato"}).status_code == 401

    login(client, make_user().email, STRONG_PASSWORD)
    r = client.post("/api/ai/describe", data={"animal_type": "Gato", "breed": "Siamés", "color": "Crema"})
    assert r.json() == {"description": "Gato de raza Siamés y color Crema."}

    r = client.post("/api/ai/analyze-image", files={"image": ("gato.jpg", b"\xff\xd8fake", "image/jpeg")})
    assert r.status_code == 502


def test_map_page_loads_leaflet(make_user, make_pet):
    make_pet(make_user(), lat=-12.12, lng=-77.03)
    page = client.get("/map")
    assert page.status_code == 200
    assert "leaflet" in page.text
    assert 'id="map"' in page.text


def test_pet_detail_shows_map_when_located(make_user, make_pet):
    pet = make_pet(make_user(), lat=-12.12, lng=-77.03)
    page = client.get(f"/pets/{pet.id}")
    assert "Map requires JavaScript" in page.text
    assert f"/api/pets/{pet.id}/matches" in page.text


def test_admin_dashboard_links_exports():
    login(client, ADMIN_EMAIL, ADMIN_PASSWORD)
    page = client.get("/admin/dashboard")
    assert page.status_code == 200
    assert "/admin/export/pets.csv" in page.text
    assert "/admin/export/pets.pdf" in page.text


def test_pagination_parameters_are_bounded():
    for params in [{"page_size": 0}, {"page_size": -3}, {"page_size": 500}, {"page": -1}]:
        r = client.get("/api/pets", params=dict(params, status="Perdido"))
        assert r.status_code == 422
