from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

import accounts
import admin
import community
import directory
import store
from conftest import ADMIN_EMAIL, ADMIN_PASSWORD, STRONG_PASSWORD, login, query_param
from constants import Role, UserStatus
from errors import PermissionDeniedError, ValidationError
from main import app

client = TestClient(app)


def _superadmin():
    return store.find_user_by_email(ADMIN_EMAIL)


def test_admin_stats_totals_and_chart_lengths(make_user, make_pet):
    owner = make_user()
    now = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)
    make_pet(owner, now=now)
    make_pet(owner, now=now - timedelta(days=3), status="Encontrado", animal_type="Gato")
    make_pet(owner, now=now - timedelta(days=90), status="Avistado")

    week = admin.admin_stats("7d", now=now)
    assert len(week["chartData"]) == 7
    assert sum(point["value"] for point in week["chartData"]) == 2
    assert week["chartData"][-1]["value"] == 1

    assert len(admin.admin_stats("30d", now=now)["chartData"]) == 30
    year = admin.admin_stats("1y", now=now)
    assert len(year["chartData"]) == 12
    assert sum(point["value"] for point in year["chartData"]) == 3

    assert year["totalPets"] == 3
    assert year["petsByStatus"] == {"lost": 1, "found": 1, "sighted": 1}
    assert year["petsByType"] == {"dogs": 2, "cats": 1, "other": 0}
    with pytest.raises(ValidationError):
        admin.admin_stats("2w", now=now)


def test_non_staff_is_redirected_from_admin_pages(make_user):
    user = make_user()
    login(client, user.email, STRONG_PASSWORD)
    for path in ["/admin/dashboard", "/admin/users", "/admin/settings", "/admin/exports"]:
        r = client.get(path, follow_redirects=False)
        assert r.status_code == 303
        assert r.headers["location"].startswith("/login")


def test_moderator_sees_dashboard_but_not_user_admin(make_user):
    moderator = make_user(role=Role.MODERATOR)
    login(client, moderator.email, STRONG_PASSWORD)
    assert client.get("/admin/dashboard?range=30d").status_code == 200
    assert client.get("/admin/users", follow_redirects=False).status_code == 303


def test_roles_are_changed_only_by_superadmin(make_user):
    superadmin = _superadmin()
    plain_admin = make_user(role=Role.ADMIN)
    target = make_user()

    accounts.set_role(superadmin, target.id, Role.MODERATOR)
    assert target.role == Role.MODERATOR
    with pytest.raises(PermissionDeniedError):
        accounts.set_role(plain_admin, target.id, Role.USER)
    with pytest.raises(PermissionDeniedError):
        accounts.set_role(superadmin, superadmin.id, Role.USER)
    with pytest.raises(ValidationError):
        accounts.set_role(superadmin, target.id, "Rey")


def test_deactivated_user_loses_session(make_user):
    target = make_user()
    login(client, target.email, STRONG_PASSWORD)
    assert client.get("/profile").status_code == 200

    accounts.set_status(_superadmin(), target.id, UserStatus.INACTIVE)
    r = client.get("/profile", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"].startswith("/login")

    r = login(client, target.email, STRONG_PASSWORD)
    assert query_param(r, "error") == "Tu cuenta está inactiva. Contacta a soporte."
    with pytest.raises(PermissionDeniedError):
        accounts.set_status(make_user(role=Role.ADMIN), _superadmin().id, UserStatus.INACTIVE)


def test_delete_user_cascades(make_user, make_pet):
    target = make_user()
    other = make_user()
    pet = make_pet(target)
    community.add_comment(other, pet.id, "¿Dónde fue?")
    community.rate_user(other, target.id, 5)
    community.notify(target.id, "hola")

    login(client, ADMIN_EMAIL, ADMIN_PASSWORD)
    r = client.post(f"/admin/users/{target.id}/delete", follow_redirects=False)
    assert r.status_code == 303
    assert store.find_user(target.id) is None
    assert store.pets == []
    assert store.comments == []
    assert store.ratings == []
    assert store.notifications == []

    with pytest.raises(PermissionDeniedError):
        accounts.delete_user(make_user(role=Role.ADMIN), other.id)


def test_delete_user_removes_comments_likes_and_business(make_user, make_pet):
    target = make_user()
    other = make_user()
    other_pet = make_pet(other)
    own_comment = community.add_comment(target, other_pet.id, "La vi ayer")
    reply = community.add_comment(other, other_pet.id, "¿Dónde?", parent_id=own_comment.id)
    kept = community.add_comment(other, other_pet.id, "Sigue perdido")
    community.toggle_comment_like(target, kept.id)
    community.toggle_comment_like(other, own_comment.id)
    business = directory.create_business(target, {"name": "Vet Sol", "type": "Veterinaria"})
    directory.add_product(target, business.id, "Collar", price=20)
    report = directory.create_campaign_report(target, "Parque Kennedy", "https://facebook.com/evento/1",
                                              "Lima", "Lima", "Miraflores")

    accounts.delete_user(store.find_user_by_email(ADMIN_EMAIL), target.id)

    assert [c.id for c in store.comments] == [kept.id]
    assert store.find_comment(reply.id) is None
    assert store.comment_likes == []
    assert store.businesses == []
    assert store.business_products == []
    assert store.find_pet(other_pet.id) is other_pet
    assert report.user_id is None


def test_ghosting_round_trip(make_user):
    target = make_user()
    login(client, ADMIN_EMAIL, ADMIN_PASSWORD)
    r = client.post(f"/admin/users/{target.id}/ghost", follow_redirects=False)
    assert r.status_code == 303

    page = client.get("/profile")
    assert target.display_name in page.text
    assert "Volver a mi cuenta" in page.text
    # The ghosted session has the target's permissions
    assert client.get("/admin/users", follow_redirects=False).status_code == 303

    r = client.post("/admin/stop-ghost", follow_redirects=False)
    assert r.headers["location"] == "/admin/users"
    assert client.get("/admin/users").status_code == 200


def test_ghosting_requires_superadmin(make_user):
    with pytest.raises(PermissionDeniedError):
        accounts.start_ghosting(make_user(role=Role.ADMIN), make_user().id)


def test_banned_ip_cannot_log_in(make_user):
    superadmin = _superadmin()
    entry = admin.ban_ip(superadmin, " 203.0.113.7 ", "spam")
    assert entry.ip_address == "203.0.113.7"
    with pytest.raises(ValidationError):
        admin.ban_ip(superadmin, "203.0.113.7")
    with pytest.raises(ValidationError):
        admin.ban_ip(superadmin, "no-es-una-ip")

    user = make_user()
    with pytest.raises(PermissionDeniedError):
        accounts.authenticate(user.email, STRONG_PASSWORD, "203.0.113.7")

    admin.unban_ip(superadmin, entry.id)
    assert accounts.authenticate(user.email, STRONG_PASSWORD, "203.0.113.7").id == user.id


def test_banned_ips_page():
    login(client, ADMIN_EMAIL, ADMIN_PASSWORD)
    client.post("/admin/banned-ips", data={"ip_address": "2001:db8::1", "reason": "bots"})
    page = client.get("/admin/banned-ips")
    assert "2001:db8::1" in page.text

    r = client.post("/admin/banned-ips", data={"ip_address": "999.1.1.1"}, follow_redirects=False)
    assert query_param(r, "error") == "Dirección IP inválida."


def test_platform_settings():
    login(client, ADMIN_EMAIL, ADMIN_PASSWORD)
    r = client.post("/admin/settings", data={
        "location_alerts_enabled": "true",
        "location_alert_radius_km": "3.5",
        "location_alert_rate_limit_minutes": "15",
    }, follow_redirects=False)
    assert r.status_code == 303
    cfg = store.platform_settings
    assert cfg.location_alerts_enabled is True
    assert cfg.location_alert_radius_km == 3.5
    assert cfg.location_alert_rate_limit_minutes == 15

    with pytest.raises(ValidationError):
        admin.update_platform_settings(_superadmin(), True, 0, 15)
    with pytest.raises(ValidationError):
        admin.update_platform_settings(_superadmin(), True, 2, -1)
