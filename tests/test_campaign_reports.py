import os

import pytest
from fastapi.testclient import TestClient

import community
import directory
import settings
import store
from conftest import STRONG_PASSWORD, login, query_param
from constants import CampaignReportStatus, Role
from errors import PermissionDeniedError, ValidationError
from main import app

client = TestClient(app)

REPORT = {
    "address": "Parque Kennedy s/n",
    "social_link": "https://www.facebook.com/municipalidad/posts/123",
    "department": "Lima",
    "province": "Lima",
    "district": "Miraflores",
}


def _report(user, **overrides):
    data = dict(REPORT, **overrides)
    return directory.create_campaign_report(user, **data)


def test_report_campaign_through_form(make_user):
    user = make_user()
    login(client, user.email, STRONG_PASSWORD)
    assert client.get("/campaigns/report").status_code == 200

    r = client.post("/campaigns/report", data=REPORT, files={"image": ("afiche.png", b"png-bytes", "image/png")},
                    follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"].startswith("/campaigns")
    [report] = store.campaign_reports
    assert report.user_email == user.email
    assert report.status == CampaignReportStatus.PENDING
    assert report.image_url.startswith("/static/uploads/")
    assert store.campaigns == []


def test_report_form_requires_login():
    client.get("/logout")
    r = client.get("/campaigns/report", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"].startswith("/login")


@pytest.mark.parametrize("link", [
    "https://facebook.com/eventos/1",
    "www.instagram.com/p/abc",
    "http://fb.com/x",
    "instagr.am/p/xyz",
])
def test_social_link_accepts_facebook_and_instagram(make_user, link):
    assert _report(make_user(), social_link=link).social_link == link


@pytest.mark.parametrize("overrides, message", [
    ({"address": "  "}, "La dirección de la campaña es obligatoria."),
    ({"social_link": ""}, "El link de Facebook o Instagram es obligatorio."),
    ({"social_link": "https://twitter.com/post/1"}, "Por favor, ingresa un link válido de Facebook o Instagram."),
    ({"social_link": "https://facebook.com/"}, "Por favor, ingresa un link válido de Facebook o Instagram."),
    ({"department": ""}, "Por favor, selecciona un departamento."),
    ({"district": ""}, "Por favor, selecciona un distrito."),
])
def test_report_validation(make_user, overrides, message):
    with pytest.raises(ValidationError) as exc:
        _report(make_user(), **overrides)
    assert exc.value.message == message
    assert store.campaign_reports == []


def test_invalid_report_does_not_store_upload(make_user):
    user = make_user()
    login(client, user.email, STRONG_PASSWORD)
    before = set(os.listdir(settings.UPLOAD_DIR))

    data = dict(REPORT, social_link="https://example.com/campaña")
    r = client.post("/campaigns/report", data=data, files={"image": ("afiche.png", b"png-bytes", "image/png")},
                    follow_redirects=False)
    assert query_param(r, "error") == "Por favor, ingresa un link válido de Facebook o Instagram."
    assert set(os.listdir(settings.UPLOAD_DIR)) == before
    assert store.campaign_reports == []


def test_approve_creates_campaign_and_notifies_reporter(make_user):
    reporter = make_user()
    staff = make_user(role=Role.MODERATOR)
    report = _report(reporter, image_url="/static/uploads/afiche.png")

    campaign = directory.approve_campaign_report(staff, report.id, "Esterilización", campaign_date="2030-03-01")
    assert store.campaigns == [campaign]
    assert campaign.title == "Campaña de esterilización en Miraflores"
    assert campaign.location == "Parque Kennedy s/n, Miraflores, Lima, Lima"
    assert REPORT["social_link"] in campaign.description
    assert campaign.image_urls == ["/static/uploads/afiche.png"]
    assert campaign.date == "2030-03-01"
    assert campaign.user_email == staff.email

    assert report.status == CampaignReportStatus.APPROVED
    assert report.campaign_id == campaign.id
    assert report.updated_at is not None
    [n] = community.notifications_for(reporter)
    assert n.link == f"/campaigns/{campaign.id}"

    with pytest.raises(ValidationError):
        directory.approve_campaign_report(staff, report.id, "Adopción")
    assert len(store.campaigns) == 1


def test_reject_marks_report_and_notifies(make_user):
    reporter = make_user()
    staff = make_user(role=Role.ADMIN)
    report = _report(reporter)

    directory.reject_campaign_report(staff, report.id)
    assert report.status == CampaignReportStatus.REJECTED
    assert store.campaigns == []
    [n] = community.notifications_for(reporter)
    assert "Miraflores" in n.message

    with pytest.raises(ValidationError):
        directory.reject_campaign_report(staff, report.id)


def test_review_is_staff_only(make_user):
    reporter = make_user()
    report = _report(reporter)
    with pytest.raises(PermissionDeniedError):
        directory.list_campaign_reports(reporter)
    with pytest.raises(PermissionDeniedError):
        directory.approve_campaign_report(reporter, report.id, "Adopción")
    with pytest.raises(PermissionDeniedError):
        directory.delete_campaign_report(reporter, report.id)

    staff = make_user(role=Role.MODERATOR)
    with pytest.raises(ValidationError):
        directory.approve_campaign_report(staff, report.id, "Rifa")
    assert report.status == CampaignReportStatus.PENDING


def test_admin_queue_filters_and_actions(make_user):
    reporter = make_user()
    first = _report(reporter, district="Surco")
    second = _report(reporter, district="Barranco")
    staff = make_user(role=Role.MODERATOR)
    directory.reject_campaign_report(staff, first.id)

    assert directory.list_campaign_reports(staff, CampaignReportStatus.PENDING) == [second]
    assert {r.id for r in directory.list_campaign_reports(staff)} == {first.id, second.id}

    login(client, staff.email, STRONG_PASSWORD)
    page = client.get("/admin/campaign-reports")
    assert page.status_code == 200
    assert "Barranco" in page.text

    r = client.post(f"/admin/campaign-reports/{second.id}/approve", data={"type": "Adopción", "title": "Adopta en Barranco"},
                    follow_redirects=False)
    assert r.status_code == 303
    [campaign] = store.campaigns
    assert r.headers["location"].startswith(f"/campaigns/{campaign.id}")
    assert campaign.title == "Adopta en Barranco"

    r = client.post(f"/admin/campaign-reports/{first.id}/delete", follow_redirects=False)
    assert r.status_code == 303
    assert store.find_campaign_report(first.id) is None


def test_admin_queue_rejects_regular_users(make_user):
    user = make_user()
    login(client, user.email, STRONG_PASSWORD)
    r = client.get("/admin/campaign-reports", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"].startswith("/login")
