import pytest
import requests
from fastapi.testclient import TestClient

import geocoding
from errors import ExternalServiceError, ValidationError
from main import app

client = TestClient(app)


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")

    def json(self):
        return self.payload


@pytest.fixture
def nominatim(monkeypatch):
    calls = []

    def install(payload, status_code=200):
        def fake_get(url, params=None, headers=None, timeout=None):
            calls.append({"url": url, "params": params, "headers": headers})
            return FakeResponse(payload, status_code)
        monkeypatch.setattr(geocoding.requests, "get", fake_get)
        return calls

    return install


def test_search_maps_results_and_skips_malformed(nominatim):
    calls = nominatim([
        {"display_name": "Parque Kennedy, Miraflores", "lat": "-12.1211", "lon": "-77.0297"},
        {"display_name": "Sin coordenadas"},
        {"display_name": "Coordenadas rotas", "lat": "abc", "lon": "-77"},
    ])
    results = geocoding.search("parque kennedy")
    assert results == [{"display_name": "Parque Kennedy, Miraflores", "lat": -12.1211, "lng": -77.0297}]
    assert calls[0]["url"].endswith("/search")
    assert calls[0]["params"]["countrycodes"] == "pe"
    assert calls[0]["headers"]["User-Agent"]


def test_blank_query_does_not_call_service(nominatim):
    calls = nominatim([])
    assert geocoding.search("   ") == []
    assert calls == []


def test_reverse_maps_address_parts(nominatim):
    nominatim({
        "display_name": "Avenida Larco 123, Miraflores, Lima",
        "address": {"road": "Avenida Larco", "house_number": "123", "suburb": "Miraflores",
                    "city": "Lima", "state": "Lima", "region": "Lima"},
    })
    place = geocoding.reverse(-12.12, -77.03)
    assert place["department"] == "Lima"
    assert place["city"] == "Lima"
    assert place["district"] == "Miraflores"
    assert place["address"] == "Avenida Larco 123"


def test_reverse_rejects_bad_coordinates(nominatim):
    nominatim({})
    with pytest.raises(ValidationError):
        geocoding.reverse(120, -77)


def test_service_errors_surface_as_external_error(monkeypatch):
    def boom(*args, **kwargs):
        raise requests.ConnectionError("sin red")
    monkeypatch.setattr(geocoding.requests, "get", boom)
    with pytest.raises(ExternalServiceError):
        geocoding.search("Lima")

    r = client.get("/api/geocode/search", params={"q": "Lima"})
    assert r.status_code == 502
    assert r.json() == {"detail": geocoding.GEOCODING_ERROR}


def test_http_error_status(nominatim):
    nominatim({}, status_code=503)
    r = client.get("/api/geocode/reverse", params={"lat": -12.1, "lng": -77.0})
    assert r.status_code == 502


def test_error_object_from_search_yields_no_results(nominatim):
    nominatim({"error": "Unable to geocode"})
    assert geocoding.search("Lima") == []
    assert client.get("/api/geocode/search", params={"q": "Lima"}).json() == []
