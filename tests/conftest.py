import os
import sys
import tempfile
from pathlib import Path

# ensure project root is importable for tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Point state, exports and uploads at a throwaway dir before settings is imported,
# and keep the AI helpers offline.
_TMP = tempfile.mkdtemp(prefix="maspatas-tests-")
os.environ["MASPATAS_DATA_DIR"] = os.path.join(_TMP, "data")
os.environ["MASPATAS_UPLOAD_DIR"] = os.path.join(_TMP, "uploads")
os.environ["GEMINI_API_KEY"] = ""
os.environ.pop("ENABLE_SCHEDULER", None)

import pytest
from urllib.parse import parse_qs, urlsplit

ADMIN_EMAIL = "admin@maspatas.pe"
ADMIN_PASSWORD = "admin"
USER_EMAIL = "user@maspatas.pe"
USER_PASSWORD = "user"
STRONG_PASSWORD = "Patitas123"


@pytest.fixture(autouse=True)
def isolate_state():
    """Start every test from empty tables plus the seeded demo accounts."""
    import accounts
    import main
    import store

    store.reset()
    accounts.ensure_seed_users()
    original_max_age = main.SESSION_MAX_AGE

    yield

    main.SESSION_MAX_AGE = original_max_age
    store.reset()


@pytest.fixture
def make_user():
    """Factory for registered users with a completed profile."""
    import accounts
    from constants import Role

    counter = {"n": 0}

    def _make(email=None, role=Role.USER, complete=True, password=STRONG_PASSWORD):
        counter["n"] += 1
        n = counter["n"]
        email = email or f"vecino{n}@maspatas.pe"
        user = accounts.register_user(email, password, password)
        if complete:
            accounts.complete_profile(
                user,
                username=f"vecino{n}",
                first_name="Ana",
                last_name="Quispe",
                dni=f"4{n:07d}",
                phone=f"9{n:08d}",
                birth_date="1990-05-10",
                country="Perú",
            )
        user.role = role
        return user

    return _make


def login(client, email, password):
    return client.post("/login", data={"username": email, "password": password}, follow_redirects=False)


@pytest.fixture
def make_pet():
    """Factory for pet reports filed through the normal creation path."""
    import pets

    def _make(user, now=None, **overrides):
        data = {
            "status": "Perdido",
            "animal_type": "Perro",
            "name": "Firulais",
            "breed": "Labrador",
            "color": "Negro",
            "location": "Miraflores, Lima, Lima",
        }
        data.update(overrides)
        return pets.create_pet(user, data, now=now)

    return _make


def query_param(response, name):
    """Decoded query parameter from a redirect's Location header."""
    location = response.headers.get("location", "")
    return parse_qs(urlsplit(location).query).get(name, [""])[0]
