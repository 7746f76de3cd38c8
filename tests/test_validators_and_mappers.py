from datetime import date
from uuid import uuid4

import pytest

import mappers
import validators
from errors import ValidationError
from schemas import Comment, CommentLike


def test_email_is_normalised():
    assert validators.validate_email("  Ana@Correo.PE ") == "ana@correo.pe"
    with pytest.raises(ValidationError):
        validators.validate_email("ana@correo")


@pytest.mark.parametrize("dni", ["1234567", "123456789", "1234567a", ""])
def test_bad_dni(dni):
    with pytest.raises(ValidationError):
        validators.validate_dni(dni)


def test_phone_must_be_peruvian_mobile():
    assert validators.validate_phone(" 987654321 ") == "987654321"
    with pytest.raises(ValidationError):
        validators.validate_phone("887654321")
    with pytest.raises(ValidationError):
        validators.validate_phone("98765432")


def test_age_uses_year_difference():
    today = date(2026, 10, 17)
    assert validators.validate_age("2013-12-31", today=today) == date(2013, 12, 31)
    with pytest.raises(ValidationError):
        validators.validate_age("2014-01-01", today=today)
    with pytest.raises(ValidationError):
        validators.validate_age("31/12/2000", today=today)


def test_password_strength():
    assert validators.password_strength("") == 0
    assert validators.password_strength("abcdefgh") == 1
    assert validators.password_strength("Abcdefg1!") == 4
    validators.validate_new_password("Patitas123", "Patitas123")
    with pytest.raises(ValidationError):
        validators.validate_new_password("patitas", "patitas")
    with pytest.raises(ValidationError):
        validators.validate_new_password("Patitas123", "Patitas124")


def test_rating_and_coordinates():
    assert validators.validate_rating("4") == 4
    with pytest.raises(ValidationError):
        validators.validate_rating("cinco")
    assert validators.validate_coordinates(None, None) == (None, None)
    with pytest.raises(ValidationError):
        validators.validate_coordinates(-12.1, None)
    with pytest.raises(ValidationError):
        validators.validate_coordinates(-12.1, 200)


def test_case_conversion():
    assert mappers.to_camel("share_contact_info") == "shareContactInfo"
    assert mappers.to_snake("shareContactInfo") == "share_contact_info"
    assert mappers.snakeize({"imageUrls": []}) == {"image_urls": []}


def test_pet_mapping_from_raw_row():
    pet_id = uuid4()
    row = {
        "id": str(pet_id),
        "user_id": "u1",
        "status": "Perdido",
        "animal_type": "Gato",
        "image_urls": None,
        "profiles": {"email": "duena@maspatas.pe"},
    }
    comment = Comment(id=uuid4(), pet_id=pet_id, user_id=uuid4(), user_email="a@b.pe", user_name="a",
                      text="Lo vi", created_at="2026-10-01T10:00:00+00:00")
    like = CommentLike(comment_id=comment.id, user_id=uuid4())

    view = mappers.map_pet_from_db(row, comments=[comment], likes=[like])
    assert view["userEmail"] == "duena@maspatas.pe"
    assert view["imageUrls"] == []
    assert view["comments"][0]["likes"] == [str(like.user_id)]
    assert mappers.map_pet_from_db(dict(row, profiles=None))["userEmail"] == "unknown"


def test_user_mapping_drops_password():
    view = mappers.map_user_from_db({"id": "u1", "email": "a@b.pe", "password": "hash", "role": None})
    assert "password" not in view
    assert view["role"] == "User"
    assert view["status"] == "Activo"


def test_report_mapping_uses_created_at_as_timestamp():
    view = mappers.map_report_from_db({
        "id": "r1",
        "reporter_email": "ana@maspatas.pe",
        "reported_email": "beto@maspatas.pe",
        "type": "post",
        "target_id": "p1",
        "reason": "Spam o publicidad",
        "status": "Pendiente",
        "created_at": "2026-10-01T10:00:00+00:00",
        "post_snapshot": {"name": "Firulais"},
    })
    assert view["timestamp"] == "2026-10-01T10:00:00+00:00"
    assert view["reporterEmail"] == "ana@maspatas.pe"
    assert view["targetId"] == "p1"
    assert view["postSnapshot"] == {"name": "Firulais"}
    assert view["details"] is None
