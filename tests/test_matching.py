from types import SimpleNamespace

import pytest

import matching
import settings
from constants import PetStatus
from errors import ExternalServiceError


def test_target_statuses():
    assert matching.target_statuses(PetStatus.PERDIDO) == [PetStatus.ENCONTRADO, PetStatus.AVISTADO]
    assert matching.target_statuses(PetStatus.AVISTADO) == [PetStatus.PERDIDO]
    assert matching.target_statuses(PetStatus.EN_ADOPCION) == []


def test_cosine_similarity():
    assert matching.cosine_similarity([1, 0], [1, 0]) == pytest.approx(1.0)
    assert matching.cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
    assert matching.cosine_similarity([1, 2], [1, 2, 3]) == 0.0
    assert matching.cosine_similarity([0, 0], [1, 1]) == 0.0


def test_fuzzy_fallback_without_embeddings(make_user, make_pet):
    lost = make_pet(make_user(), breed="Labrador", color="Negro")
    found = make_pet(make_user(), status="Encontrado", breed="labrador", color="negro")
    make_pet(make_user(), status="Encontrado", breed="Chihuahua", color="Marrón")
    make_pet(make_user(), status="Encontrado", animal_type="Gato", breed="Labrador", color="Negro")

    [match] = matching.find_matching_pets(lost)
    assert match.pet.id == found.id
    assert match.score == 100
    assert match.explanation == "Coincidencia de raza y color del 100%."


def test_embedding_matches_rank_by_similarity(make_user, make_pet):
    lost = make_pet(make_user())
    close = make_pet(make_user(), status="Avistado")
    closer = make_pet(make_user(), status="Encontrado")
    unrelated = make_pet(make_user(), status="Encontrado")
    close.embedding = [0.9, 0.3, 0.0]
    closer.embedding = [1.0, 0.05, 0.0]
    unrelated.embedding = [0.0, 0.0, 1.0]

    matches = matching.find_matching_pets(lost, embedding=[1.0, 0.0, 0.0])
    assert [m.pet.id for m in matches] == [closer.id, close.id]
    assert matches[0].score == 100
    assert "similitud" in matches[0].explanation


def test_match_pets_honours_threshold_and_count(make_user, make_pet):
    user = make_user()
    for i in range(4):
        make_pet(user, status="Encontrado").embedding = [1.0, i * 0.1]
    rows = matching.match_pets([1.0, 0.0], threshold=0.99, count=2, status="Encontrado", animal_type="Perro")
    assert len(rows) == 2
    assert rows[0][1] >= rows[1][1] >= 0.99


def test_no_key_helpers_degrade_gracefully():
    assert settings.GEMINI_API_KEY == ""
    assert matching.generate_embedding("Perro Labrador Negro") == []
    assert matching.generate_pet_description("Perro", "Pug", "Beige") == "Perro de raza Pug y color Beige."
    with pytest.raises(ExternalServiceError):
        matching.analyze_pet_image(b"\x89PNG")


def test_analyze_image_parses_model_json(monkeypatch):
    response = SimpleNamespace(text='{"animalType": "Gato", "breed": "Siamés", "colors": ["Crema", "Marrón", "Negro", "Blanco"], "description": "Gato siamés"}')
    fake = SimpleNamespace(models=SimpleNamespace(generate_content=lambda **kwargs: response))
    monkeypatch.setattr(matching, "_client", lambda: fake)

    result = matching.analyze_pet_image(b"fake-bytes", "image/png")
    assert result == {
        "animal_type": "Gato",
        "breed": "Siamés",
        "colors": ["Crema", "Marrón", "Negro"],
        "description": "Gato siamés",
    }


def test_embedding_uses_first_vector(monkeypatch):
    result = SimpleNamespace(embeddings=[SimpleNamespace(values=[0.1, 0.2])])
    fake = SimpleNamespace(models=SimpleNamespace(embed_content=lambda **kwargs: result))
    monkeypatch.setattr(matching, "_client", lambda: fake)
    assert matching.generate_embedding("texto") == [0.1, 0.2]


def test_fuzzy_fallback_is_capped_at_match_count(make_user, make_pet, monkeypatch):
    monkeypatch.setattr(settings, "MATCH_COUNT", 2)
    lost = make_pet(make_user(), breed="Labrador", color="Negro")
    for _ in range(4):
        make_pet(make_user(), status="Encontrado", breed="Labrador", color="Negro")

    matches = matching.find_matching_pets(lost)
    assert len(matches) == 2
    assert all(isinstance(m.score, int) for m in matches)
