"""
Potential-match search and AI helpers backed by Gemini.

Reports are embedded from their descriptive text; matches are the stored
reports of the complementary status with the highest cosine similarity.
Without an embedding (no API key, API failure, legacy rows) the search falls
back to fuzzy breed/colour scoring.
"""
import json
import math
from typing import Any, Dict, List, Optional, Sequence

from google import genai
from google.genai import types
from loguru import logger
from rapidfuzz import fuzz

import settings
import store
from constants import AnimalType, PetStatus
from errors import ExternalServiceError
from schemas import Pet, PotentialMatch

IMAGE_ANALYSIS_ERROR = "No se pudo analizar la imagen. Por favor, completa los datos manualmente."

PET_COLORS = [
    "Negro", "Blanco", "Marrón", "Gris", "Dorado", "Crema", "Atigrado",
    "Naranja", "Manchado", "Tricolor", "Carey", "Beige",
]

DESCRIPTION_PROMPT = """Genera una descripción breve y amigable para un anuncio de mascota perdida o encontrada. La descripción debe ser en español.

Detalles de la mascota:
- Tipo: {animal_type}
- Raza: {breed}
- Color: {color}

Incluye estas características de forma clara en la descripción. No incluyas información de contacto ni ubicación. Mantén la descripción por debajo de 50 palabras."""

IMAGE_PROMPT = """Analyze this image of a pet and extract the following details in JSON format:
1. animalType: Must be one of "Perro", "Gato", or "Otro".
2. breed: The most likely breed.
3. colors: An array of up to 3 colors that best match the pet from this specific list: {colors}.
4. description: A very short visual description (max 20 words) in Spanish."""

IMAGE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "animalType": {"type": "STRING", "enum": AnimalType.ALL},
        "breed": {"type": "STRING"},
        "colors": {"type": "ARRAY", "items": {"type": "STRING"}},
        "description": {"type": "STRING"},
    },
    "required": ["animalType", "breed", "colors"],
}


def _client() -> Optional[genai.Client]:
    if not settings.GEMINI_API_KEY:
        return None
    return genai.Client(api_key=settings.GEMINI_API_KEY)


def build_embedding_text(pet: Pet) -> str:
    return " ".join(str(part or "") for part in (pet.animal_type, pet.breed, pet.color, pet.description)).strip()


def generate_embedding(text: str) -> List[float]:
    """Embed ``text``; an empty list means no embedding is available."""
    client = _client()
    if client is None or not text:
        return []
    try:
        result = client.models.embed_content(model=settings.EMBEDDING_MODEL, contents=text)
    except Exception as e:
        logger.warning(f"Embedding request failed: {e}")
        return []
    if not result.embeddings or not result.embeddings[0].values:
        logger.warning("Embedding response had no values")
        return []
    return [float(v) for v in result.embeddings[0].values]


def target_statuses(status: str) -> List[str]:
    """A lost pet is matched against found/sighted reports and vice versa."""
    if status == PetStatus.PERDIDO:
        return [PetStatus.ENCONTRADO, PetStatus.AVISTADO]
    if status in (PetStatus.ENCONTRADO, PetStatus.AVISTADO):
        return [PetStatus.PERDIDO]
    return []


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


def match_pets(embedding: Sequence[float], threshold: float, count: int, status: str, animal_type: str):
    """Return up to ``count`` (pet, similarity) pairs at or above ``threshold``, best first."""
    scored = []
    for p in store.pets:
        if p.status != status or p.animal_type != animal_type or not p.embedding or p.is_expired():
            continue
        similarity = cosine_similarity(embedding, p.embedding)
        if similarity >= threshold:
            scored.append((p, similarity))
    scored.sort(key=lambda item: item[1], reverse=True)
    return scored[:count]


def fuzzy_score(a: Optional[str], b: Optional[str]) -> int:
    a, b = (a or "").lower(), (b or "").lower()
    if not a or not b:
        return 0
    return int(fuzz.token_sort_ratio(a, b))


def _fuzzy_matches(pet: Pet, statuses: List[str]) -> List[PotentialMatch]:
    matches = []
    for c in store.pets:
        if store.same_id(c.id, pet.id) or c.status not in statuses or c.animal_type != pet.animal_type or c.is_expired():
            continue
        bscore = fuzzy_score(pet.breed, c.breed)
        cscore = fuzzy_score(pet.color, c.color)
        score = round(max(bscore, cscore, (bscore + cscore) / 2))
        if score >= settings.FUZZY_MATCH_MIN_SCORE:
            matches.append(PotentialMatch(
                pet=c,
                score=score,
                explanation=f"Coincidencia de raza y color del {score}%.",
            ))
    matches.sort(key=lambda m: m.score, reverse=True)
    return matches[:settings.MATCH_COUNT]


def find_matching_pets(pet: Pet, embedding: Optional[List[float]] = None) -> List[PotentialMatch]:
    statuses = target_statuses(pet.status)
    if not statuses:
        return []

    if embedding is None:
        embedding = pet.embedding or generate_embedding(build_embedding_text(pet))

    if not embedding:
        matches = _fuzzy_matches(pet, statuses)
    else:
        matches = []
        for status in statuses:
            for candidate, similarity in match_pets(
                embedding, settings.MATCH_THRESHOLD, settings.MATCH_COUNT, status, pet.animal_type
            ):
                if store.same_id(candidate.id, pet.id):
                    continue
                score = round(similarity * 100)
                matches.append(PotentialMatch(
                    pet=candidate,
                    score=score,
                    explanation=f"Esta mascota tiene un {score}% de similitud visual y descriptiva.",
                ))
    matches.sort(key=lambda m: m.score, reverse=True)
    return matches


def fallback_description(animal_type: str, breed: str, color: str) -> str:
    return f"{animal_type} de raza {breed} y color {color}."


def generate_pet_description(animal_type: str, breed: str, color: str) -> str:
    client = _client()
    if client is None:
        return fallback_description(animal_type, breed, color)
    try:
        response = client.models.generate_content(
            model=settings.GENERATION_MODEL,
            contents=DESCRIPTION_PROMPT.format(animal_type=animal_type, breed=breed, color=color),
        )
    except Exception as e:
        logger.warning(f"Description generation failed: {e}")
        return fallback_description(animal_type, breed, color)
    return (response.text or "").strip() or fallback_description(animal_type, breed, color)


def analyze_pet_image(image_bytes: bytes, mime_type: str = "image/jpeg") -> Dict[str, Any]:
    client = _client()
    if client is None or not image_bytes:
        raise ExternalServiceError(IMAGE_ANALYSIS_ERROR)
    try:
        response = client.models.generate_content(
            model=settings.GENERATION_MODEL,
            contents=[
                types.Part.from_bytes(data=image_bytes, mime_type=mime_type),
                IMAGE_PROMPT.format(colors=", ".join(PET_COLORS)),
            ],
            config={
                "response_mime_type": "application/json",
                "response_schema": IMAGE_SCHEMA,
            },
        )
        result = json.loads(response.text or "{}")
    except Exception as e:
        logger.error(f"Image analysis failed: {e}")
        raise ExternalServiceError(IMAGE_ANALYSIS_ERROR) from e

    return {
        "animal_type": result.get("animalType") or AnimalType.OTRO,
        "breed": result.get("breed") or "Mestizo",
        "colors": list(result.get("colors") or [])[:3],
        "description": result.get("description"),
    }
