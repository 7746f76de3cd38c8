"""
Pet reports: creation, edits, lifecycle changes and listing queries.

Reports stay visible for ``PET_EXPIRATION_DAYS`` after creation; renewing a
report restarts that window. Expired reports are hidden from listings and the
map but remain visible to their owner.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

import accounts
import alerts
import community
import gamification
import matching
import settings
import store
import validators
from constants import CURRENCIES, TODOS, AnimalType, PetStatus, Size
from errors import NotFoundError, PermissionDeniedError, ValidationError
from schemas import Pet, PetFilters, SavedSearch, UserAccount

EDITABLE_FIELDS = [
    "status", "name", "animal_type", "breed", "color", "size", "location", "date", "contact",
    "description", "image_urls", "adoption_requirements", "share_contact_info", "reward",
    "currency", "lat", "lng",
]


def _expiry(now: datetime) -> str:
    return (now + timedelta(days=settings.PET_EXPIRATION_DAYS)).isoformat()


def _validate(data: Dict[str, Any]):
    if "status" in data:
        validators.validate_choice(data["status"], PetStatus.ALL, "Estado")
    if "animal_type" in data:
        validators.validate_choice(data["animal_type"], AnimalType.ALL, "Tipo de animal")
    if data.get("size"):
        validators.validate_choice(data["size"], Size.ALL, "Tamaño")
    if data.get("currency"):
        validators.validate_choice(data["currency"], CURRENCIES, "Moneda")
    if data.get("reward") is not None and data["reward"] < 0:
        raise ValidationError("La recompensa no puede ser negativa.")
    if "lat" in data or "lng" in data:
        validators.validate_coordinates(data.get("lat"), data.get("lng"))


def get_pet(pet_id) -> Pet:
    pet = store.find_pet(pet_id)
    if not pet:
        raise NotFoundError("Publicación no encontrada.")
    return pet


def editable_pet(actor: Optional[UserAccount], pet_id) -> Pet:
    pet = get_pet(pet_id)
    if not accounts.can_modify(actor, pet.user_id):
        raise PermissionDeniedError("No tienes permiso para modificar esta publicación.")
    return pet


# --- Mutations ---
def create_pet(user: UserAccount, data: Dict[str, Any], now: Optional[datetime] = None) -> Pet:
    data = dict(data)
    create_alert = bool(data.pop("create_alert", False))
    for required in ("status", "animal_type"):
        if not data.get(required):
            raise ValidationError("Por favor, completa todos los campos obligatorios (*).")
    if data["status"] == PetStatus.REUNIDO:
        raise ValidationError("No se puede publicar una mascota como reunida.")
    _validate(data)

    now = now or datetime.now(timezone.utc)
    fields = {k: v for k, v in data.items() if k in EDITABLE_FIELDS and v is not None}
    pet = Pet(
        id=uuid4(),
        user_id=user.id,
        created_at=now.isoformat(),
        expires_at=_expiry(now),
        **fields,
    )
    pet.embedding = matching.generate_embedding(matching.build_embedding_text(pet))
    store.pets.append(pet)
    gamification.log_activity(user.id, gamification.ACTION_TYPES["REPORT_PET"],
                              gamification.POINTS_CONFIG["REPORT_PET"], {"pet_id": str(pet.id)})

    if create_alert and pet.status == PetStatus.PERDIDO:
        department = (pet.location or "").split(",")[-1].strip() or TODOS
        store.saved_searches.append(SavedSearch(
            id=uuid4(),
            user_id=user.id,
            name=f"Alerta: {pet.breed} ({pet.color})",
            filters={"status": TODOS, "type": pet.animal_type, "breed": pet.breed, "department": department},
            created_at=now.isoformat(),
        ))

    alerts.notify_saved_search_matches(pet)
    alerts.send_proximity_alerts(pet, now=now)
    store.audit(f"{user.email} reported {pet.status} {pet.animal_type} {pet.id}")
    store.save_state()
    return pet


def update_pet(actor: UserAccount, pet_id, changes: Dict[str, Any]) -> Pet:
    pet = editable_pet(actor, pet_id)
    changes = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS and v is not None}
    _validate(changes)
    for field, value in changes.items():
        setattr(pet, field, value)
    if {"animal_type", "breed", "color", "description"} & set(changes):
        pet.embedding = matching.generate_embedding(matching.build_embedding_text(pet))
    store.audit(f"{actor.email} updated pet {pet.id}")
    store.save_state()
    return pet


def delete_pet(actor: UserAccount, pet_id):
    pet = editable_pet(actor, pet_id)
    remove_pet(pet)
    store.audit(f"{actor.email} deleted pet {pet.id}")
    store.save_state()
    return pet


def remove_pet(pet: Pet):
    """Drop a pet along with its comments, likes and saved references."""
    for c in [c for c in store.comments if store.same_id(c.pet_id, pet.id) and c.parent_id is None]:
        community.remove_comment_tree(c.id)
    store.comments[:] = [c for c in store.comments if not store.same_id(c.pet_id, pet.id)]
    for u in store.users:
        if str(pet.id) in u.saved_pet_ids:
            u.saved_pet_ids.remove(str(pet.id))
    store.pets.remove(pet)


def renew_pet(actor: UserAccount, pet_id, now: Optional[datetime] = None) -> Pet:
    pet = get_pet(pet_id)
    if not store.same_id(actor.id, pet.user_id):
        raise PermissionDeniedError("Solo el autor puede renovar esta publicación.")
    now = now or datetime.now(timezone.utc)
    pet.created_at = now.isoformat()
    pet.expires_at = _expiry(now)
    store.save_state()
    return pet


def update_pet_status(actor: UserAccount, pet_id, status: str) -> Pet:
    pet = editable_pet(actor, pet_id)
    validators.validate_choice(status, PetStatus.ALL, "Estado")
    pet.status = status
    store.audit(f"{actor.email} set pet {pet.id} status to {status}")
    store.save_state()
    return pet


def mark_reunion(actor: UserAccount, pet_id, story: str, date: str, image_url: Optional[str] = None) -> Pet:
    pet = editable_pet(actor, pet_id)
    if not (story or "").strip():
        raise ValidationError("Cuéntanos cómo fue el reencuentro.")
    pet.status = PetStatus.REUNIDO
    pet.reunion_story = story.strip()
    pet.reunion_date = date
    if image_url:
        pet.image_urls = [image_url] + list(pet.image_urls)
    gamification.log_activity(pet.user_id, gamification.ACTION_TYPES["PET_REUNITED"],
                              gamification.POINTS_CONFIG["PET_REUNITED"], {"pet_id": str(pet.id)})
    store.audit(f"Pet {pet.id} marked as reunited")
    store.save_state()
    return pet


def record_contact_request(pet_id, requester: UserAccount) -> Pet:
    pet = get_pet(pet_id)
    if store.same_id(pet.user_id, requester.id):
        return pet
    email = requester.email.lower()
    if email not in pet.contact_requests:
        pet.contact_requests.append(email)
        community.notify(
            pet.user_id,
            f"{requester.display_name} solicitó tus datos de contacto para {pet.name or pet.animal_type}.",
            link=f"/pets/{pet.id}",
        )
        store.save_state()
    return pet


# --- Queries ---
def _newest_first(rows: List[Pet]) -> List[Pet]:
    return sorted(rows, key=lambda p: p.created_at, reverse=True)


def _filters(filters) -> PetFilters:
    if isinstance(filters, PetFilters):
        return filters
    return PetFilters(**{k: v for k, v in (filters or {}).items() if k in PetFilters.model_fields and v})


def list_pets(filters, page: int = 0, page_size: int = None, now: Optional[datetime] = None) -> Tuple[List[Pet], Optional[int], int]:
    """Filtered, paginated listing. Returns (items, next_page, total).

    A status filter of "Todos" is dashboard mode and yields no rows here;
    callers use ``dashboard_pets`` instead.
    """
    f = _filters(filters)
    page_size = page_size or settings.PAGE_SIZE
    if f.status == TODOS:
        return [], None, 0

    rows = [p for p in store.pets if not p.is_expired(now) and alerts.pet_matches_filters(p, f.model_dump())]
    rows = _newest_first(rows)
    start = max(page, 0) * page_size
    items = rows[start:start + page_size]
    has_more = start + len(items) < len(rows)
    return items, (page + 1 if has_more else None), len(rows)


def dashboard_pets(filters=None, now: Optional[datetime] = None) -> List[Pet]:
    """Up to ``DASHBOARD_LIMIT`` newest unexpired pets per status, merged newest first."""
    f = _filters(filters)
    narrowed = {"type": f.type, "department": f.department}
    combined = []
    for status in PetStatus.ALL:
        rows = [
            p for p in store.pets
            if p.status == status and not p.is_expired(now) and alerts.pet_matches_filters(p, narrowed)
        ]
        combined.extend(_newest_first(rows)[:settings.DASHBOARD_LIMIT])
    return _newest_first(combined)


def pets_for_map(now: Optional[datetime] = None) -> List[Pet]:
    return [p for p in store.pets if p.lat is not None and p.lng is not None and not p.is_expired(now)]


def pets_by_user(user_id) -> List[Pet]:
    return _newest_first([p for p in store.pets if store.same_id(p.user_id, user_id)])


def expired_pets_for_user(user_id, now: Optional[datetime] = None) -> List[Pet]:
    return [p for p in pets_by_user(user_id) if p.is_expired(now)]


def reunited_pets() -> List[Pet]:
    rows = [p for p in store.pets if p.status == PetStatus.REUNIDO]
    return sorted(rows, key=lambda p: p.reunion_date or p.created_at, reverse=True)


def saved_pets(user: UserAccount) -> List[Pet]:
    return [p for p in (store.find_pet(pid) for pid in user.saved_pet_ids) if p]


def breeds_in_use() -> List[str]:
    return sorted({p.breed for p in store.pets if p.breed})
