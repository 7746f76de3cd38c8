"""
Saved searches and location-based alerts for newly reported pets.
"""
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from loguru import logger

import community
import store
from constants import TODOS
from errors import NotFoundError, PermissionDeniedError, ValidationError
from schemas import Pet, PetFilters, SavedSearch, UserAccount, now_iso

EARTH_RADIUS_KM = 6371.0


def _active(value: Optional[str]) -> bool:
    return bool(value) and value != TODOS


def pet_matches_filters(pet: Pet, filters: Dict[str, Any]) -> bool:
    """Apply listing filters to one pet: exact status/type/breed/size, substring colors and department."""
    f = PetFilters(**{k: v for k, v in (filters or {}).items() if k in PetFilters.model_fields and v})
    if _active(f.status) and pet.status != f.status:
        return False
    if _active(f.type) and pet.animal_type != f.type:
        return False
    if _active(f.breed) and pet.breed != f.breed:
        return False
    if _active(f.size) and pet.size != f.size:
        return False
    color = (pet.color or "").lower()
    for wanted in (f.color1, f.color2, f.color3):
        if _active(wanted) and wanted.lower() not in color:
            return False
    if _active(f.department) and f.department.lower() not in (pet.location or "").lower():
        return False
    return True


# --- Saved searches ---
def create_saved_search(user: UserAccount, name: str, filters: Dict[str, Any]) -> SavedSearch:
    name = (name or "").strip()
    if not name:
        raise ValidationError("La búsqueda necesita un nombre.")
    clean = {k: v for k, v in (filters or {}).items() if k in PetFilters.model_fields and v}
    search = SavedSearch(id=uuid4(), user_id=user.id, name=name, filters=clean, created_at=now_iso())
    store.saved_searches.append(search)
    store.save_state()
    return search


def list_saved_searches(user: UserAccount) -> List[SavedSearch]:
    rows = [s for s in store.saved_searches if store.same_id(s.user_id, user.id)]
    rows.sort(key=lambda s: s.created_at, reverse=True)
    return rows


def delete_saved_search(user: UserAccount, search_id):
    search = next((s for s in store.saved_searches if store.same_id(s.id, search_id)), None)
    if not search:
        raise NotFoundError("Búsqueda no encontrada.")
    if not store.same_id(search.user_id, user.id):
        raise PermissionDeniedError("Acción no permitida.")
    store.saved_searches.remove(search)
    store.save_state()


def notify_saved_search_matches(pet: Pet) -> List[str]:
    """Notify other users whose saved searches match ``pet``. Returns the notified user ids."""
    notified = []
    for search in store.saved_searches:
        if store.same_id(search.user_id, pet.user_id) or str(search.user_id) in notified:
            continue
        if pet_matches_filters(pet, search.filters):
            community.notify(
                search.user_id,
                f"Nueva publicación que coincide con tu búsqueda \"{search.name}\": {pet.animal_type} {pet.status.lower()}.",
                link=f"/pets/{pet.id}",
            )
            notified.append(str(search.user_id))
    if notified:
        logger.info(f"Saved-search alerts for pet {pet.id}: {len(notified)} users")
    return notified


# --- Proximity ---
def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def send_proximity_alerts(pet: Pet, now: Optional[datetime] = None) -> List[str]:
    cfg = store.platform_settings
    if not cfg.location_alerts_enabled or pet.lat is None or pet.lng is None:
        return []

    now = now or datetime.now(timezone.utc)
    window = timedelta(minutes=cfg.location_alert_rate_limit_minutes)
    notified = []
    for user in store.users:
        if store.same_id(user.id, pet.user_id) or user.lat is None or user.lng is None:
            continue
        last_sent = store.proximity_alert_log.get(str(user.id))
        if last_sent and now - datetime.fromisoformat(last_sent) < window:
            continue
        distance = haversine_km(pet.lat, pet.lng, user.lat, user.lng)
        if distance > cfg.location_alert_radius_km:
            continue
        community.notify(
            user.id,
            f"Alerta cercana: {pet.animal_type} {pet.status.lower()} a {distance:.1f} km de tu ubicación.",
            link=f"/pets/{pet.id}",
        )
        store.proximity_alert_log[str(user.id)] = now.isoformat()
        notified.append(str(user.id))
    if notified:
        logger.info(f"Proximity alerts for pet {pet.id}: {len(notified)} users within {cfg.location_alert_radius_km} km")
    return notified
