"""Conversion between stored snake_case records and camelCase JSON views."""
import re
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel

from constants import Role, UserStatus

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def to_snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def camelize(data: Dict[str, Any]) -> Dict[str, Any]:
    return {to_camel(k): v for k, v in data.items()}


def snakeize(data: Dict[str, Any]) -> Dict[str, Any]:
    return {to_snake(k): v for k, v in data.items()}


def _row(record) -> Dict[str, Any]:
    if isinstance(record, BaseModel):
        return record.model_dump(mode="json")
    return dict(record)


def map_comment_from_db(c, likes: Iterable = ()) -> Dict[str, Any]:
    c = _row(c)
    comment_likes = [str(_row(l)["user_id"]) for l in likes if str(_row(l)["comment_id"]) == str(c["id"])]
    return {
        "id": c["id"],
        "userId": c.get("user_id"),
        "userEmail": c.get("user_email"),
        "userName": c.get("user_name"),
        "text": c.get("text"),
        "timestamp": c.get("created_at"),
        "parentId": c.get("parent_id"),
        "likes": comment_likes,
    }


def map_pet_from_db(p, profiles: Iterable = (), comments: Iterable = (), likes: Iterable = ()) -> Dict[str, Any]:
    """Map a raw pet row to its camelCase view.

    The owner's email comes from a nested ``profiles`` join when present,
    otherwise from the ``profiles`` list by ``user_id``.
    """
    p = _row(p)
    joined = p.get("profiles") or {}
    owner_email = joined.get("email")
    if not owner_email:
        owner = next((u for u in map(_row, profiles) if str(u.get("id")) == str(p.get("user_id"))), None)
        owner_email = owner.get("email") if owner else None

    likes = list(likes)
    pet_comments = [
        map_comment_from_db(c, likes)
        for c in map(_row, comments)
        if str(c.get("pet_id")) == str(p["id"])
    ]

    return {
        "id": p["id"],
        "userEmail": owner_email or "unknown",
        "status": p.get("status"),
        "name": p.get("name"),
        "animalType": p.get("animal_type"),
        "breed": p.get("breed"),
        "color": p.get("color"),
        "size": p.get("size"),
        "location": p.get("location"),
        "date": p.get("date"),
        "contact": p.get("contact"),
        "description": p.get("description"),
        "imageUrls": p.get("image_urls") or [],
        "adoptionRequirements": p.get("adoption_requirements"),
        "shareContactInfo": p.get("share_contact_info"),
        "contactRequests": p.get("contact_requests") or [],
        "reward": p.get("reward"),
        "currency": p.get("currency"),
        "lat": p.get("lat"),
        "lng": p.get("lng"),
        "comments": pet_comments,
        "expiresAt": p.get("expires_at"),
        "createdAt": p.get("created_at"),
        "reunionStory": p.get("reunion_story"),
        "reunionDate": p.get("reunion_date"),
    }


def map_business_from_db(b, products: Optional[Iterable] = None) -> Dict[str, Any]:
    b = _row(b)
    view = {
        "id": b["id"],
        "ownerId": b.get("owner_id"),
        "name": b.get("name"),
        "type": b.get("type"),
        "description": b.get("description"),
        "address": b.get("address"),
        "phone": b.get("phone"),
        "whatsapp": b.get("whatsapp"),
        "website": b.get("website"),
        "facebook": b.get("facebook"),
        "instagram": b.get("instagram"),
        "logoUrl": b.get("logo_url"),
        "coverUrl": b.get("cover_url"),
        "services": b.get("services") or [],
        "isVerified": bool(b.get("is_verified")),
        "lat": b.get("lat"),
        "lng": b.get("lng"),
    }
    if products is not None:
        view["products"] = [_map_product(pr) for pr in map(_row, products)]
    return view


def _map_product(p: Dict[str, Any]) -> Dict[str, Any]:
    image_url = p.get("image_url")
    return {
        "id": p["id"],
        "businessId": p.get("business_id"),
        "name": p.get("name"),
        "description": p.get("description"),
        "price": p.get("price"),
        "imageUrl": image_url,
        "imageUrls": p.get("image_urls") or ([image_url] if image_url else []),
    }


def map_user_from_db(u) -> Dict[str, Any]:
    u = _row(u)
    u.pop("password", None)
    return {
        "id": u["id"],
        "email": u.get("email"),
        "role": u.get("role") or Role.USER,
        "status": u.get("status") or UserStatus.ACTIVE,
        "username": u.get("username"),
        "firstName": u.get("first_name"),
        "lastName": u.get("last_name"),
        "phone": u.get("phone"),
        "dni": u.get("dni"),
        "avatarUrl": u.get("avatar_url"),
        "ownedPets": [camelize(op) for op in (u.get("owned_pets") or [])],
        "savedPetIds": u.get("saved_pet_ids") or [],
        "birthDate": u.get("birth_date"),
        "country": u.get("country"),
        "businessId": u.get("business_id"),
    }


def map_report_from_db(r) -> Dict[str, Any]:
    r = _row(r)
    return {
        "id": r["id"],
        "reporterEmail": r.get("reporter_email"),
        "reportedEmail": r.get("reported_email"),
        "type": r.get("type"),
        "targetId": r.get("target_id"),
        "reason": r.get("reason"),
        "details": r.get("details"),
        "status": r.get("status"),
        "timestamp": r.get("created_at"),
        "postSnapshot": r.get("post_snapshot"),
    }


def map_rows(rows: Iterable) -> List[Dict[str, Any]]:
    """Generic camelCase view for records without a dedicated mapper."""
    return [camelize(_row(r)) for r in rows]
