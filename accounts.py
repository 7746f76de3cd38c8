from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from loguru import logger
from passlib.context import CryptContext

import community
import gamification
import pets
import settings
import store
import validators
from constants import Role, UserStatus
from errors import NotFoundError, PermissionDeniedError, ValidationError
from schemas import OwnedPet, UserAccount, now_iso

# Password hasher
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

# Demo accounts created on first start (plaintext is hashed on seed)
DEFAULT_USERS = [
    {"email": "admin@maspatas.pe", "password": "admin", "role": Role.SUPERADMIN, "username": "admin"},
    {"email": "user@maspatas.pe", "password": "user", "role": Role.USER, "username": "vecino"},
]


# --- Role helpers ---
def is_staff(user: Optional[UserAccount]) -> bool:
    return bool(user) and user.role in Role.STAFF


def is_admin(user: Optional[UserAccount]) -> bool:
    return bool(user) and user.role in Role.ADMINS


def is_superadmin(user: Optional[UserAccount]) -> bool:
    return bool(user) and user.role == Role.SUPERADMIN


def require_staff(user: Optional[UserAccount]):
    if not is_staff(user):
        raise PermissionDeniedError("Acción no permitida.")


def require_admin(user: Optional[UserAccount]):
    if not is_admin(user):
        raise PermissionDeniedError("Acción no permitida.")


def can_modify(actor: Optional[UserAccount], owner_id) -> bool:
    return bool(actor) and (store.same_id(actor.id, owner_id) or is_staff(actor))


# --- Seeding ---
def ensure_seed_users():
    for seed in DEFAULT_USERS:
        if store.find_user_by_email(seed["email"]):
            continue
        store.users.append(UserAccount(
            id=uuid4(),
            email=seed["email"],
            password=pwd_context.hash(seed["password"]),
            role=seed["role"],
            username=seed["username"],
            created_at=now_iso(),
        ))


def upgrade_password_hashes():
    """Hash any password still stored in plaintext (e.g. hand-edited state files)."""
    for u in store.users:
        if not pwd_context.identify(u.password):
            u.password = pwd_context.hash(u.password)


# --- Registration & login ---
def register_user(email: str, password: str, confirm_password: str, username: Optional[str] = None) -> UserAccount:
    email = validators.validate_email(email)
    if store.find_user_by_email(email):
        raise ValidationError("Este correo ya está registrado.")
    validators.validate_new_password(password, confirm_password)
    if username and _username_taken(username):
        raise ValidationError("El nombre de usuario ya está en uso.")

    new_user = UserAccount(
        id=uuid4(),
        email=email,
        password=pwd_context.hash(password),
        role=Role.USER,
        status=UserStatus.ACTIVE,
        username=username.strip() if username else None,
        created_at=now_iso(),
    )
    store.users.append(new_user)
    store.audit(f"New user registered: {email}")
    store.save_state()
    return new_user


def is_ip_banned(ip_address: Optional[str]) -> bool:
    return bool(ip_address) and any(b.ip_address == ip_address for b in store.banned_ips)


def authenticate(email: str, password: str, client_ip: str = "unknown") -> UserAccount:
    """Verify credentials with a sliding-window rate limit per client IP."""
    now_ts = datetime.now(timezone.utc).timestamp()
    attempts = [ts for ts in store.LOGIN_ATTEMPTS.get(client_ip, []) if now_ts - ts < settings.LOGIN_WINDOW]
    if len(attempts) >= settings.LOGIN_MAX_ATTEMPTS:
        store.LOGIN_ATTEMPTS[client_ip] = attempts
        raise PermissionDeniedError("Demasiados intentos de inicio de sesión. Inténtalo más tarde.")

    if is_ip_banned(client_ip):
        logger.warning(f"Login blocked for banned IP {client_ip}")
        raise PermissionDeniedError("El acceso desde esta dirección ha sido bloqueado.")

    user = store.find_user_by_email(email)
    if not user or not pwd_context.verify(password, user.password):
        attempts.append(now_ts)
        store.LOGIN_ATTEMPTS[client_ip] = attempts
        raise ValidationError("Correo o contraseña incorrectos.")

    if user.status == UserStatus.INACTIVE:
        raise PermissionDeniedError("Tu cuenta está inactiva. Contacta a soporte.")

    store.LOGIN_ATTEMPTS[client_ip] = []
    user.last_ip = client_ip
    if not gamification.has_logged_today(user.id, gamification.ACTION_TYPES["DAILY_LOGIN"]):
        gamification.log_activity(user.id, gamification.ACTION_TYPES["DAILY_LOGIN"], gamification.POINTS_CONFIG["DAILY_LOGIN"])
    store.audit(f"User {user.email} logged in from {client_ip}")
    store.save_state()
    return user


# --- Profile ---
def _username_taken(username: str, exclude_id=None) -> bool:
    wanted = username.strip().lower()
    return any(
        (u.username or "").lower() == wanted and not store.same_id(u.id, exclude_id)
        for u in store.users
    )


def complete_profile(user: UserAccount, username: str, first_name: str, last_name: str, dni: str, phone: str,
                     birth_date: str, country: str, avatar_url: Optional[str] = None) -> UserAccount:
    data = validators.validate_profile(username, first_name, last_name, dni, phone, birth_date, country)
    if _username_taken(data["username"], exclude_id=user.id):
        raise ValidationError("El nombre de usuario ya está en uso.")
    if any(u.dni == data["dni"] and not store.same_id(u.id, user.id) for u in store.users):
        raise ValidationError("El DNI ya está registrado en otra cuenta.")

    for field, value in data.items():
        setattr(user, field, value)
    if avatar_url:
        user.avatar_url = avatar_url
    user.updated_at = now_iso()
    store.audit(f"User {user.email} completed profile")
    store.save_state()
    return user


def change_password(user: UserAccount, current_password: str, new_password: str, confirm_password: str):
    if not pwd_context.verify(current_password, user.password):
        raise ValidationError("La contraseña actual es incorrecta.")
    validators.validate_new_password(new_password, confirm_password)
    user.password = pwd_context.hash(new_password)
    user.updated_at = now_iso()
    store.save_state()


def update_location(user: UserAccount, lat: float, lng: float):
    validators.validate_coordinates(lat, lng)
    user.lat = lat
    user.lng = lng
    user.location_updated_at = now_iso()
    user.updated_at = user.location_updated_at
    store.save_state()


def add_owned_pet(user: UserAccount, name: str, animal_type: str, breed: str, colors, description: Optional[str] = None,
                  image_urls=None) -> OwnedPet:
    if not (name or "").strip():
        raise ValidationError("El nombre de la mascota es obligatorio.")
    validators.validate_choice(animal_type, ["Perro", "Gato"], "Tipo de animal")
    owned = OwnedPet(
        id=uuid4(),
        name=name.strip(),
        animal_type=animal_type,
        breed=breed or "Mestizo",
        colors=[c for c in (colors or []) if c][:3],
        description=description,
        image_urls=list(image_urls or []),
    )
    user.owned_pets.append(owned)
    store.save_state()
    return owned


def remove_owned_pet(user: UserAccount, owned_pet_id: str):
    before = len(user.owned_pets)
    user.owned_pets = [p for p in user.owned_pets if str(p.id) != str(owned_pet_id)]
    if len(user.owned_pets) == before:
        raise NotFoundError("Mascota no encontrada.")
    store.save_state()


def toggle_saved_pet(user: UserAccount, pet_id: str) -> bool:
    pet_id = str(pet_id)
    if pet_id in user.saved_pet_ids:
        user.saved_pet_ids.remove(pet_id)
        saved = False
    else:
        if not store.find_pet(pet_id):
            raise NotFoundError("Publicación no encontrada.")
        user.saved_pet_ids.append(pet_id)
        saved = True
    store.save_state()
    return saved


# --- Staff operations ---
def get_user_or_404(user_id) -> UserAccount:
    user = store.find_user(user_id)
    if not user:
        raise NotFoundError("Usuario no encontrado.")
    return user


def set_role(actor: UserAccount, user_id, role: str) -> UserAccount:
    if not is_superadmin(actor):
        raise PermissionDeniedError("Solo un Superadmin puede cambiar roles.")
    validators.validate_choice(role, Role.ALL, "Rol")
    target = get_user_or_404(user_id)
    if store.same_id(target.id, actor.id):
        raise PermissionDeniedError("No puedes cambiar tu propio rol.")
    target.role = role
    store.audit(f"{actor.email} set role of {target.email} to {role}")
    store.save_state()
    return target


def set_status(actor: UserAccount, user_id, status: str) -> UserAccount:
    require_admin(actor)
    validators.validate_choice(status, UserStatus.ALL, "Estado")
    target = get_user_or_404(user_id)
    if store.same_id(target.id, actor.id):
        raise PermissionDeniedError("No puedes cambiar tu propio estado.")
    if is_superadmin(target) and not is_superadmin(actor):
        raise PermissionDeniedError("Acción no permitida.")
    target.status = status
    store.audit(f"{actor.email} set status of {target.email} to {status}")
    store.save_state()
    return target


def delete_user(actor: UserAccount, user_id):
    if not is_superadmin(actor):
        raise PermissionDeniedError("Solo un Superadmin puede eliminar usuarios.")
    target = get_user_or_404(user_id)
    if store.same_id(target.id, actor.id):
        raise PermissionDeniedError("No puedes eliminar tu propia cuenta desde el panel.")

    owned_pets = [p for p in store.pets if store.same_id(p.user_id, target.id)]
    for pet in owned_pets:
        pets.remove_pet(pet)
    for c in [c for c in store.comments if store.same_id(c.user_id, target.id)]:
        if store.find_comment(c.id):
            community.remove_comment_tree(c.id)
    store.comment_likes[:] = [l for l in store.comment_likes if not store.same_id(l.user_id, target.id)]
    business_ids = {str(b.id) for b in store.businesses if store.same_id(b.owner_id, target.id)}
    store.businesses[:] = [b for b in store.businesses if str(b.id) not in business_ids]
    store.business_products[:] = [p for p in store.business_products if str(p.business_id) not in business_ids]
    store.notifications[:] = [n for n in store.notifications if not store.same_id(n.user_id, target.id)]
    store.saved_searches[:] = [s for s in store.saved_searches if not store.same_id(s.user_id, target.id)]
    store.ratings[:] = [
        r for r in store.ratings
        if not store.same_id(r.rater_id, target.id) and not store.same_id(r.rated_user_id, target.id)
    ]
    for report in store.campaign_reports:
        if store.same_id(report.user_id, target.id):
            report.user_id = None
    store.users.remove(target)
    store.audit(f"{actor.email} deleted user {target.email} and {len(owned_pets)} publications")
    store.save_state()


def start_ghosting(actor: Optional[UserAccount], target_id) -> UserAccount:
    """Let a Superadmin act as another user; the caller keeps the admin id in the session."""
    if not is_superadmin(actor):
        raise PermissionDeniedError("Acción no permitida.")
    target = get_user_or_404(target_id)
    store.audit(f"{actor.email} started ghosting as {target.email}")
    return target


def stop_ghosting(admin_id) -> UserAccount:
    admin = store.find_user(admin_id)
    if not is_superadmin(admin):
        raise PermissionDeniedError("Acción no permitida.")
    store.audit(f"{admin.email} stopped ghosting")
    return admin
