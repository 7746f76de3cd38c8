import os
import shutil
import sys
from datetime import date, datetime, timezone
from typing import List, Optional
from urllib.parse import urlencode, urlsplit
from uuid import uuid4

from fastapi import FastAPI, File, Form, Query, Request, UploadFile
from fastapi.responses import FileResponse, JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from loguru import logger
from starlette.middleware.sessions import SessionMiddleware
from starlette.responses import RedirectResponse
from starlette.status import HTTP_303_SEE_OTHER

import accounts
import admin
import alerts
import community
import directory
import gamification
import geocoding
import mappers
import matching
import moderation
import pets
import settings
import store
from constants import (
    CURRENCIES,
    TODOS,
    AnimalType,
    BusinessType,
    CampaignReportStatus,
    CampaignType,
    PetStatus,
    ReportReason,
    ReportStatus,
    Role,
    Size,
    TicketCategory,
    TicketStatus,
    UserStatus,
)
from errors import MasPatasError, NotFoundError
from schemas import PetFilters, UserAccount

logger.remove()
logger.add(sys.stderr, level=settings.LOG_LEVEL)

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# --- App Setup ---
app = FastAPI(title="Mas Patas")

# Sliding session expiry is enforced in get_current_user; tests may patch this
SESSION_MAX_AGE = settings.SESSION_MAX_AGE
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.SESSION_SECRET,
    max_age=settings.SESSION_MAX_AGE,
    same_site=settings.SESSION_SAME_SITE,
    https_only=settings.SESSION_HTTPS_ONLY,
)

os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
# Uploads may live outside the static dir, so they are mounted first
app.mount("/static/uploads", StaticFiles(directory=settings.UPLOAD_DIR), name="uploads")
app.mount("/static", StaticFiles(directory=os.path.join(BASE_DIR, "static")), name="static")
templates = Jinja2Templates(directory=os.path.join(BASE_DIR, "templates"))
templates.env.filters["fecha"] = lambda ts: (ts or "")[:10]
templates.env.globals.update(
    TODOS=TODOS,
    PET_STATUSES=PetStatus.ALL,
    ANIMAL_TYPES=AnimalType.ALL,
    SIZES=Size.ALL,
    CURRENCIES=CURRENCIES,
    ROLES=Role.ALL,
    USER_STATUSES=UserStatus.ALL,
    REPORT_REASONS=ReportReason.ALL,
    REPORT_STATUSES=ReportStatus.ALL,
    TICKET_STATUSES=TicketStatus.ALL,
    TICKET_CATEGORIES=TicketCategory.ALL,
    CAMPAIGN_TYPES=CampaignType.ALL,
    CAMPAIGN_REPORT_STATUSES=CampaignReportStatus.ALL,
    BUSINESS_TYPES=BusinessType.ALL,
)

# --- Persistence ---
store.load_state()
accounts.upgrade_password_hashes()
accounts.ensure_seed_users()
store.save_state()


# --- Utility Functions ---
def get_current_user(request: Request) -> Optional[UserAccount]:
    """Return the authenticated UserAccount if any (based on session), otherwise None.

    Sessions idle longer than `SESSION_MAX_AGE` are cleared, as are sessions of
    accounts that have since been deactivated.
    """
    user_id = request.session.get("user_id")
    if not user_id:
        return None

    last_active = request.session.get("last_active")
    if last_active:
        try:
            la = datetime.fromisoformat(last_active)
        except ValueError:
            request.session.clear()
            return None
        if la.tzinfo is None:
            la = la.replace(tzinfo=timezone.utc)
        if (datetime.now(timezone.utc) - la).total_seconds() > SESSION_MAX_AGE:
            request.session.clear()
            return None

    user = store.find_user(user_id)
    if not user or user.status == UserStatus.INACTIVE:
        request.session.clear()
        return None

    # Sliding expiration
    request.session["last_active"] = datetime.now(timezone.utc).isoformat()
    return user


def resolve_user(request: Request):
    """Return tuple (user_role, current_user) for the session user."""
    current_user = get_current_user(request)
    user_role = current_user.role if current_user else "guest"
    return user_role, current_user


def login_redirect(message: str = "Debes iniciar sesión para continuar.") -> RedirectResponse:
    return redirect("/login", error=message)


def redirect(url: str, **params) -> RedirectResponse:
    params = {k: v for k, v in params.items() if v is not None}
    if params:
        url = f"{url}{'&' if '?' in url else '?'}{urlencode(params)}"
    return RedirectResponse(url=url, status_code=HTTP_303_SEE_OTHER)


def _back(request: Request, fallback: str = "/") -> str:
    """Same-site path of the referring page, without its query string."""
    referer = request.headers.get("referer")
    if not referer:
        return fallback
    parts = urlsplit(referer)
    if parts.netloc and parts.netloc != request.url.netloc:
        return fallback
    return parts.path or fallback


def render(request: Request, template: str, current_user: Optional[UserAccount] = None, status_code: int = 200, **context):
    context.update({
        "request": request,
        "current_user": current_user,
        "user_role": current_user.role if current_user else "guest",
        "is_staff": accounts.is_staff(current_user),
        "is_admin": accounts.is_admin(current_user),
        "is_superadmin": accounts.is_superadmin(current_user),
        "is_ghosting": bool(request.session.get("ghost_admin_id")),
        "unread_notifications": community.unread_count(current_user) if current_user else 0,
        "status": request.query_params.get("status"),
        "error": request.query_params.get("error"),
    })
    return templates.TemplateResponse(request, template, context, status_code=status_code)


def save_upload_file(upload_file: Optional[UploadFile]) -> Optional[str]:
    """Saves the uploaded file to the upload dir and returns its public URL."""
    if not upload_file or not getattr(upload_file, "filename", None):
        return None

    file_extension = os.path.splitext(upload_file.filename)[1].lower()
    unique_filename = f"{uuid4()}{file_extension}"
    file_path = os.path.join(settings.UPLOAD_DIR, unique_filename)
    with open(file_path, "wb") as buffer:
        shutil.copyfileobj(upload_file.file, buffer)
    return f"/static/uploads/{unique_filename}"


def save_upload_files(upload_files: Optional[List[UploadFile]]) -> List[str]:
    return [url for url in (save_upload_file(f) for f in (upload_files or [])) if url]


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    value = (value or "").strip()
    return value or None


@app.exception_handler(MasPatasError)
def handle_domain_error(request: Request, exc: MasPatasError):
    if request.url.path.startswith("/api/"):
        return JSONResponse({"detail": exc.message}, status_code=exc.status_code)
    if request.method == "GET":
        _, current_user = resolve_user(request)
        return render(request, "error.html", current_user, status_code=exc.status_code, message=exc.message)
    return redirect(_back(request), error=exc.message)


@app.on_event("startup")
def _maybe_start_scheduler():
    admin.start_scheduler()


@app.on_event("shutdown")
def _stop_scheduler():
    admin.stop_scheduler()


# --- 1. Core Pages ---

@app.get("/", tags=["Core Pages"])
def read_root(request: Request, type: str = TODOS, department: str = TODOS):
    """Home dashboard: newest reports of every status plus upcoming campaigns."""
    user_role, current_user = resolve_user(request)
    filters = PetFilters(type=type or TODOS, department=department or TODOS)
    return render(
        request, "index.html", current_user,
        pets=pets.dashboard_pets(filters),
        filters=filters,
        campaigns=directory.active_campaigns()[:3],
        leaderboard=gamification.weekly_leaderboard(limit=5),
    )


@app.get("/pets", tags=["Core Pages"])
def read_pets(
    request: Request,
    status: str = PetStatus.PERDIDO,
    type: str = TODOS,
    breed: str = TODOS,
    size: str = TODOS,
    color1: str = TODOS,
    color2: str = TODOS,
    color3: str = TODOS,
    department: str = TODOS,
    page: int = 0,
):
    user_role, current_user = resolve_user(request)
    if status == TODOS:
        return redirect("/", type=type, department=department)
    filters = PetFilters(status=status, type=type or TODOS, breed=breed or TODOS, size=size or TODOS,
                         color1=color1 or TODOS, color2=color2 or TODOS, color3=color3 or TODOS,
                         department=department or TODOS)
    items, next_page, total = pets.list_pets(filters, page=page)
    query = {k: v for k, v in filters.model_dump().items() if v != TODOS}
    return render(
        request, "pets.html", current_user,
        pets=items, filters=filters, page=page, next_page=next_page, total=total,
        query=urlencode(query), breeds=pets.breeds_in_use(),
    )


@app.get("/pets/{pet_id}", tags=["Core Pages"])
def read_pet_detail(request: Request, pet_id: str):
    user_role, current_user = resolve_user(request)
    pet = pets.get_pet(pet_id)
    owner = store.find_user(pet.user_id)
    is_owner = bool(current_user) and store.same_id(current_user.id, pet.user_id)
    can_see_contact = pet.share_contact_info or is_owner or accounts.is_staff(current_user) or (
        bool(current_user) and current_user.email.lower() in pet.contact_requests
    )
    return render(
        request, "pet_detail.html", current_user,
        pet=pet,
        owner=owner,
        is_owner=is_owner,
        can_modify=accounts.can_modify(current_user, pet.user_id),
        can_see_contact=can_see_contact,
        is_saved=bool(current_user) and str(pet.id) in current_user.saved_pet_ids,
        comments=community.comments_for_pet(pet.id),
        expired=pet.is_expired(),
        requesters=[store.find_user_by_email(e) or e for e in pet.contact_requests] if is_owner else [],
    )


@app.get("/reunited", tags=["Core Pages"])
def read_reunited(request: Request):
    user_role, current_user = resolve_user(request)
    return render(request, "reunited.html", current_user, pets=pets.reunited_pets())


@app.get("/map", tags=["Core Pages"])
def read_map(request: Request):
    user_role, current_user = resolve_user(request)
    return render(request, "map.html", current_user)


@app.get("/leaderboard", tags=["Core Pages"])
def read_leaderboard(request: Request):
    user_role, current_user = resolve_user(request)
    return render(
        request, "leaderboard.html", current_user,
        entries=gamification.weekly_leaderboard(),
        levels=gamification.LEVELS[:-1],
        top_level=gamification.LEVELS[-1],
        points=gamification.POINTS_CONFIG,
    )


# --- 2. Authentication ---

@app.get("/login", tags=["Authentication"])
def read_login_page(request: Request):
    user_role, current_user = resolve_user(request)
    return render(request, "login.html", current_user, success=request.query_params.get("success"))


@app.post("/login", tags=["Authentication"])
def process_login(request: Request, username: str = Form(...), password: str = Form(...)):
    try:
        user = accounts.authenticate(username, password, _client_ip(request))
    except MasPatasError as e:
        return redirect("/login", error=e.message)

    request.session.clear()
    request.session["user_id"] = str(user.id)
    request.session["last_active"] = datetime.now(timezone.utc).isoformat()

    if not user.profile_complete and not accounts.is_staff(user):
        return redirect("/profile/setup")
    if accounts.is_staff(user):
        return redirect("/admin/dashboard")
    return redirect("/")


@app.get("/logout", tags=["Authentication"])
def process_logout(request: Request):
    """Clears the user session and redirects to home."""
    request.session.clear()
    return RedirectResponse(url="/", status_code=HTTP_303_SEE_OTHER)


@app.get("/user-register", tags=["Authentication"])
def read_user_register_page(request: Request):
    user_role, current_user = resolve_user(request)
    return render(request, "user_register.html", current_user)


@app.post("/user-register", tags=["Authentication"])
def process_user_registration(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
    confirm_password: str = Form(...),
    username: Optional[str] = Form(None),
    terms_accepted: bool = Form(False),
):
    if not terms_accepted:
        return redirect("/user-register", error="Debes aceptar los Términos y Condiciones para registrarte.")
    try:
        accounts.register_user(email, password, confirm_password, username=_blank_to_none(username))
    except MasPatasError as e:
        return redirect("/user-register", error=e.message)
    return redirect("/login", success="¡Registro exitoso! Inicia sesión para completar tu perfil.")


@app.get("/profile/setup", tags=["Authentication"])
def read_profile_setup(request: Request):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    return render(request, "profile_setup.html", current_user)


@app.post("/profile/setup", tags=["Authentication"])
def process_profile_setup(
    request: Request,
    username: str = Form(...),
    first_name: str = Form(...),
    last_name: str = Form(...),
    dni: str = Form(...),
    phone: str = Form(...),
    birth_date: str = Form(...),
    country: str = Form("Perú"),
    avatar: UploadFile = File(None),
):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    try:
        accounts.complete_profile(current_user, username, first_name, last_name, dni, phone, birth_date, country,
                                  avatar_url=save_upload_file(avatar))
    except MasPatasError as e:
        return redirect("/profile/setup", error=e.message)
    return redirect("/profile", status="perfil_actualizado")


# --- 3. Pet Management ---

@app.get("/report", tags=["Pet Management"])
def read_report_page(request: Request, status: str = PetStatus.PERDIDO):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect("Inicia sesión para publicar un reporte.")
    return render(request, "report.html", current_user, initial_status=status)


@app.post("/report", tags=["Pet Management"])
def process_report(
    request: Request,
    status: str = Form(...),
    animal_type: str = Form(...),
    name: Optional[str] = Form(None),
    breed: Optional[str] = Form(None),
    color: Optional[str] = Form(None),
    size: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    date: Optional[str] = Form(None),
    contact: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    adoption_requirements: Optional[str] = Form(None),
    share_contact_info: bool = Form(True),
    reward: Optional[float] = Form(None),
    currency: Optional[str] = Form(None),
    lat: Optional[float] = Form(None),
    lng: Optional[float] = Form(None),
    create_alert: bool = Form(False),
    images: List[UploadFile] = File(None),
):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect("Inicia sesión para publicar un reporte.")

    data = {
        "status": status,
        "animal_type": animal_type,
        "name": _blank_to_none(name),
        "breed": _blank_to_none(breed),
        "color": _blank_to_none(color),
        "size": _blank_to_none(size),
        "location": _blank_to_none(location),
        "date": _blank_to_none(date),
        "contact": _blank_to_none(contact) or current_user.phone,
        "description": _blank_to_none(description),
        "adoption_requirements": _blank_to_none(adoption_requirements),
        "share_contact_info": share_contact_info,
        "reward": reward,
        "currency": _blank_to_none(currency),
        "lat": lat,
        "lng": lng,
        "create_alert": create_alert,
    }
    try:
        data["image_urls"] = save_upload_files(images)
        pet = pets.create_pet(current_user, data)
    except MasPatasError as e:
        return redirect("/report", error=e.message)
    except OSError:
        logger.exception("Saving report images failed")
        return redirect("/report", error="Ocurrió un error al publicar. Inténtalo nuevamente.")
    return redirect(f"/pets/{pet.id}", status="publicado")


@app.get("/pets/{pet_id}/edit", tags=["Pet Management"])
def read_edit_pet(request: Request, pet_id: str):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    pet = pets.get_pet(pet_id)
    if not accounts.can_modify(current_user, pet.user_id):
        return redirect(f"/pets/{pet.id}", error="No tienes permiso para editar esta publicación.")
    return render(request, "pet_edit.html", current_user, pet=pet)


@app.post("/pets/{pet_id}/edit", tags=["Pet Management"])
def process_edit_pet(
    request: Request,
    pet_id: str,
    status: Optional[str] = Form(None),
    animal_type: Optional[str] = Form(None),
    name: Optional[str] = Form(None),
    breed: Optional[str] = Form(None),
    color: Optional[str] = Form(None),
    size: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    date: Optional[str] = Form(None),
    contact: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    adoption_requirements: Optional[str] = Form(None),
    share_contact_info: Optional[bool] = Form(None),
    reward: Optional[float] = Form(None),
    currency: Optional[str] = Form(None),
    lat: Optional[float] = Form(None),
    lng: Optional[float] = Form(None),
    images: List[UploadFile] = File(None),
):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    changes = {
        "status": _blank_to_none(status),
        "animal_type": _blank_to_none(animal_type),
        "name": name,
        "breed": breed,
        "color": color,
        "size": _blank_to_none(size),
        "location": location,
        "date": date,
        "contact": contact,
        "description": description,
        "adoption_requirements": adoption_requirements,
        "share_contact_info": share_contact_info,
        "reward": reward,
        "currency": _blank_to_none(currency),
        "lat": lat,
        "lng": lng,
    }
    pet = pets.editable_pet(current_user, pet_id)
    new_images = save_upload_files(images)
    if new_images:
        changes["image_urls"] = new_images + list(pet.image_urls)
    pets.update_pet(current_user, pet_id, changes)
    return redirect(f"/pets/{pet_id}", status="actualizado")


@app.post("/pets/{pet_id}/delete", tags=["Pet Management"])
def process_delete_pet(request: Request, pet_id: str):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    pets.delete_pet(current_user, pet_id)
    return redirect("/profile", status="eliminado")


@app.post("/pets/{pet_id}/renew", tags=["Pet Management"])
def process_renew_pet(request: Request, pet_id: str):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    pets.renew_pet(current_user, pet_id)
    return redirect(_back(request, "/profile"), status="renovado")


@app.post("/pets/{pet_id}/status", tags=["Pet Management"])
def process_pet_status(request: Request, pet_id: str, status: str = Form(...)):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    pets.update_pet_status(current_user, pet_id, status)
    return redirect(f"/pets/{pet_id}", status="estado_actualizado")


@app.post("/pets/{pet_id}/reunion", tags=["Pet Management"])
def process_reunion(
    request: Request,
    pet_id: str,
    story: str = Form(...),
    reunion_date: Optional[str] = Form(None),
    image: UploadFile = File(None),
):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    pets.editable_pet(current_user, pet_id)
    pets.mark_reunion(current_user, pet_id, story, reunion_date or date.today().isoformat(),
                      image_url=save_upload_file(image))
    return redirect(f"/pets/{pet_id}", status="reunido")


@app.post("/pets/{pet_id}/contact", tags=["Pet Management"])
def process_contact_request(request: Request, pet_id: str):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect("Inicia sesión para ver los datos de contacto.")
    pets.record_contact_request(pet_id, current_user)
    return redirect(f"/pets/{pet_id}", status="contacto_solicitado")


@app.post("/pets/{pet_id}/save", tags=["Pet Management"])
def process_save_pet(request: Request, pet_id: str):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    saved = accounts.toggle_saved_pet(current_user, pet_id)
    return redirect(f"/pets/{pet_id}", status="guardado" if saved else "no_guardado")


@app.post("/pets/{pet_id}/comments", tags=["Pet Management"])
def process_add_comment(request: Request, pet_id: str, text: str = Form(...), parent_id: Optional[str] = Form(None)):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect("Inicia sesión para comentar.")
    community.add_comment(current_user, pet_id, text, parent_id=_blank_to_none(parent_id))
    return redirect(f"/pets/{pet_id}#comentarios")


@app.post("/comments/{comment_id}/delete", tags=["Pet Management"])
def process_delete_comment(request: Request, comment_id: str):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    comment = community.delete_comment(current_user, comment_id)
    return redirect(f"/pets/{comment.pet_id}#comentarios")


@app.post("/comments/{comment_id}/like", tags=["Pet Management"])
def process_like_comment(request: Request, comment_id: str):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    community.toggle_comment_like(current_user, comment_id)
    comment = store.find_comment(comment_id)
    return redirect(f"/pets/{comment.pet_id}#comentarios")


@app.post("/pets/{pet_id}/chat", tags=["Pet Management"])
def process_start_chat(request: Request, pet_id: str):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect("Inicia sesión para enviar mensajes.")
    pet = pets.get_pet(pet_id)
    owner = store.find_user(pet.user_id)
    if not owner:
        raise NotFoundError("Usuario no encontrado.")
    chat = community.start_chat(pet.id, [current_user.email, owner.email])
    return redirect(f"/messages/{chat.id}")


# --- 4. User Pages ---

@app.get("/profile", tags=["User"])
def read_profile_page(request: Request):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    count, average = community.rating_summary(current_user.id)
    return render(
        request, "profile.html", current_user,
        my_pets=pets.pets_by_user(current_user.id),
        expired_ids={str(p.id) for p in pets.expired_pets_for_user(current_user.id)},
        saved_pets=pets.saved_pets(current_user),
        summary=gamification.user_summary(current_user.id),
        history=gamification.user_history(current_user.id, limit=10),
        rating_count=count,
        rating_average=average,
        business=directory.business_by_owner(current_user.id),
    )


@app.post("/profile/password", tags=["User"])
def process_change_password(
    request: Request,
    current_password: str = Form(...),
    new_password: str = Form(...),
    confirm_password: str = Form(...),
):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    accounts.change_password(current_user, current_password, new_password, confirm_password)
    return redirect("/profile", status="contraseña_actualizada")


@app.post("/profile/location", tags=["User"])
def process_update_location(request: Request, lat: float = Form(...), lng: float = Form(...)):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    accounts.update_location(current_user, lat, lng)
    return redirect("/profile", status="ubicacion_actualizada")


@app.post("/profile/owned-pets", tags=["User"])
def process_add_owned_pet(
    request: Request,
    name: str = Form(...),
    animal_type: str = Form(...),
    breed: Optional[str] = Form(None),
    color1: Optional[str] = Form(None),
    color2: Optional[str] = Form(None),
    color3: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    images: List[UploadFile] = File(None),
):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    accounts.add_owned_pet(current_user, name, animal_type, _blank_to_none(breed), [color1, color2, color3],
                           description=_blank_to_none(description), image_urls=save_upload_files(images))
    return redirect("/profile", status="mascota_agregada")


@app.post("/profile/owned-pets/{owned_pet_id}/delete", tags=["User"])
def process_remove_owned_pet(request: Request, owned_pet_id: str):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    accounts.remove_owned_pet(current_user, owned_pet_id)
    return redirect("/profile", status="mascota_eliminada")


@app.get("/users/{user_id}", tags=["User"])
def read_public_profile(request: Request, user_id: str):
    user_role, current_user = resolve_user(request)
    profile = accounts.get_user_or_404(user_id)
    count, average = community.rating_summary(profile.id)
    return render(
        request, "public_profile.html", current_user,
        profile=profile,
        pets=[p for p in pets.pets_by_user(profile.id) if not p.is_expired()],
        ratings=community.ratings_for_user(profile.id),
        rating_count=count,
        rating_average=average,
        summary=gamification.user_summary(profile.id),
    )


@app.post("/users/{user_id}/rate", tags=["User"])
def process_rate_user(request: Request, user_id: str, rating: int = Form(...), comment: str = Form("")):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    community.rate_user(current_user, user_id, rating, comment)
    return redirect(f"/users/{user_id}", status="calificado")


@app.get("/notifications", tags=["User"])
def read_notifications(request: Request):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    return render(request, "notifications.html", current_user,
                  notifications=community.notifications_for(current_user))


@app.post("/notifications/read-all", tags=["User"])
def process_read_all_notifications(request: Request):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    community.mark_all_read(current_user)
    return redirect("/notifications")


@app.post("/notifications/{notification_id}/read", tags=["User"])
def process_read_notification(request: Request, notification_id: str):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    n = community.mark_read(current_user, notification_id)
    return redirect(n.link or "/notifications")


@app.post("/notifications/{notification_id}/delete", tags=["User"])
def process_delete_notification(request: Request, notification_id: str):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    community.delete_notification(current_user, notification_id)
    return redirect("/notifications")


@app.get("/saved-searches", tags=["User"])
def read_saved_searches(request: Request):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    return render(request, "saved_searches.html", current_user,
                  searches=alerts.list_saved_searches(current_user))


@app.post("/saved-searches", tags=["User"])
def process_create_saved_search(
    request: Request,
    name: str = Form(...),
    status: str = Form(TODOS),
    type: str = Form(TODOS),
    breed: str = Form(TODOS),
    size: str = Form(TODOS),
    color1: str = Form(TODOS),
    department: str = Form(TODOS),
):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    filters = {"status": status, "type": type, "breed": breed, "size": size, "color1": color1, "department": department}
    alerts.create_saved_search(current_user, name, {k: v for k, v in filters.items() if v and v != TODOS})
    return redirect("/saved-searches", status="busqueda_guardada")


@app.post("/saved-searches/{search_id}/delete", tags=["User"])
def process_delete_saved_search(request: Request, search_id: str):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    alerts.delete_saved_search(current_user, search_id)
    return redirect("/saved-searches")


@app.get("/messages", tags=["User"])
def read_messages(request: Request):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    email = current_user.email.lower()
    chats = []
    for chat in community.chats_for(email):
        others = [store.find_user_by_email(e) for e in chat.participant_emails if e != email]
        messages = community.messages_for_chat(chat.id)
        chats.append({
            "chat": chat,
            "pet": store.find_pet(chat.pet_id) if chat.pet_id else None,
            "others": [o.display_name for o in others if o],
            "last": messages[-1] if messages else None,
            "unread": community.chat_has_unread(chat, email),
        })
    return render(request, "messages.html", current_user, chats=chats)


@app.get("/messages/{chat_id}", tags=["User"])
def read_chat(request: Request, chat_id: str):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    chat = community.get_chat_for(current_user, chat_id)
    community.mark_chat_read(current_user, chat.id)
    return render(
        request, "chat.html", current_user,
        chat=chat,
        pet=store.find_pet(chat.pet_id) if chat.pet_id else None,
        messages=community.messages_for_chat(chat.id),
    )


@app.post("/messages/{chat_id}", tags=["User"])
def process_send_message(request: Request, chat_id: str, text: str = Form(...)):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    community.send_message(current_user, chat_id, text)
    return redirect(f"/messages/{chat_id}")


# --- 5. Directory ---

@app.get("/businesses", tags=["Directory"])
def read_businesses(request: Request, type: str = TODOS):
    user_role, current_user = resolve_user(request)
    return render(request, "businesses.html", current_user,
                  businesses=directory.list_businesses(type), selected_type=type)


@app.get("/businesses/manage", tags=["Directory"])
def read_manage_business(request: Request):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    business = directory.business_by_owner(current_user.id)
    products = directory.products_for(business.id) if business else []
    return render(request, "business_manage.html", current_user, business=business, products=products)


@app.post("/businesses/manage", tags=["Directory"])
def process_manage_business(
    request: Request,
    name: str = Form(...),
    type: str = Form(...),
    description: Optional[str] = Form(None),
    address: Optional[str] = Form(None),
    phone: Optional[str] = Form(None),
    whatsapp: Optional[str] = Form(None),
    website: Optional[str] = Form(None),
    facebook: Optional[str] = Form(None),
    instagram: Optional[str] = Form(None),
    services: Optional[str] = Form(None),
    lat: Optional[float] = Form(None),
    lng: Optional[float] = Form(None),
    logo: UploadFile = File(None),
    cover: UploadFile = File(None),
):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    data = {
        "name": name,
        "type": type,
        "description": description,
        "address": address,
        "phone": phone,
        "whatsapp": whatsapp,
        "website": website,
        "facebook": facebook,
        "instagram": instagram,
        "services": [s.strip() for s in (services or "").split(",") if s.strip()],
        "lat": lat,
        "lng": lng,
    }
    existing = directory.business_by_owner(current_user.id)
    if existing:
        business = directory.update_business(current_user, existing.id, data)
    else:
        business = directory.create_business(current_user, data)
    # Save uploads only after the business data validates
    images = {"logo_url": save_upload_file(logo), "cover_url": save_upload_file(cover)}
    if any(images.values()):
        directory.update_business(current_user, business.id, images)
    return redirect("/businesses/manage", status="negocio_guardado")


@app.get("/businesses/{business_id}", tags=["Directory"])
def read_business_detail(request: Request, business_id: str):
    user_role, current_user = resolve_user(request)
    business = directory.get_business(business_id)
    return render(
        request, "business_detail.html", current_user,
        business=business,
        products=directory.products_for(business.id),
        can_manage=bool(current_user) and (store.same_id(current_user.id, business.owner_id) or accounts.is_admin(current_user)),
    )


@app.post("/businesses/{business_id}/products", tags=["Directory"])
def process_add_product(
    request: Request,
    business_id: str,
    name: str = Form(...),
    description: Optional[str] = Form(None),
    price: Optional[float] = Form(None),
    image: UploadFile = File(None),
):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    directory.managed_business(current_user, business_id)
    directory.add_product(current_user, business_id, name, _blank_to_none(description), price,
                          image_url=save_upload_file(image))
    return redirect(_back(request, f"/businesses/{business_id}"), status="producto_agregado")


@app.post("/products/{product_id}/edit", tags=["Directory"])
def process_edit_product(
    request: Request,
    product_id: str,
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    price: Optional[float] = Form(None),
    image: UploadFile = File(None),
):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    directory.managed_product(current_user, product_id)
    product = directory.update_product(current_user, product_id, name=_blank_to_none(name), description=description,
                                       price=price, image_url=save_upload_file(image))
    return redirect(_back(request, f"/businesses/{product.business_id}"), status="producto_actualizado")


@app.post("/products/{product_id}/delete", tags=["Directory"])
def process_delete_product(request: Request, product_id: str):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    product = store.find_product(product_id)
    directory.delete_product(current_user, product_id)
    return redirect(_back(request, f"/businesses/{product.business_id}"), status="producto_eliminado")


@app.get("/campaigns", tags=["Directory"])
def read_campaigns(request: Request, type: str = TODOS):
    user_role, current_user = resolve_user(request)
    return render(
        request, "campaigns.html", current_user,
        upcoming=directory.active_campaigns(),
        campaigns=directory.list_campaigns(type),
        selected_type=type,
    )


@app.get("/campaigns/new", tags=["Directory"])
def read_new_campaign(request: Request):
    user_role, current_user = resolve_user(request)
    if not accounts.is_staff(current_user):
        return login_redirect("Solo el equipo de Mas Patas puede crear campañas.")
    return render(request, "campaign_form.html", current_user, campaign=None)


@app.get("/campaigns/report", tags=["Directory"])
def read_campaign_report_form(request: Request):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect("Inicia sesión para reportar una campaña.")
    return render(request, "campaign_report_form.html", current_user)


@app.post("/campaigns/report", tags=["Directory"])
def process_campaign_report(
    request: Request,
    address: str = Form(""),
    social_link: str = Form(""),
    department: str = Form(""),
    province: str = Form(""),
    district: str = Form(""),
    image: Optional[UploadFile] = File(None),
):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    directory.validate_campaign_report(address, social_link, department, province, district)
    directory.create_campaign_report(
        current_user, address, social_link, department, province, district, image_url=save_upload_file(image)
    )
    return redirect("/campaigns", status="reporte_campaña_enviado")


def _campaign_form_data(type, title, description, location, date, contact_phone, lat, lng, images) -> dict:
    data = {
        "type": type,
        "title": title,
        "description": description,
        "location": location,
        "date": _blank_to_none(date),
        "contact_phone": contact_phone,
        "lat": lat,
        "lng": lng,
    }
    uploaded = save_upload_files(images)
    if uploaded:
        data["image_urls"] = uploaded
    return data


@app.post("/campaigns", tags=["Directory"])
def process_create_campaign(
    request: Request,
    type: str = Form(...),
    title: str = Form(...),
    description: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    date: Optional[str] = Form(None),
    contact_phone: Optional[str] = Form(None),
    lat: Optional[float] = Form(None),
    lng: Optional[float] = Form(None),
    images: List[UploadFile] = File(None),
):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    accounts.require_staff(current_user)
    campaign = directory.create_campaign(
        current_user, _campaign_form_data(type, title, description, location, date, contact_phone, lat, lng, images)
    )
    return redirect(f"/campaigns/{campaign.id}", status="campaña_creada")


@app.get("/campaigns/{campaign_id}", tags=["Directory"])
def read_campaign_detail(request: Request, campaign_id: str):
    user_role, current_user = resolve_user(request)
    campaign = directory.get_campaign(campaign_id)
    can_manage = bool(current_user) and (
        accounts.is_staff(current_user) or (campaign.user_email or "").lower() == current_user.email.lower()
    )
    return render(request, "campaign_detail.html", current_user, campaign=campaign, can_manage=can_manage)


@app.get("/campaigns/{campaign_id}/edit", tags=["Directory"])
def read_edit_campaign(request: Request, campaign_id: str):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    return render(request, "campaign_form.html", current_user, campaign=directory.get_campaign(campaign_id))


@app.post("/campaigns/{campaign_id}/edit", tags=["Directory"])
def process_edit_campaign(
    request: Request,
    campaign_id: str,
    type: str = Form(...),
    title: str = Form(...),
    description: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    date: Optional[str] = Form(None),
    contact_phone: Optional[str] = Form(None),
    lat: Optional[float] = Form(None),
    lng: Optional[float] = Form(None),
    images: List[UploadFile] = File(None),
):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    directory.managed_campaign(current_user, campaign_id)
    directory.update_campaign(
        current_user, campaign_id,
        _campaign_form_data(type, title, description, location, date, contact_phone, lat, lng, images),
    )
    return redirect(f"/campaigns/{campaign_id}", status="campaña_actualizada")


@app.post("/campaigns/{campaign_id}/delete", tags=["Directory"])
def process_delete_campaign(request: Request, campaign_id: str):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    directory.delete_campaign(current_user, campaign_id)
    return redirect("/campaigns", status="campaña_eliminada")


# --- 6. Support & Moderation ---

@app.get("/support", tags=["Support"])
def read_support(request: Request):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    return render(
        request, "support.html", current_user,
        tickets=moderation.tickets_for(current_user.email),
        my_reports=moderation.list_reports(reporter_email=current_user.email),
    )


@app.post("/support", tags=["Support"])
def process_support_ticket(
    request: Request,
    category: str = Form(...),
    subject: str = Form(...),
    description: str = Form(...),
    related_report_id: Optional[str] = Form(None),
):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    try:
        moderation.create_ticket(current_user, category, subject, description,
                                 related_report_id=_blank_to_none(related_report_id))
    except MasPatasError as e:
        return redirect("/support", error=e.message)
    return redirect("/support", status="ticket_creado")


@app.get("/reports", tags=["Support"])
def read_my_reports(request: Request):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect()
    return render(request, "reports.html", current_user,
                  reports=moderation.list_reports(reporter_email=current_user.email))


@app.post("/reports", tags=["Support"])
def process_create_report(
    request: Request,
    type: str = Form(...),
    target_id: str = Form(...),
    reason: str = Form(...),
    details: str = Form(""),
):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return login_redirect("Inicia sesión para reportar contenido.")
    moderation.create_report(current_user, type, target_id, reason, details)
    return redirect(_back(request, "/reports"), status="reporte_enviado")


# --- 7. Admin Panel (PROTECTED) ---

def _staff_or_redirect(request: Request, admins_only: bool = False):
    user_role, current_user = resolve_user(request)
    allowed = accounts.is_admin(current_user) if admins_only else accounts.is_staff(current_user)
    if not allowed:
        return None, login_redirect("Se requiere acceso de administrador.")
    return current_user, None


@app.get("/admin/dashboard", tags=["Admin Panel"])
def read_admin_dashboard(request: Request, range: str = "all"):
    current_user, denied = _staff_or_redirect(request)
    if denied:
        return denied
    stats = admin.admin_stats(range if range in admin.DATE_RANGES else "all")
    return render(
        request, "admin_dashboard.html", current_user,
        stats=stats,
        date_range=range,
        pending_reports=moderation.pending_reports_count(),
        logs=list(reversed(store.logs[-10:])),
    )


@app.get("/admin/users", tags=["Admin Panel"])
def read_admin_users(request: Request, q: str = ""):
    current_user, denied = _staff_or_redirect(request, admins_only=True)
    if denied:
        return denied
    rows = sorted(store.users, key=lambda u: u.created_at, reverse=True)
    if q:
        needle = q.lower()
        rows = [u for u in rows if needle in u.email.lower() or needle in (u.username or "").lower()]
    return render(request, "admin_users.html", current_user, users=rows, q=q)


@app.post("/admin/users/{user_id}/role", tags=["Admin Panel"])
def admin_set_role(request: Request, user_id: str, role: str = Form(...)):
    current_user, denied = _staff_or_redirect(request, admins_only=True)
    if denied:
        return denied
    accounts.set_role(current_user, user_id, role)
    return redirect("/admin/users", status="rol_actualizado")


@app.post("/admin/users/{user_id}/status", tags=["Admin Panel"])
def admin_set_status(request: Request, user_id: str, status: str = Form(...)):
    current_user, denied = _staff_or_redirect(request, admins_only=True)
    if denied:
        return denied
    accounts.set_status(current_user, user_id, status)
    return redirect("/admin/users", status="estado_actualizado")


@app.post("/admin/users/{user_id}/delete", tags=["Admin Panel"])
def admin_delete_user(request: Request, user_id: str):
    current_user, denied = _staff_or_redirect(request, admins_only=True)
    if denied:
        return denied
    accounts.delete_user(current_user, user_id)
    return redirect("/admin/users", status="usuario_eliminado")


@app.post("/admin/users/{user_id}/ghost", tags=["Admin Panel"])
def admin_start_ghost(request: Request, user_id: str):
    current_user, denied = _staff_or_redirect(request, admins_only=True)
    if denied:
        return denied
    target = accounts.start_ghosting(current_user, user_id)
    request.session["ghost_admin_id"] = str(current_user.id)
    request.session["user_id"] = str(target.id)
    return redirect("/")


@app.post("/admin/stop-ghost", tags=["Admin Panel"])
def admin_stop_ghost(request: Request):
    admin_id = request.session.get("ghost_admin_id")
    if not admin_id:
        return redirect("/")
    admin_user = accounts.stop_ghosting(admin_id)
    request.session.pop("ghost_admin_id", None)
    request.session["user_id"] = str(admin_user.id)
    request.session["last_active"] = datetime.now(timezone.utc).isoformat()
    return redirect("/admin/users")


@app.get("/admin/reports", tags=["Admin Panel"])
def read_admin_reports(request: Request, status: str = ""):
    current_user, denied = _staff_or_redirect(request)
    if denied:
        return denied
    return render(request, "admin_reports.html", current_user,
                  reports=moderation.list_reports(status=status or None), selected_status=status)


@app.post("/admin/reports/{report_id}/status", tags=["Admin Panel"])
def admin_update_report(request: Request, report_id: str, status: str = Form(...)):
    current_user, denied = _staff_or_redirect(request)
    if denied:
        return denied
    moderation.update_report_status(current_user, report_id, status)
    return redirect("/admin/reports", status="reporte_actualizado")


@app.get("/admin/tickets", tags=["Admin Panel"])
def read_admin_tickets(request: Request):
    current_user, denied = _staff_or_redirect(request)
    if denied:
        return denied
    staff = [u for u in store.users if accounts.is_staff(u)]
    return render(request, "admin_tickets.html", current_user, tickets=moderation.tickets_for(), staff=staff)


@app.post("/admin/tickets/{ticket_id}", tags=["Admin Panel"])
def admin_update_ticket(
    request: Request,
    ticket_id: str,
    status: Optional[str] = Form(None),
    response: Optional[str] = Form(None),
    assigned_to: Optional[str] = Form(None),
):
    current_user, denied = _staff_or_redirect(request)
    if denied:
        return denied
    moderation.update_ticket(current_user, ticket_id, status=_blank_to_none(status), response=response,
                             assigned_to=assigned_to)
    return redirect("/admin/tickets", status="ticket_actualizado")


@app.get("/admin/campaign-reports", tags=["Admin Panel"])
def read_admin_campaign_reports(request: Request, status: str = ""):
    current_user, denied = _staff_or_redirect(request)
    if denied:
        return denied
    return render(request, "admin_campaign_reports.html", current_user,
                  reports=directory.list_campaign_reports(current_user, status=status or None),
                  selected_status=status)


@app.post("/admin/campaign-reports/{report_id}/approve", tags=["Admin Panel"])
def admin_approve_campaign_report(
    request: Request,
    report_id: str,
    type: str = Form(...),
    title: Optional[str] = Form(None),
    date: Optional[str] = Form(None),
):
    current_user, denied = _staff_or_redirect(request)
    if denied:
        return denied
    campaign = directory.approve_campaign_report(current_user, report_id, type, title=title,
                                                 campaign_date=_blank_to_none(date))
    return redirect(f"/campaigns/{campaign.id}", status="campaña_creada")


@app.post("/admin/campaign-reports/{report_id}/reject", tags=["Admin Panel"])
def admin_reject_campaign_report(request: Request, report_id: str):
    current_user, denied = _staff_or_redirect(request)
    if denied:
        return denied
    directory.reject_campaign_report(current_user, report_id)
    return redirect("/admin/campaign-reports", status="reporte_rechazado")


@app.post("/admin/campaign-reports/{report_id}/delete", tags=["Admin Panel"])
def admin_delete_campaign_report(request: Request, report_id: str):
    current_user, denied = _staff_or_redirect(request)
    if denied:
        return denied
    directory.delete_campaign_report(current_user, report_id)
    return redirect("/admin/campaign-reports", status="reporte_eliminado")


@app.get("/admin/businesses", tags=["Admin Panel"])
def read_admin_businesses(request: Request):
    current_user, denied = _staff_or_redirect(request, admins_only=True)
    if denied:
        return denied
    return render(request, "admin_businesses.html", current_user, businesses=directory.list_businesses())


@app.post("/admin/businesses/{business_id}/verify", tags=["Admin Panel"])
def admin_verify_business(request: Request, business_id: str, verified: bool = Form(True)):
    current_user, denied = _staff_or_redirect(request, admins_only=True)
    if denied:
        return denied
    directory.verify_business(current_user, business_id, verified)
    return redirect("/admin/businesses", status="negocio_actualizado")


@app.post("/admin/businesses/{business_id}/delete", tags=["Admin Panel"])
def admin_delete_business(request: Request, business_id: str):
    current_user, denied = _staff_or_redirect(request, admins_only=True)
    if denied:
        return denied
    directory.delete_business(current_user, business_id)
    return redirect("/admin/businesses", status="negocio_eliminado")


@app.get("/admin/banned-ips", tags=["Admin Panel"])
def read_banned_ips(request: Request):
    current_user, denied = _staff_or_redirect(request, admins_only=True)
    if denied:
        return denied
    return render(request, "admin_banned_ips.html", current_user, banned=admin.list_banned_ips())


@app.post("/admin/banned-ips", tags=["Admin Panel"])
def admin_ban_ip(request: Request, ip_address: str = Form(...), reason: str = Form("")):
    current_user, denied = _staff_or_redirect(request, admins_only=True)
    if denied:
        return denied
    admin.ban_ip(current_user, ip_address, reason)
    return redirect("/admin/banned-ips", status="ip_bloqueada")


@app.post("/admin/banned-ips/{ban_id}/delete", tags=["Admin Panel"])
def admin_unban_ip(request: Request, ban_id: str):
    current_user, denied = _staff_or_redirect(request, admins_only=True)
    if denied:
        return denied
    admin.unban_ip(current_user, ban_id)
    return redirect("/admin/banned-ips", status="ip_desbloqueada")


@app.get("/admin/settings", tags=["Admin Panel"])
def read_admin_settings(request: Request):
    current_user, denied = _staff_or_redirect(request, admins_only=True)
    if denied:
        return denied
    return render(request, "admin_settings.html", current_user, settings=store.platform_settings)


@app.post("/admin/settings", tags=["Admin Panel"])
def admin_update_settings(
    request: Request,
    location_alerts_enabled: bool = Form(False),
    location_alert_radius_km: float = Form(...),
    location_alert_rate_limit_minutes: int = Form(...),
):
    current_user, denied = _staff_or_redirect(request, admins_only=True)
    if denied:
        return denied
    admin.update_platform_settings(current_user, location_alerts_enabled, location_alert_radius_km,
                                   location_alert_rate_limit_minutes)
    return redirect("/admin/settings", status="guardado")


@app.get("/admin/export/pets.csv", tags=["Admin Panel"])
def admin_export_pets_csv(request: Request):
    """Admin-only CSV export of pet reports."""
    current_user, denied = _staff_or_redirect(request, admins_only=True)
    if denied:
        return denied
    headers = {"Content-Disposition": "attachment; filename=pets_export.csv"}
    return Response(content=admin.export_pets_csv(), media_type="text/csv", headers=headers)


@app.get("/admin/export/pets.pdf", tags=["Admin Panel"])
def admin_export_pets_pdf(request: Request):
    """Admin-only PDF export of pet reports."""
    current_user, denied = _staff_or_redirect(request, admins_only=True)
    if denied:
        return denied
    headers = {"Content-Disposition": "attachment; filename=pets_export.pdf"}
    return Response(content=admin.export_pets_pdf(), media_type="application/pdf", headers=headers)


@app.get("/admin/exports", tags=["Admin Panel"])
def read_admin_exports(request: Request):
    current_user, denied = _staff_or_redirect(request, admins_only=True)
    if denied:
        return denied
    return render(request, "admin_exports.html", current_user,
                  exports=store.exports, scheduled=store.scheduled_exports)


@app.post("/admin/exports/generate", tags=["Admin Panel"])
def admin_generate_exports(request: Request):
    current_user, denied = _staff_or_redirect(request, admins_only=True)
    if denied:
        return denied
    admin.generate_exports(created_by=current_user.id)
    return redirect("/admin/exports", status="created")


@app.get("/admin/exports/generate", tags=["Admin Panel"])
def admin_generate_exports_get(request: Request):
    # Convenience GET endpoint to trigger generation from links
    current_user, denied = _staff_or_redirect(request, admins_only=True)
    if denied:
        return denied
    admin.generate_exports(created_by=current_user.id)
    return redirect("/admin/exports", status="created")


@app.get("/admin/exports/download/{export_id}/{filetype}", tags=["Admin Panel"])
def admin_export_download(request: Request, export_id: str, filetype: str):
    current_user, denied = _staff_or_redirect(request, admins_only=True)
    if denied:
        return denied
    try:
        path = admin.export_path(export_id, filetype)
    except MasPatasError as e:
        return redirect("/admin/exports", error=e.message)
    return FileResponse(path, filename=os.path.basename(path))


@app.post("/admin/exports/schedule", tags=["Admin Panel"])
def admin_schedule_export(request: Request, frequency_minutes: int = Form(...), start_immediately: bool = Form(False)):
    current_user, denied = _staff_or_redirect(request, admins_only=True)
    if denied:
        return denied
    admin.schedule_export(current_user.id, frequency_minutes)
    if start_immediately:
        admin.generate_exports(created_by=current_user.id)
    return redirect("/admin/exports", status="scheduled")


@app.post("/admin/exports/run", tags=["Admin Panel"])
def admin_run_scheduled(request: Request):
    """Trigger the scheduled job runner immediately."""
    current_user, denied = _staff_or_redirect(request, admins_only=True)
    if denied:
        return denied
    admin.check_and_run_scheduled_exports()
    store.audit(f"Manual scheduled-run triggered by {current_user.email}")
    return redirect("/admin/exports", status="ran")


@app.post("/admin/exports/unschedule", tags=["Admin Panel"])
def admin_unschedule_export(request: Request, job_id: str = Form(...)):
    current_user, denied = _staff_or_redirect(request, admins_only=True)
    if denied:
        return denied
    admin.unschedule_export(job_id)
    return redirect("/admin/exports", status="unscheduled")


# --- 8. JSON API ---

def _api_login_required() -> JSONResponse:
    return JSONResponse({"detail": "Debes iniciar sesión."}, status_code=401)


def _pet_view(pet) -> dict:
    return mappers.map_pet_from_db(pet, profiles=store.users, comments=store.comments, likes=store.comment_likes)


@app.get("/api/pets", tags=["API"])
def api_list_pets(
    request: Request,
    status: str = TODOS,
    type: str = TODOS,
    breed: str = TODOS,
    size: str = TODOS,
    color1: str = TODOS,
    color2: str = TODOS,
    color3: str = TODOS,
    department: str = TODOS,
    page: int = Query(0, ge=0),
    page_size: int = Query(settings.PAGE_SIZE, ge=1, le=100),
):
    filters = PetFilters(status=status, type=type, breed=breed, size=size, color1=color1, color2=color2,
                         color3=color3, department=department)
    if filters.status == TODOS:
        rows = pets.dashboard_pets(filters)
        return {"data": [_pet_view(p) for p in rows], "nextCursor": None, "total": len(rows)}
    items, next_page, total = pets.list_pets(filters, page=page, page_size=page_size)
    return {"data": [_pet_view(p) for p in items], "nextCursor": next_page, "total": total}


@app.get("/api/pets/{pet_id}", tags=["API"])
def api_get_pet(pet_id: str):
    return _pet_view(pets.get_pet(pet_id))


@app.get("/api/pets/{pet_id}/matches", tags=["API"])
def api_pet_matches(pet_id: str):
    pet = pets.get_pet(pet_id)
    return [
        {"pet": _pet_view(m.pet), "score": m.score, "explanation": m.explanation}
        for m in matching.find_matching_pets(pet)
    ]


@app.get("/api/map/pets", tags=["API"])
def api_map_pets():
    return [
        {
            "id": str(p.id),
            "lat": p.lat,
            "lng": p.lng,
            "status": p.status,
            "animalType": p.animal_type,
            "name": p.name,
            "breed": p.breed,
            "imageUrl": p.image_urls[0] if p.image_urls else None,
            "url": f"/pets/{p.id}",
        }
        for p in pets.pets_for_map()
    ]


@app.get("/api/map/campaigns", tags=["API"])
def api_map_campaigns():
    return [
        {
            "id": str(c.id),
            "lat": c.lat,
            "lng": c.lng,
            "title": c.title,
            "type": c.type,
            "date": c.date,
            "url": f"/campaigns/{c.id}",
        }
        for c in directory.campaigns_for_map()
    ]


@app.get("/api/map/businesses", tags=["API"])
def api_map_businesses():
    return [
        dict(mappers.map_business_from_db(b), url=f"/businesses/{b.id}")
        for b in directory.businesses_for_map()
    ]


@app.get("/api/geocode/search", tags=["API"])
def api_geocode_search(q: str, limit: int = 5):
    return geocoding.search(q, limit=limit)


@app.get("/api/geocode/reverse", tags=["API"])
def api_geocode_reverse(lat: float, lng: float):
    return geocoding.reverse(lat, lng)


@app.get("/api/leaderboard", tags=["API"])
def api_leaderboard():
    return gamification.weekly_leaderboard()


@app.get("/api/users/{user_id}/gamification", tags=["API"])
def api_user_gamification(user_id: str):
    user = accounts.get_user_or_404(user_id)
    summary = gamification.user_summary(user.id)
    summary["history"] = mappers.map_rows(gamification.user_history(user.id))
    return summary


@app.get("/api/notifications/unread-count", tags=["API"])
def api_unread_count(request: Request):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return _api_login_required()
    return {
        "count": community.unread_count(current_user),
        "chats": community.unread_chats_count(current_user.email),
    }


@app.post("/api/ai/describe", tags=["API"])
def api_generate_description(
    request: Request,
    animal_type: str = Form(...),
    breed: str = Form(""),
    color: str = Form(""),
):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return _api_login_required()
    return {"description": matching.generate_pet_description(animal_type, breed or "Mestizo", color)}


@app.post("/api/ai/analyze-image", tags=["API"])
def api_analyze_image(request: Request, image: UploadFile = File(...)):
    user_role, current_user = resolve_user(request)
    if not current_user:
        return _api_login_required()
    return matching.analyze_pet_image(image.file.read(), image.content_type or "image/jpeg")
