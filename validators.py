"""
Form validation for accounts, profiles and ratings.

Every check raises ``errors.ValidationError`` with the message shown to the
user, so handlers can surface it directly.
"""
import ipaddress
import re
from datetime import date, datetime
from typing import Optional

from errors import ValidationError

DNI_PATTERN = re.compile(r"^\d{8}$")
PHONE_PATTERN = re.compile(r"^9\d{8}$")
EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
SOCIAL_LINK_PATTERN = re.compile(r"^(https?://)?(www\.)?(facebook\.com|fb\.com|instagram\.com|instagr\.am)/.+", re.IGNORECASE)
MINIMUM_AGE = 13
MINIMUM_PASSWORD_STRENGTH = 2


def validate_email(email: str) -> str:
    email = (email or "").strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Ingresa un correo electrónico válido.")
    return email


def validate_dni(dni: str) -> str:
    dni = (dni or "").strip()
    if not DNI_PATTERN.match(dni):
        raise ValidationError("El DNI es obligatorio y debe contener 8 dígitos.")
    return dni


def validate_phone(phone: str) -> str:
    phone = (phone or "").strip()
    if not PHONE_PATTERN.match(phone):
        raise ValidationError("El Teléfono de Contacto es obligatorio, debe tener 9 dígitos y empezar con 9.")
    return phone


def validate_age(birth_date: str, minimum: int = MINIMUM_AGE, today: Optional[date] = None) -> date:
    try:
        born = datetime.strptime(birth_date, "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise ValidationError("Ingresa una fecha de nacimiento válida.")
    today = today or date.today()
    # Year difference only, matching the registration form's check
    if today.year - born.year < minimum:
        raise ValidationError(f"Debes tener al menos {minimum} años para registrarte.")
    return born


def password_strength(password: str) -> int:
    """Score 0-4: length >= 8, an uppercase letter, a digit, a symbol."""
    if not password:
        return 0
    score = 0
    if len(password) >= 8:
        score += 1
    if re.search(r"[A-Z]", password):
        score += 1
    if re.search(r"[0-9]", password):
        score += 1
    if re.search(r"[^A-Za-z0-9]", password):
        score += 1
    return score


def validate_new_password(password: str, confirm_password: str):
    if not password:
        raise ValidationError("Debes crear una contraseña para asegurar tu cuenta.")
    if password != confirm_password:
        raise ValidationError("Las contraseñas no coinciden.")
    if password_strength(password) < MINIMUM_PASSWORD_STRENGTH:
        raise ValidationError("La contraseña es demasiado débil. Usa al menos 8 caracteres y una mayúscula o número.")


def validate_profile(username: str, first_name: str, last_name: str, dni: str, phone: str, birth_date: str, country: str) -> dict:
    required = [username, first_name, last_name, dni, phone, birth_date, country]
    if any(not (field or "").strip() for field in required):
        raise ValidationError("Por favor, completa todos los campos obligatorios (*).")
    validate_dni(dni)
    validate_phone(phone)
    validate_age(birth_date)
    return {
        "username": username.strip(),
        "first_name": first_name.strip(),
        "last_name": last_name.strip(),
        "dni": dni.strip(),
        "phone": phone.strip(),
        "birth_date": birth_date,
        "country": country.strip(),
    }


def validate_rating(rating) -> int:
    try:
        value = int(rating)
    except (TypeError, ValueError):
        raise ValidationError("La calificación debe ser un número entre 1 y 5.")
    if value < 1 or value > 5:
        raise ValidationError("La calificación debe ser un número entre 1 y 5.")
    return value


def validate_ip(ip_address: str) -> str:
    try:
        return str(ipaddress.ip_address((ip_address or "").strip()))
    except ValueError:
        raise ValidationError("Dirección IP inválida.")


def validate_coordinates(lat: Optional[float], lng: Optional[float]):
    if lat is None and lng is None:
        return None, None
    if lat is None or lng is None or not (-90 <= lat <= 90) or not (-180 <= lng <= 180):
        raise ValidationError("Coordenadas inválidas.")
    return lat, lng


def validate_choice(value: str, choices, label: str) -> str:
    if value not in choices:
        raise ValidationError(f"{label} inválido: {value}")
    return value


def validate_social_link(link: str) -> str:
    """Campaign reports must point at a Facebook or Instagram post."""
    link = (link or "").strip()
    if not link:
        raise ValidationError("El link de Facebook o Instagram es obligatorio.")
    if not SOCIAL_LINK_PATTERN.match(link):
        raise ValidationError("Por favor, ingresa un link válido de Facebook o Instagram.")
    return link
