from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel

from constants import CampaignReportStatus, Role, UserStatus, ReportStatus, TicketStatus


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# --- User Schemas ---
class OwnedPet(BaseModel):
    id: UUID
    name: str
    animal_type: str  # 'Perro' or 'Gato'
    breed: str
    colors: List[str] = []
    description: Optional[str] = None
    image_urls: List[str] = []


class UserAccount(BaseModel):
    id: UUID
    email: str  # Used as username for login
    password: str  # passlib hash
    role: str = Role.USER
    status: str = UserStatus.ACTIVE
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    dni: Optional[str] = None
    birth_date: Optional[str] = None
    country: Optional[str] = "Perú"
    avatar_url: Optional[str] = None
    owned_pets: List[OwnedPet] = []
    saved_pet_ids: List[str] = []
    # Last known location, used for proximity alerts
    lat: Optional[float] = None
    lng: Optional[float] = None
    location_updated_at: Optional[str] = None
    last_ip: Optional[str] = None
    business_id: Optional[UUID] = None
    created_at: str = ""
    updated_at: Optional[str] = None

    @property
    def display_name(self) -> str:
        full = " ".join(p for p in (self.first_name, self.last_name) if p)
        return self.username or full or self.email.split("@")[0]

    @property
    def profile_complete(self) -> bool:
        return bool(self.username and self.first_name and self.last_name and self.dni and self.phone)


# --- Pet Schemas ---
class Pet(BaseModel):
    id: UUID
    user_id: UUID
    status: str
    name: Optional[str] = None
    animal_type: str
    breed: Optional[str] = None
    color: Optional[str] = None
    size: Optional[str] = None
    location: Optional[str] = None
    date: Optional[str] = None  # date lost / found / sighted
    contact: Optional[str] = None
    description: Optional[str] = None
    image_urls: List[str] = []
    adoption_requirements: Optional[str] = None
    share_contact_info: bool = True
    contact_requests: List[str] = []
    reward: Optional[float] = None
    currency: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    embedding: List[float] = []
    created_at: str
    expires_at: Optional[str] = None
    reunion_story: Optional[str] = None
    reunion_date: Optional[str] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if not self.expires_at:
            return False
        expires = datetime.fromisoformat(self.expires_at)
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        return expires <= (now or datetime.now(timezone.utc))


class PetFilters(BaseModel):
    status: str = "Todos"
    type: str = "Todos"
    breed: str = "Todos"
    size: str = "Todos"
    color1: str = "Todos"
    color2: str = "Todos"
    color3: str = "Todos"
    department: str = "Todos"


class PotentialMatch(BaseModel):
    pet: Pet
    score: int
    explanation: str


# --- Community ---
class Comment(BaseModel):
    id: UUID
    pet_id: UUID
    user_id: Optional[UUID] = None
    user_email: str
    user_name: str
    text: str
    parent_id: Optional[UUID] = None
    created_at: str


class CommentLike(BaseModel):
    comment_id: UUID
    user_id: UUID
    created_at: Optional[str] = None


class UserRating(BaseModel):
    id: UUID
    rater_id: UUID
    rated_user_id: UUID
    rating: int  # 1-5 stars
    comment: str = ""
    created_at: str


class Notification(BaseModel):
    id: UUID
    user_id: UUID
    message: str
    link: Optional[str] = None
    is_read: bool = False
    created_at: str


class SavedSearch(BaseModel):
    id: UUID
    user_id: UUID
    name: str
    filters: Dict[str, Any] = {}
    created_at: str


class Chat(BaseModel):
    id: UUID
    pet_id: Optional[UUID] = None
    participant_emails: List[str] = []
    last_read_timestamps: Dict[str, str] = {}
    created_at: str


class Message(BaseModel):
    id: UUID
    chat_id: UUID
    sender_email: str
    text: str
    created_at: str


# --- Directory ---
class Business(BaseModel):
    id: UUID
    owner_id: Optional[UUID] = None
    name: str
    type: str
    description: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    whatsapp: Optional[str] = None
    website: Optional[str] = None
    facebook: Optional[str] = None
    instagram: Optional[str] = None
    logo_url: Optional[str] = None
    cover_url: Optional[str] = None
    services: List[str] = []
    is_verified: bool = False
    lat: Optional[float] = None
    lng: Optional[float] = None
    created_at: str


class BusinessProduct(BaseModel):
    id: UUID
    business_id: UUID
    name: str
    description: Optional[str] = None
    price: Optional[float] = None
    image_url: Optional[str] = None
    created_at: str


class Campaign(BaseModel):
    id: UUID
    user_email: Optional[str] = None
    type: str
    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    date: Optional[str] = None  # YYYY-MM-DD
    contact_phone: Optional[str] = None
    image_urls: List[str] = []
    lat: Optional[float] = None
    lng: Optional[float] = None
    created_at: str


class CampaignReport(BaseModel):
    """A campaign spotted by a user, waiting for staff to publish it."""
    id: UUID
    user_id: Optional[UUID] = None
    user_email: Optional[str] = None
    address: str
    social_link: str
    image_url: Optional[str] = None
    district: str
    province: str
    department: str
    status: str = CampaignReportStatus.PENDING
    campaign_id: Optional[UUID] = None
    created_at: str
    updated_at: Optional[str] = None


# --- Moderation / support ---
class Report(BaseModel):
    id: UUID
    reporter_email: str
    reported_email: str = ""
    type: str  # 'post', 'user' or 'comment'
    target_id: str
    reason: str
    details: Optional[str] = None
    status: str = ReportStatus.PENDING
    post_snapshot: Optional[Dict[str, Any]] = None
    created_at: str


class SupportTicket(BaseModel):
    id: UUID
    user_email: str
    category: str
    subject: str
    description: str
    status: str = TicketStatus.PENDING
    response: Optional[str] = None
    assigned_to: Optional[str] = None
    assignment_history: List[Dict[str, Any]] = []
    related_report_id: Optional[UUID] = None
    created_at: str


class BannedIp(BaseModel):
    id: UUID
    ip_address: str
    reason: Optional[str] = None
    created_at: str


class ActivityLog(BaseModel):
    id: UUID
    user_id: UUID
    action_type: str
    points: int
    details: Optional[Dict[str, Any]] = None
    created_at: str


class PlatformSettings(BaseModel):
    location_alerts_enabled: bool = True
    location_alert_radius_km: float = 3.0
    location_alert_rate_limit_minutes: int = 60
