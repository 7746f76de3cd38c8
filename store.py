"""In-process tables persisted to a JSON state file.

Every table is a module-level list that is mutated in place, so references held
elsewhere (route modules, tests) stay valid across ``load_state`` and ``reset``.
"""
import json
import os
from typing import Dict, List, Optional

from loguru import logger

import settings
from schemas import (
    ActivityLog,
    BannedIp,
    Business,
    BusinessProduct,
    Campaign,
    CampaignReport,
    Chat,
    Comment,
    CommentLike,
    Message,
    Notification,
    Pet,
    PlatformSettings,
    Report,
    SavedSearch,
    SupportTicket,
    UserAccount,
    UserRating,
    now_iso,
)

# --- Data Structures ---
users: List[UserAccount] = []
pets: List[Pet] = []
comments: List[Comment] = []
comment_likes: List[CommentLike] = []
ratings: List[UserRating] = []
notifications: List[Notification] = []
saved_searches: List[SavedSearch] = []
chats: List[Chat] = []
messages: List[Message] = []
businesses: List[Business] = []
business_products: List[BusinessProduct] = []
campaigns: List[Campaign] = []
campaign_reports: List[CampaignReport] = []
reports: List[Report] = []
support_tickets: List[SupportTicket] = []
banned_ips: List[BannedIp] = []
activity_logs: List[ActivityLog] = []

# Admin-visible audit trail
logs: List[str] = []

# Persisted export records (generated files metadata) and scheduled export jobs
exports: List[dict] = []
scheduled_exports: List[dict] = []

# user id -> ISO timestamp of the last proximity alert sent to that user
proximity_alert_log: Dict[str, str] = {}

platform_settings = PlatformSettings()

# Per-IP failed login timestamps; not persisted
LOGIN_ATTEMPTS: Dict[str, List[float]] = {}

TABLES = {
    "users": (users, UserAccount),
    "pets": (pets, Pet),
    "comments": (comments, Comment),
    "comment_likes": (comment_likes, CommentLike),
    "ratings": (ratings, UserRating),
    "notifications": (notifications, Notification),
    "saved_searches": (saved_searches, SavedSearch),
    "chats": (chats, Chat),
    "messages": (messages, Message),
    "businesses": (businesses, Business),
    "business_products": (business_products, BusinessProduct),
    "campaigns": (campaigns, Campaign),
    "campaign_reports": (campaign_reports, CampaignReport),
    "reports": (reports, Report),
    "support_tickets": (support_tickets, SupportTicket),
    "banned_ips": (banned_ips, BannedIp),
    "activity_logs": (activity_logs, ActivityLog),
}


def audit(message: str):
    """Append to the admin audit trail and the application log."""
    logs.append(f"{now_iso()} {message}")
    logger.info(message)


# --- Persistence ---
def _ensure_state_dir():
    os.makedirs(os.path.dirname(settings.STATE_FILE) or ".", exist_ok=True)


def save_state():
    _ensure_state_dir()
    data = {name: [row.model_dump(mode="json") for row in table] for name, (table, _) in TABLES.items()}
    data["logs"] = logs[-200:]  # keep last 200 entries
    data["exports"] = list(exports)
    data["scheduled_exports"] = list(scheduled_exports)
    data["proximity_alert_log"] = dict(proximity_alert_log)
    data["platform_settings"] = platform_settings.model_dump()
    with open(settings.STATE_FILE, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)


def load_state():
    if not os.path.exists(settings.STATE_FILE):
        return
    with open(settings.STATE_FILE, "r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError:
            # An empty or truncated state file is treated as no state
            logger.warning(f"Ignoring unreadable state file {settings.STATE_FILE}")
            return

    if not isinstance(data, dict):
        logger.warning(f"Ignoring state file without a top-level object: {settings.STATE_FILE}")
        return

    for name, (table, model) in TABLES.items():
        table.clear()
        table.extend(model.model_validate(row) for row in data.get(name, []))

    logs.clear()
    logs.extend(data.get("logs", []))
    exports.clear()
    exports.extend(data.get("exports", []))
    scheduled_exports.clear()
    scheduled_exports.extend(data.get("scheduled_exports", []))
    proximity_alert_log.clear()
    proximity_alert_log.update(data.get("proximity_alert_log", {}))

    stored_settings = PlatformSettings.model_validate(data.get("platform_settings", {}))
    for field, value in stored_settings.model_dump().items():
        setattr(platform_settings, field, value)
    logger.info(f"Loaded state: {len(users)} users, {len(pets)} pets")


def reset():
    """Empty every table (the on-disk state file is left alone)."""
    for table, _ in TABLES.values():
        table.clear()
    logs.clear()
    exports.clear()
    scheduled_exports.clear()
    proximity_alert_log.clear()
    LOGIN_ATTEMPTS.clear()
    defaults = PlatformSettings()
    for field, value in defaults.model_dump().items():
        setattr(platform_settings, field, value)


# --- Finders ---
def same_id(a, b) -> bool:
    return a is not None and b is not None and str(a) == str(b)


def find_user(user_id) -> Optional[UserAccount]:
    return next((u for u in users if same_id(u.id, user_id)), None)


def find_user_by_email(email: Optional[str]) -> Optional[UserAccount]:
    if not email:
        return None
    email = email.strip().lower()
    return next((u for u in users if u.email.lower() == email), None)


def find_pet(pet_id) -> Optional[Pet]:
    return next((p for p in pets if same_id(p.id, pet_id)), None)


def find_comment(comment_id) -> Optional[Comment]:
    return next((c for c in comments if same_id(c.id, comment_id)), None)


def find_business(business_id) -> Optional[Business]:
    return next((b for b in businesses if same_id(b.id, business_id)), None)


def find_product(product_id) -> Optional[BusinessProduct]:
    return next((p for p in business_products if same_id(p.id, product_id)), None)


def find_campaign(campaign_id) -> Optional[Campaign]:
    return next((c for c in campaigns if same_id(c.id, campaign_id)), None)


def find_campaign_report(report_id) -> Optional[CampaignReport]:
    return next((r for r in campaign_reports if same_id(r.id, report_id)), None)


def find_report(report_id) -> Optional[Report]:
    return next((r for r in reports if same_id(r.id, report_id)), None)


def find_ticket(ticket_id) -> Optional[SupportTicket]:
    return next((t for t in support_tickets if same_id(t.id, ticket_id)), None)


def find_chat(chat_id) -> Optional[Chat]:
    return next((c for c in chats if same_id(c.id, chat_id)), None)


def find_notification(notification_id) -> Optional[Notification]:
    return next((n for n in notifications if same_id(n.id, notification_id)), None)
