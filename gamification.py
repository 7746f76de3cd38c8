"""
Gamification: activity points, levels and the weekly leaderboard.

Levels are a fixed lookup table keyed by a running points total. Points shown
on a profile are derived from reports filed and ratings received; the
leaderboard ranks the activity points logged in the last seven days.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from loguru import logger

import store
from schemas import ActivityLog, now_iso

POINTS_CONFIG = {
    "REPORT_PET": 15,
    "COMMENT_ADDED": 5,
    "PET_REUNITED": 50,
    "SHARE_POST": 10,
    "DAILY_LOGIN": 5,
}

ACTION_TYPES = {
    "REPORT_PET": "report_pet",
    "COMMENT_ADDED": "comment_added",
    "PET_REUNITED": "pet_reunited",
    "SHARE_POST": "share_post",
    "DAILY_LOGIN": "daily_login",
}

LEVELS = [
    {"min": 0, "max": 99, "name": "Chihuahua", "title": "Novato"},
    {"min": 100, "max": 299, "name": "Pug", "title": "Activo"},
    {"min": 300, "max": 599, "name": "Beagle", "title": "Rastreador"},
    {"min": 600, "max": 999, "name": "Border Collie", "title": "Guardián"},
    {"min": 1000, "max": 1999, "name": "Golden Retriever", "title": "Héroe"},
    {"min": 2000, "max": float("inf"), "name": "Gran Danés", "title": "Leyenda"},
]


def get_level_from_points(points: float) -> Dict[str, Any]:
    return next((l for l in LEVELS if l["min"] <= points <= l["max"]), LEVELS[-1])


def next_level(level: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    return next((l for l in LEVELS if l["min"] > level["max"]), None)


def progress(points: float) -> float:
    """Percent of the way through the current level; 100 at the top level."""
    level = get_level_from_points(points)
    if next_level(level) is None:
        return 100.0
    span = level["max"] - level["min"]
    if span <= 0:
        return 100.0
    return min(100.0, max(0.0, (points - level["min"]) / span * 100))


def compute_points(reports: int, ratings: int, avg_rating: float) -> int:
    return round(reports * POINTS_CONFIG["REPORT_PET"] + ratings * 10 + avg_rating * 20)


def user_points(user_id) -> int:
    reports = len([p for p in store.pets if store.same_id(p.user_id, user_id)])
    received = [r.rating for r in store.ratings if store.same_id(r.rated_user_id, user_id)]
    avg = sum(received) / len(received) if received else 0
    return compute_points(reports, len(received), avg)


def user_summary(user_id) -> Dict[str, Any]:
    points = user_points(user_id)
    level = get_level_from_points(points)
    upcoming = next_level(level)
    return {
        "points": points,
        "level": {"name": level["name"], "title": level["title"], "min": level["min"]},
        "nextLevel": {"name": upcoming["name"], "title": upcoming["title"], "min": upcoming["min"]} if upcoming else None,
        "progress": round(progress(points), 1),
    }


def log_activity(user_id, action_type: str, points: int, details: Optional[dict] = None) -> ActivityLog:
    entry = ActivityLog(
        id=uuid4(),
        user_id=user_id,
        action_type=action_type,
        points=points,
        details=details,
        created_at=now_iso(),
    )
    store.activity_logs.append(entry)
    logger.debug(f"Activity {action_type} (+{points}) for user {user_id}")
    return entry


def has_logged_today(user_id, action_type: str, now: Optional[datetime] = None) -> bool:
    today = (now or datetime.now(timezone.utc)).date().isoformat()
    return any(
        store.same_id(a.user_id, user_id) and a.action_type == action_type and a.created_at.startswith(today)
        for a in store.activity_logs
    )


def user_history(user_id, limit: int = 50) -> List[ActivityLog]:
    history = [a for a in store.activity_logs if store.same_id(a.user_id, user_id)]
    history.sort(key=lambda a: a.created_at, reverse=True)
    return history[:limit]


def weekly_leaderboard(now: Optional[datetime] = None, limit: int = 10) -> List[Dict[str, Any]]:
    now = now or datetime.now(timezone.utc)
    since = now - timedelta(days=7)
    totals: Dict[str, int] = {}
    for entry in store.activity_logs:
        created = datetime.fromisoformat(entry.created_at)
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        if since <= created <= now:
            key = str(entry.user_id)
            totals[key] = totals.get(key, 0) + entry.points

    rows = []
    for user_id, total in totals.items():
        user = store.find_user(user_id)
        if not user:
            continue
        rows.append({
            "user_id": user_id,
            "username": user.display_name,
            "avatar_url": user.avatar_url or "",
            "total_points": total,
        })
    rows.sort(key=lambda r: (-r["total_points"], r["username"].lower()))
    for rank, row in enumerate(rows[:limit], start=1):
        row["rank"] = rank
    return rows[:limit]
