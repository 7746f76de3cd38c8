"""
Community features: notifications, comments and likes, user ratings and chats.
"""
from datetime import datetime, timezone
from typing import List, Optional, Tuple
from uuid import uuid4

from loguru import logger

import accounts
import gamification
import store
import validators
from errors import NotFoundError, PermissionDeniedError, ValidationError
from schemas import Chat, Comment, CommentLike, Message, Notification, UserAccount, UserRating, now_iso

MESSAGE_PREVIEW_LENGTH = 50


# --- Notifications ---
def notify(user_id, message: str, link: Optional[str] = None) -> Notification:
    n = Notification(id=uuid4(), user_id=user_id, message=message, link=link, created_at=now_iso())
    store.notifications.append(n)
    logger.debug(f"Notification for {user_id}: {message}")
    return n


def notifications_for(user: UserAccount) -> List[Notification]:
    """Unread first, newest first within each group."""
    mine = [n for n in store.notifications if store.same_id(n.user_id, user.id)]
    mine.sort(key=lambda n: n.created_at, reverse=True)
    mine.sort(key=lambda n: n.is_read)
    return mine


def unread_count(user: UserAccount) -> int:
    return len([n for n in store.notifications if store.same_id(n.user_id, user.id) and not n.is_read])


def _own_notification(user: UserAccount, notification_id) -> Notification:
    n = store.find_notification(notification_id)
    if not n:
        raise NotFoundError("Notificación no encontrada.")
    if not store.same_id(n.user_id, user.id):
        raise PermissionDeniedError("Acción no permitida.")
    return n


def mark_read(user: UserAccount, notification_id) -> Notification:
    n = _own_notification(user, notification_id)
    n.is_read = True
    store.save_state()
    return n


def mark_all_read(user: UserAccount) -> int:
    changed = 0
    for n in store.notifications:
        if store.same_id(n.user_id, user.id) and not n.is_read:
            n.is_read = True
            changed += 1
    store.save_state()
    return changed


def delete_notification(user: UserAccount, notification_id):
    n = _own_notification(user, notification_id)
    store.notifications.remove(n)
    store.save_state()


# --- Comments ---
def add_comment(user: UserAccount, pet_id, text: str, parent_id=None) -> Comment:
    pet = store.find_pet(pet_id)
    if not pet:
        raise NotFoundError("Publicación no encontrada.")
    text = (text or "").strip()
    if not text:
        raise ValidationError("El comentario no puede estar vacío.")
    if parent_id:
        parent = store.find_comment(parent_id)
        if not parent or not store.same_id(parent.pet_id, pet.id):
            raise ValidationError("El comentario al que respondes no existe.")
        parent_id = parent.id

    comment = Comment(
        id=uuid4(),
        pet_id=pet.id,
        user_id=user.id,
        user_email=user.email,
        user_name=user.display_name,
        text=text,
        parent_id=parent_id,
        created_at=now_iso(),
    )
    store.comments.append(comment)

    if not store.same_id(pet.user_id, user.id):
        notify(pet.user_id, f"{user.display_name} comentó en tu publicación de {pet.name or pet.animal_type}.",
               link=f"/pets/{pet.id}")
    gamification.log_activity(user.id, gamification.ACTION_TYPES["COMMENT_ADDED"],
                              gamification.POINTS_CONFIG["COMMENT_ADDED"], {"pet_id": str(pet.id)})
    store.save_state()
    return comment


def _descendant_ids(comment_id) -> set:
    ids = {str(comment_id)}
    frontier = [str(comment_id)]
    while frontier:
        current = frontier.pop()
        for c in store.comments:
            if c.parent_id and str(c.parent_id) == current and str(c.id) not in ids:
                ids.add(str(c.id))
                frontier.append(str(c.id))
    return ids


def remove_comment_tree(comment_id) -> int:
    """Remove a comment, its replies and their likes. Returns the number of comments removed."""
    doomed = _descendant_ids(comment_id)
    store.comments[:] = [c for c in store.comments if str(c.id) not in doomed]
    store.comment_likes[:] = [l for l in store.comment_likes if str(l.comment_id) not in doomed]
    return len(doomed)


def delete_comment(actor: UserAccount, comment_id):
    comment = store.find_comment(comment_id)
    if not comment:
        raise NotFoundError("Comentario no encontrado.")
    if not accounts.can_modify(actor, comment.user_id):
        raise PermissionDeniedError("Solo el autor puede eliminar este comentario.")
    removed = remove_comment_tree(comment.id)
    store.audit(f"{actor.email} deleted comment {comment.id} ({removed} with replies)")
    store.save_state()
    return comment


def toggle_comment_like(user: UserAccount, comment_id) -> bool:
    comment = store.find_comment(comment_id)
    if not comment:
        raise NotFoundError("Comentario no encontrado.")
    existing = next(
        (l for l in store.comment_likes if store.same_id(l.comment_id, comment.id) and store.same_id(l.user_id, user.id)),
        None,
    )
    if existing:
        store.comment_likes.remove(existing)
        liked = False
    else:
        store.comment_likes.append(CommentLike(comment_id=comment.id, user_id=user.id, created_at=now_iso()))
        liked = True
    store.save_state()
    return liked


def comments_for_pet(pet_id) -> List[dict]:
    rows = [c for c in store.comments if store.same_id(c.pet_id, pet_id)]
    rows.sort(key=lambda c: c.created_at)
    out = []
    for c in rows:
        likes = [str(l.user_id) for l in store.comment_likes if store.same_id(l.comment_id, c.id)]
        out.append({"comment": c, "likes": likes})
    return out


# --- Ratings ---
def rate_user(rater: UserAccount, rated_id, rating, comment: str = "") -> UserRating:
    value = validators.validate_rating(rating)
    rated = store.find_user(rated_id)
    if not rated:
        raise NotFoundError("Usuario no encontrado.")
    if store.same_id(rater.id, rated.id):
        raise ValidationError("No puedes calificarte a ti mismo.")

    # One rating per pair: a new rating replaces the old one
    store.ratings[:] = [
        r for r in store.ratings
        if not (store.same_id(r.rater_id, rater.id) and store.same_id(r.rated_user_id, rated.id))
    ]
    entry = UserRating(
        id=uuid4(),
        rater_id=rater.id,
        rated_user_id=rated.id,
        rating=value,
        comment=(comment or "").strip(),
        created_at=now_iso(),
    )
    store.ratings.append(entry)
    notify(rated.id, f"{rater.display_name} te calificó con {value} estrellas.", link=f"/users/{rated.id}")
    store.save_state()
    return entry


def ratings_for_user(user_id) -> List[dict]:
    rows = [r for r in store.ratings if store.same_id(r.rated_user_id, user_id)]
    rows.sort(key=lambda r: r.created_at, reverse=True)
    enriched = []
    for r in rows:
        rater = store.find_user(r.rater_id)
        enriched.append({
            "rating": r,
            "rater_name": rater.display_name if rater else "Usuario",
            "rater_avatar": rater.avatar_url if rater else None,
        })
    return enriched


def rating_summary(user_id) -> Tuple[int, float]:
    values = [r.rating for r in store.ratings if store.same_id(r.rated_user_id, user_id)]
    if not values:
        return 0, 0.0
    return len(values), round(sum(values) / len(values), 1)


# --- Chats ---
def _normalize_emails(emails) -> List[str]:
    seen = []
    for e in emails:
        e = (e or "").strip().lower()
        if e and e not in seen:
            seen.append(e)
    return sorted(seen)


def start_chat(pet_id, emails) -> Chat:
    participants = _normalize_emails(emails)
    if len(participants) < 2:
        raise ValidationError("Un chat necesita al menos dos participantes.")
    existing = next(
        (c for c in store.chats
         if str(c.pet_id) == str(pet_id) and sorted(c.participant_emails) == participants),
        None,
    )
    if existing:
        return existing
    chat = Chat(id=uuid4(), pet_id=pet_id, participant_emails=participants, created_at=now_iso())
    store.chats.append(chat)
    store.save_state()
    return chat


def get_chat_for(user: UserAccount, chat_id) -> Chat:
    chat = store.find_chat(chat_id)
    if not chat:
        raise NotFoundError("Conversación no encontrada.")
    if user.email.lower() not in chat.participant_emails:
        raise PermissionDeniedError("No participas en esta conversación.")
    return chat


def send_message(user: UserAccount, chat_id, text: str) -> Message:
    chat = get_chat_for(user, chat_id)
    text = (text or "").strip()
    if not text:
        raise ValidationError("El mensaje no puede estar vacío.")
    msg = Message(id=uuid4(), chat_id=chat.id, sender_email=user.email.lower(), text=text, created_at=now_iso())
    store.messages.append(msg)
    chat.last_read_timestamps[user.email.lower()] = msg.created_at

    preview = text if len(text) <= MESSAGE_PREVIEW_LENGTH else text[:MESSAGE_PREVIEW_LENGTH] + "..."
    for email in chat.participant_emails:
        if email == user.email.lower():
            continue
        other = store.find_user_by_email(email)
        if other:
            notify(other.id, f"Nuevo mensaje de {user.display_name}: {preview}", link=f"/messages/{chat.id}")
    store.save_state()
    return msg


def messages_for_chat(chat_id) -> List[Message]:
    rows = [m for m in store.messages if store.same_id(m.chat_id, chat_id)]
    rows.sort(key=lambda m: m.created_at)
    return rows


def _last_message(chat: Chat) -> Optional[Message]:
    rows = messages_for_chat(chat.id)
    return rows[-1] if rows else None


def chats_for(email: str) -> List[Chat]:
    """Chats the user takes part in, most recently active first."""
    email = (email or "").lower()
    mine = [c for c in store.chats if email in c.participant_emails]

    def activity(c: Chat) -> str:
        last = _last_message(c)
        return last.created_at if last else c.created_at

    mine.sort(key=activity, reverse=True)
    return mine


def mark_chat_read(user: UserAccount, chat_id, now: Optional[datetime] = None):
    chat = get_chat_for(user, chat_id)
    chat.last_read_timestamps[user.email.lower()] = (now or datetime.now(timezone.utc)).isoformat()
    store.save_state()


def chat_has_unread(chat: Chat, email: str) -> bool:
    email = email.lower()
    last = _last_message(chat)
    if not last or last.sender_email == email:
        return False
    read_at = chat.last_read_timestamps.get(email)
    return read_at is None or last.created_at > read_at


def unread_chats_count(email: str) -> int:
    return len([c for c in chats_for(email) if chat_has_unread(c, email)])
