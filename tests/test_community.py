import pytest
from fastapi.testclient import TestClient

import community
import gamification
import store
from conftest import STRONG_PASSWORD, login
from errors import PermissionDeniedError, ValidationError
from main import app

client = TestClient(app)


def test_comment_notifies_owner_and_awards_points(make_user, make_pet):
    owner = make_user()
    neighbour = make_user()
    pet = make_pet(owner)

    login(client, neighbour.email, STRONG_PASSWORD)
    r = client.post(f"/pets/{pet.id}/comments", data={"text": "Lo vi en Larcomar"}, follow_redirects=False)
    assert r.status_code == 303

    [n] = community.notifications_for(owner)
    assert neighbour.display_name in n.message
    assert n.link == f"/pets/{pet.id}"
    assert any(a.action_type == "comment_added" and a.points == 5 for a in gamification.user_history(neighbour.id))


def test_owner_comment_does_not_notify_self(make_user, make_pet):
    owner = make_user()
    pet = make_pet(owner)
    community.add_comment(owner, pet.id, "Sigue perdido")
    assert community.notifications_for(owner) == []


def test_empty_comment_and_foreign_parent_are_rejected(make_user, make_pet):
    user = make_user()
    pet_a = make_pet(user)
    pet_b = make_pet(user)
    with pytest.raises(ValidationError):
        community.add_comment(user, pet_a.id, "   ")
    other = community.add_comment(user, pet_b.id, "hola")
    with pytest.raises(ValidationError):
        community.add_comment(user, pet_a.id, "respuesta", parent_id=other.id)


def test_replies_and_likes(make_user, make_pet):
    owner = make_user()
    fan = make_user()
    pet = make_pet(owner)
    root = community.add_comment(fan, pet.id, "¿Tiene collar?")
    reply = community.add_comment(owner, pet.id, "Sí, rojo", parent_id=root.id)
    community.add_comment(fan, pet.id, "Gracias", parent_id=reply.id)

    assert community.toggle_comment_like(owner, root.id) is True
    rows = community.comments_for_pet(pet.id)
    assert [r["comment"].text for r in rows] == ["¿Tiene collar?", "Sí, rojo", "Gracias"]
    assert rows[0]["likes"] == [str(owner.id)]
    assert community.toggle_comment_like(owner, root.id) is False

    # Only the author can delete; the whole thread goes with the root
    with pytest.raises(PermissionDeniedError):
        community.delete_comment(owner, root.id)
    community.delete_comment(fan, root.id)
    assert community.comments_for_pet(pet.id) == []


def test_notifications_ordering_and_actions(make_user):
    user = make_user()
    first = community.notify(user.id, "primera")
    community.notify(user.id, "segunda")
    community.mark_read(user, first.id)
    assert [n.message for n in community.notifications_for(user)] == ["segunda", "primera"]
    assert community.unread_count(user) == 1

    with pytest.raises(PermissionDeniedError):
        community.delete_notification(make_user(), first.id)

    assert community.mark_all_read(user) == 1
    community.delete_notification(user, first.id)
    assert len(community.notifications_for(user)) == 1


def test_notifications_page(make_user):
    user = make_user()
    community.notify(user.id, "Tu reporte fue revisado", link="/support")
    login(client, user.email, STRONG_PASSWORD)
    r = client.get("/notifications")
    assert r.status_code == 200
    assert "Tu reporte fue revisado" in r.text

    r = client.get("/api/notifications/unread-count")
    assert r.json() == {"count": 1, "chats": 0}

    client.post("/notifications/read-all")
    assert client.get("/api/notifications/unread-count").json()["count"] == 0


def test_unread_count_requires_login():
    client.get("/logout")
    r = client.get("/api/notifications/unread-count")
    assert r.status_code == 401


def test_rating_replaces_previous_and_blocks_self(make_user):
    rater = make_user()
    rated = make_user()
    community.rate_user(rater, rated.id, 3, "bien")
    community.rate_user(rater, rated.id, 5, "excelente")
    community.rate_user(make_user(), rated.id, 4)

    assert community.rating_summary(rated.id) == (2, 4.5)
    [latest, _] = community.ratings_for_user(rated.id)
    assert latest["rating"].rating == 4
    with pytest.raises(ValidationError):
        community.rate_user(rated, rated.id, 5)
    with pytest.raises(ValidationError):
        community.rate_user(rater, rated.id, 6)


def test_rate_through_public_profile(make_user):
    rater = make_user()
    rated = make_user()
    login(client, rater.email, STRONG_PASSWORD)
    r = client.post(f"/users/{rated.id}/rate", data={"rating": "5", "comment": "Muy amable"}, follow_redirects=False)
    assert r.status_code == 303
    page = client.get(f"/users/{rated.id}")
    assert "Muy amable" in page.text
    assert community.unread_count(rated) == 1


def test_chat_flow(make_user, make_pet):
    owner = make_user()
    finder = make_user()
    pet = make_pet(owner)

    login(client, finder.email, STRONG_PASSWORD)
    r = client.post(f"/pets/{pet.id}/chat", follow_redirects=False)
    chat = store.chats[0]
    assert r.headers["location"] == f"/messages/{chat.id}"
    assert chat.participant_emails == sorted([owner.email, finder.email])

    # Starting again reuses the same conversation
    assert community.start_chat(pet.id, [owner.email.upper(), finder.email]).id == chat.id

    long_text = "Creo que lo encontré cerca del mercado, tiene una placa con su nombre"
    client.post(f"/messages/{chat.id}", data={"text": long_text})
    [n] = community.notifications_for(owner)
    assert n.message.endswith(long_text[:community.MESSAGE_PREVIEW_LENGTH] + "...")
    assert n.link == f"/messages/{chat.id}"

    assert community.unread_chats_count(owner.email) == 1
    assert community.unread_chats_count(finder.email) == 0
    community.mark_chat_read(owner, chat.id)
    assert community.unread_chats_count(owner.email) == 0


def test_chat_is_private(make_user, make_pet):
    owner = make_user()
    chat = community.start_chat(make_pet(owner).id, [owner.email, make_user().email])
    with pytest.raises(PermissionDeniedError):
        community.get_chat_for(make_user(), chat.id)
    with pytest.raises(ValidationError):
        community.start_chat(None, [owner.email, owner.email])
