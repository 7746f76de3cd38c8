from datetime import datetime, timedelta, timezone
from uuid import uuid4

import gamification
import store
from schemas import ActivityLog


def test_levels_and_progress():
    assert gamification.get_level_from_points(0)["name"] == "Chihuahua"
    assert gamification.get_level_from_points(100)["name"] == "Pug"
    assert gamification.get_level_from_points(5000)["title"] == "Leyenda"
    assert gamification.next_level(gamification.LEVELS[-1]) is None

    assert gamification.progress(0) == 0.0
    assert gamification.progress(150) == 50 / 199 * 100
    assert gamification.progress(2500) == 100.0


def test_compute_points():
    # 2 reports, 3 ratings averaging 4
    assert gamification.compute_points(2, 3, 4.0) == 30 + 30 + 80
    assert gamification.compute_points(0, 0, 0) == 0


def test_user_summary_reflects_ratings(make_user, make_pet):
    user = make_user()
    for _ in range(4):
        make_pet(user)
    summary = gamification.user_summary(user.id)
    assert summary["points"] == 60
    assert summary["nextLevel"]["name"] == "Pug"
    assert summary["progress"] == round(60 / 99 * 100, 1)


def test_weekly_leaderboard_window_and_ties(make_user):
    now = datetime(2026, 10, 17, tzinfo=timezone.utc)
    ana = make_user()
    beto = make_user()
    carla = make_user()

    def log(user, points, days_ago):
        store.activity_logs.append(ActivityLog(
            id=uuid4(), user_id=user.id, action_type="share_post", points=points,
            created_at=(now - timedelta(days=days_ago)).isoformat(),
        ))

    log(ana, 10, 1)
    log(beto, 10, 2)
    log(carla, 50, 8)
    log(carla, 5, 0)

    rows = gamification.weekly_leaderboard(now=now)
    assert [r["username"] for r in rows] == sorted([ana.display_name, beto.display_name]) + [carla.display_name]
    assert [r["rank"] for r in rows] == [1, 2, 3]
    assert rows[-1]["total_points"] == 5
    assert len(gamification.weekly_leaderboard(now=now, limit=1)) == 1


def test_has_logged_today(make_user):
    user = make_user()
    assert not gamification.has_logged_today(user.id, "daily_login")
    gamification.log_activity(user.id, "daily_login", 5)
    assert gamification.has_logged_today(user.id, "daily_login")
    assert not gamification.has_logged_today(user.id, "daily_login", now=datetime.now(timezone.utc) + timedelta(days=1))
