"""Unit tests for the heartbeat-based presence tracker."""

from __future__ import annotations

import pytest

from ochat.models.user import User
from ochat.services.presence import PresenceTracker


@pytest.fixture
def tracker() -> PresenceTracker:
    return PresenceTracker(window_seconds=60)


def _create_user(db_session, username: str) -> User:
    user = User(username=username, color="#000000", status="online")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


def test_user_active_inside_window(tracker):
    """A heartbeat keeps the user active for strictly less than the window."""
    tracker.touch(1, now=1000.0)
    assert tracker.is_active(1, now=1000.0)
    assert tracker.is_active(1, now=1059.9)
    assert not tracker.is_active(1, now=1060.0)


def test_unknown_user_is_not_active(tracker):
    """Users that never sent a heartbeat are not active."""
    assert not tracker.is_active(42, now=0.0)
    assert tracker.last_seen(42) is None


def test_touch_resets_window(tracker):
    """A later heartbeat extends the window from the new timestamp."""
    tracker.touch(1, now=1000.0)
    tracker.touch(1, now=1050.0)
    assert tracker.is_active(1, now=1100.0)
    assert tracker.last_seen(1) == 1050.0


def test_active_user_ids_keeps_first_seen_order(tracker):
    """Active ids come back in first-seen order and expired ids drop out."""
    tracker.touch(3, now=100.0)
    tracker.touch(1, now=130.0)
    tracker.touch(2, now=150.0)
    tracker.touch(3, now=155.0)
    assert tracker.active_user_ids(now=160.0) == [3, 1, 2]
    assert tracker.active_user_ids(now=195.0) == [3, 2]


def test_active_users_skips_unknown_ids(tracker, db_session):
    """Presence entries without a user record are left out of the listing."""
    alice = _create_user(db_session, "alice")
    tracker.touch(alice.id, now=10.0)
    tracker.touch(999, now=10.0)

    users = tracker.active_users(db_session, now=20.0)
    assert [u.username for u in users] == ["alice"]


def test_logout_removes_user_immediately(tracker, db_session):
    """Logout drops the user even inside the window and marks them offline."""
    alice = _create_user(db_session, "alice")
    tracker.touch(alice.id, now=10.0)

    user = tracker.logout(db_session, alice.id)

    assert user is not None
    assert user.status == "offline"
    assert not tracker.is_active(alice.id, now=11.0)
    assert tracker.active_users(db_session, now=11.0) == []


def test_logout_unknown_user_is_ignored(tracker, db_session):
    """Logging out an id nobody knows is a no-op."""
    assert tracker.logout(db_session, 12345) is None
    assert not tracker.forget(12345)
