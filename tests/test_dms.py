import pytest

from ochat.core.errors import InvalidTransitionError, LockedError
from ochat.models.direct_message import DMRequest
from ochat.models.user import User
from ochat.services.dm_service import DMService


@pytest.fixture
def dms(db_session):
    return DMService(db_session)


@pytest.fixture
def pair(db_session):
    alice = User(username="alice", color="#000000", status="online")
    bob = User(username="bob", color="#000000", status="online")
    db_session.add_all([alice, bob])
    db_session.commit()
    return alice.id, bob.id


def test_request_is_unique_per_pair(dms, db_session, pair):
    """Repeated or reversed requests collapse into one record."""
    alice_id, bob_id = pair
    first = dms.request_dm(alice_id, bob_id)
    again = dms.request_dm(alice_id, bob_id)
    reversed_ = dms.request_dm(bob_id, alice_id)

    assert first.id == again.id == reversed_.id
    assert first.status == "pending"
    assert db_session.query(DMRequest).count() == 1


def test_accept_makes_partners(dms, pair):
    """Accepting links both users as partners; re-requesting keeps the accepted record."""
    alice_id, bob_id = pair
    request = dms.request_dm(alice_id, bob_id)
    dms.respond(request.id, "accepted")

    assert [u.id for u in dms.partners_of(alice_id)] == [bob_id]
    assert [u.id for u in dms.partners_of(bob_id)] == [alice_id]

    repeated = dms.request_dm(alice_id, bob_id)
    assert repeated.id == request.id
    assert repeated.status == "accepted"


def test_resolved_request_is_terminal(dms, pair):
    """A request can be resolved only once."""
    alice_id, bob_id = pair
    request = dms.request_dm(alice_id, bob_id)
    dms.respond(request.id, "rejected")
    with pytest.raises(InvalidTransitionError):
        dms.respond(request.id, "accepted")
    assert dms.partners_of(alice_id) == []


def test_respond_rejects_unknown_status(dms, pair):
    request = dms.request_dm(*pair)
    with pytest.raises(ValueError):
        dms.respond(request.id, "pending")


def test_thread_order_and_lock(dms, pair):
    """Threads cover both directions in order; locks block edit and delete."""
    alice_id, bob_id = pair
    first = dms.send(alice_id, bob_id, "hi")
    second = dms.send(bob_id, alice_id, "hey")

    assert [m.id for m in dms.thread(alice_id, bob_id)] == [first.id, second.id]
    assert [m.id for m in dms.thread(bob_id, alice_id)] == [first.id, second.id]

    dms.lock(first.id, bob_id)
    with pytest.raises(LockedError):
        dms.edit(first.id, "changed")
    with pytest.raises(LockedError):
        dms.delete(first.id)

    dms.unlock(first.id)
    assert dms.edit(first.id, "changed").is_edited is True
    assert dms.delete(first.id) is True
    assert dms.delete(first.id) is False


def test_pin_and_unread(dms, pair):
    """Pinned messages are listed separately; mark_read clears unread counts."""
    alice_id, bob_id = pair
    first = dms.send(alice_id, bob_id, "one")
    dms.send(alice_id, bob_id, "two")
    dms.pin(first.id)

    assert [m.id for m in dms.pinned(alice_id, bob_id)] == [first.id]
    assert dms.unread_count(bob_id, alice_id) == 2
    assert dms.unread_counts(bob_id) == {alice_id: 2}

    assert dms.mark_read(alice_id, bob_id) == 2
    assert dms.unread_count(bob_id, alice_id) == 0
    assert dms.unread_counts(bob_id) == {}

    dms.unpin(first.id)
    assert dms.pinned(alice_id, bob_id) == []


# HTTP

def _accepted_pair(client, login):
    alice = login("alice")
    bob = login("bob")
    request = client.post(
        "/api/dm/request", json={"fromUserId": alice["id"], "toUserId": bob["id"]}
    ).json()
    response = client.patch(
        f"/api/dm/request/{request['id']}", json={"status": "accepted", "userId": bob["id"]}
    )
    assert response.status_code == 200
    return alice, bob


def test_dm_handshake_scenario(client, login):
    """Request, accept, list partners, then a repeat request returns the accepted record."""
    alice = login("alice")
    bob = login("bob")

    response = client.post("/api/dm/request", json={"fromUserId": alice["id"], "toUserId": bob["id"]})
    assert response.status_code == 200
    request = response.json()
    assert request["status"] == "pending"

    response = client.patch(
        f"/api/dm/request/{request['id']}", json={"status": "accepted", "userId": alice["id"]}
    )
    assert response.status_code == 403

    response = client.patch(
        f"/api/dm/request/{request['id']}", json={"status": "accepted", "userId": bob["id"]}
    )
    assert response.status_code == 200
    assert response.json()["status"] == "accepted"

    partners = client.get(f"/api/dm/partners/{alice['id']}").json()
    assert [p["username"] for p in partners] == ["bob"]
    partners = client.get(f"/api/dm/partners/{bob['id']}").json()
    assert [p["username"] for p in partners] == ["alice"]

    response = client.post("/api/dm/request", json={"fromUserId": alice["id"], "toUserId": bob["id"]})
    assert response.json()["id"] == request["id"]
    assert response.json()["status"] == "accepted"

    response = client.patch(f"/api/dm/request/{request['id']}", json={"status": "rejected"})
    assert response.status_code == 409


def test_request_listing_includes_users(client, login):
    alice = login("alice")
    bob = login("bob")
    client.post("/api/dm/request", json={"fromUserId": alice["id"], "toUserId": bob["id"]})

    listed = client.get(f"/api/dm/requests/{bob['id']}").json()
    assert len(listed) == 1
    assert listed[0]["fromUser"]["username"] == "alice"
    assert listed[0]["toUser"]["username"] == "bob"


def test_request_validation(client, login):
    """Self requests are refused and unknown users are 404."""
    alice = login("alice")
    response = client.post("/api/dm/request", json={"fromUserId": alice["id"], "toUserId": alice["id"]})
    assert response.status_code == 403
    response = client.post("/api/dm/request", json={"fromUserId": alice["id"], "toUserId": 999})
    assert response.status_code == 404


def test_send_requires_accepted_request(client, login):
    alice = login("alice")
    bob = login("bob")
    response = client.post(
        "/api/dm/messages",
        json={"fromUserId": alice["id"], "toUserId": bob["id"], "content": "hi"},
    )
    assert response.status_code == 403


def test_dm_conversation(client, login):
    """Send, lock, pin, read and unread counts over HTTP."""
    alice, bob = _accepted_pair(client, login)

    response = client.post(
        "/api/dm/messages",
        json={"fromUserId": alice["id"], "toUserId": bob["id"], "content": "hi bob"},
    )
    assert response.status_code == 201
    message = response.json()
    assert message["isRead"] is False

    unread = client.get(f"/api/dm/unread/{bob['id']}/{alice['id']}").json()
    assert unread == {"count": 1}
    assert client.get(f"/api/dm/unread/{bob['id']}").json() == {str(alice["id"]): 1}

    # Only the other side may lock, and only the locker may unlock
    assert client.post(f"/api/dm/messages/{message['id']}/lock", json={"userId": alice["id"]}).status_code == 403
    assert client.post(f"/api/dm/messages/{message['id']}/lock", json={"userId": bob["id"]}).status_code == 200

    response = client.patch(
        f"/api/dm/messages/{message['id']}", json={"content": "edited", "userId": alice["id"]}
    )
    assert response.status_code == 423
    assert client.post(f"/api/dm/messages/{message['id']}/unlock", json={"userId": alice["id"]}).status_code == 403
    assert client.post(f"/api/dm/messages/{message['id']}/unlock", json={"userId": bob["id"]}).status_code == 200

    response = client.patch(
        f"/api/dm/messages/{message['id']}", json={"content": "edited", "userId": bob["id"]}
    )
    assert response.status_code == 403
    response = client.patch(
        f"/api/dm/messages/{message['id']}", json={"content": "edited", "userId": alice["id"]}
    )
    assert response.status_code == 200
    assert response.json()["isEdited"] is True

    assert client.post(f"/api/dm/messages/{message['id']}/pin").json()["isPinned"] is True
    pinned = client.get(f"/api/dm/messages/{alice['id']}/{bob['id']}/pinned").json()
    assert [m["id"] for m in pinned] == [message["id"]]

    response = client.post("/api/dm/read", json={"fromUserId": alice["id"], "toUserId": bob["id"]})
    assert response.json() == {"count": 1}
    assert client.get(f"/api/dm/unread/{bob['id']}/{alice['id']}").json() == {"count": 0}

    thread = client.get(f"/api/dm/messages/{bob['id']}/{alice['id']}").json()
    assert [m["content"] for m in thread] == ["edited"]

    response = client.delete(f"/api/dm/messages/{message['id']}", params={"userId": alice["id"]})
    assert response.status_code == 204
    assert client.get(f"/api/dm/messages/{alice['id']}/{bob['id']}").json() == []
    assert client.delete(f"/api/dm/messages/{message['id']}").status_code == 404


if __name__ == "__main__":
    pytest.main([__file__])
