import asyncio
import json
import uuid

import pytest
from starlette.websockets import WebSocketDisconnect

from dogrun import models, pubsub
from dogrun.services import notification_dispatch
from dogrun.services.notification_dispatch import DecisionType
from .conftest import client, TestingSessionLocal, create_user, create_park, add_image


@pytest.mark.parametrize(
    "decision_type, approved, title",
    [
        (DecisionType.PARK_FIRST_STAGE, True, "First review passed"),
        (DecisionType.PARK_SECOND_STAGE, True, "Second review passed"),
        (DecisionType.PARK_FINAL, True, "Facility approved"),
        (DecisionType.PARK_FINAL, False, "Review result"),
        (DecisionType.VACCINE, True, "Vaccine certificate approved"),
        (DecisionType.VACCINE, False, "Vaccine certificate rejected"),
    ],
)
def test_template_titles(decision_type, approved, title):
    rendered_title, message = notification_dispatch.render(decision_type, approved, "Shiba Run")
    assert rendered_title == title
    assert "Shiba Run" in message


def test_rejection_without_reason_points_to_dashboard():
    _, message = notification_dispatch.render(DecisionType.PARK_FIRST_STAGE, False, "Shiba Run", "  ")
    assert message.endswith("See the owner dashboard for details.")
    _, message = notification_dispatch.render(DecisionType.PARK_FIRST_STAGE, False, "Shiba Run", "Too small")
    assert message.endswith("Reason: Too small")
    assert "owner dashboard" not in message


def test_approval_messages_ignore_notes():
    _, message = notification_dispatch.render(DecisionType.VACCINE, True, "Pochi", "looks fine")
    assert "looks fine" not in message


def test_dispatch_persists_notification():
    _, owner_id = create_user()
    db = TestingSessionLocal()
    try:
        notification = notification_dispatch.dispatch(
            db,
            recipient_id=owner_id,
            decision_type=DecisionType.PARK_FINAL,
            approved=True,
            entity_name="Bay Run",
            data={"park_id": "abc"},
        )
        db.commit()
        stored = db.get(models.Notification, notification.id)
        assert stored.type == "park_approval_required"
        assert stored.meta == {"park_id": "abc"}
        assert stored.is_read is False
    finally:
        db.close()


def _decide_and_get_owner_headers(client):
    admin_headers, _ = create_user(is_admin=True)
    owner_headers, owner_id = create_user()
    park_id = create_park(owner_id, name="Notify Park")
    add_image(park_id, "overview", approval="approved")
    resp = client.post(f"/api/admin/parks/{park_id}/decision", json={"approve": True}, headers=admin_headers)
    assert resp.status_code == 200
    return owner_headers, owner_id, park_id


def test_owner_reads_decision_notifications(client):
    owner_headers, _, park_id = _decide_and_get_owner_headers(client)

    listing = client.get("/api/notifications/", headers=owner_headers)
    assert listing.status_code == 200
    data = listing.json()
    assert len(data) == 1
    assert data[0]["title"] == "First review passed"
    assert data[0]["data"] == {"park_id": str(park_id)}

    filtered = client.get("/api/notifications/?type=vaccine_approval_required", headers=owner_headers)
    assert filtered.json() == []

    mark = client.post(f"/api/notifications/{data[0]['id']}/read", headers=owner_headers)
    assert mark.status_code == 200
    assert mark.json()["is_read"] is True

    stats = client.get("/api/notifications/stats", headers=owner_headers).json()
    assert stats == {"total": 1, "unread": 0, "by_type": {"park_approval_required": 1}}


def test_mark_all_read(client):
    owner_headers, owner_id, _ = _decide_and_get_owner_headers(client)
    db = TestingSessionLocal()
    notification_dispatch.dispatch(
        db,
        recipient_id=owner_id,
        decision_type=DecisionType.VACCINE,
        approved=False,
        entity_name="Pochi",
    )
    db.commit()
    db.close()

    resp = client.post("/api/notifications/mark-all-read", headers=owner_headers)
    assert resp.status_code == 200
    assert resp.json()["updated"] == 2
    unread = client.get("/api/notifications/?is_read=false", headers=owner_headers)
    assert unread.json() == []


def test_other_users_cannot_read_notifications(client):
    owner_headers, _, _ = _decide_and_get_owner_headers(client)
    other_headers, _ = create_user()
    notif_id = client.get("/api/notifications/", headers=owner_headers).json()[0]["id"]
    resp = client.post(f"/api/notifications/{notif_id}/read", headers=other_headers)
    assert resp.status_code == 404
    resp = client.post(f"/api/notifications/{uuid.uuid4()}/read", headers=other_headers)
    assert resp.status_code == 404


def test_publish_user_event_serializes_payload(monkeypatch):
    monkeypatch.setattr(pubsub, "_redis", None)

    async def run():
        r = await pubsub.get_redis()
        channel = r.pubsub()
        await channel.subscribe(pubsub.user_channel("owner-1"))
        await pubsub.publish_user_event("owner-1", {"type": "notification_created", "id": uuid.UUID(int=1)})
        message = None
        for _ in range(10):
            message = await channel.get_message(ignore_subscribe_messages=True, timeout=0.1)
            if message:
                break
        await channel.unsubscribe()
        return message

    message = asyncio.run(run())
    assert message is not None
    payload = json.loads(message["data"])
    assert payload == {"type": "notification_created", "id": str(uuid.UUID(int=1))}


def test_notification_socket_needs_the_recipients_token(client):
    headers, user_id = create_user()
    token = headers["Authorization"].split()[1]
    _, other_id = create_user()
    for url in (
        f"/ws/notifications/{user_id}",
        f"/ws/notifications/{user_id}?token=not-a-jwt",
        f"/ws/notifications/{other_id}?token={token}",
    ):
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect(url):
                pass
        assert exc.value.code == 1008
