import logging
import os
import uuid
from datetime import date

import pytest
from sqlalchemy.exc import OperationalError

from dogrun import models, storage
from dogrun.errors import AuthorizationError
from dogrun.eventlog import list_review_events
from dogrun.rbac import Principal, Role
from dogrun.services import approvals, maintenance, notification_dispatch
from .conftest import client, TestingSessionLocal, create_user, create_park, add_image


def _admin_principal(user_id):
    return Principal(user_id=user_id, email="admin@example.com", roles=frozenset({Role.ADMIN, Role.OWNER}))


def _park_state(park_id):
    db = TestingSessionLocal()
    try:
        park = db.get(models.DogPark, park_id)
        notifications = (
            db.query(models.Notification)
            .filter(models.Notification.user_id == park.owner_id)
            .all()
        )
        return park.status, notifications
    finally:
        db.close()


def test_facility_with_rejected_image_stays_pending_until_reapproved(client):
    admin_headers, _ = create_user(is_admin=True)
    _, owner_id = create_user()
    park_id = create_park(owner_id)
    add_image(park_id, "overview", approval="approved")
    add_image(park_id, "entrance", approval="approved")
    rejected_id = add_image(park_id, "gate", approval="rejected")

    resp = client.post(
        f"/api/admin/parks/{park_id}/decision",
        json={"approve": True},
        headers=admin_headers,
    )
    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["error"] == "validation"
    assert "pending images must be resolved" in body["message"]
    status, notifications = _park_state(park_id)
    assert status == "pending"
    assert notifications == []

    fix = client.post(
        f"/api/admin/images/{rejected_id}/decision",
        json={"approve": True},
        headers=admin_headers,
    )
    assert fix.status_code == 200
    assert fix.json()["status"] == "approved"

    resp = client.post(
        f"/api/admin/parks/{park_id}/decision",
        json={"approve": True},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    assert resp.json() == {
        "success": True,
        "message": "Facility approved",
        "error": None,
        "status": "first_stage_passed",
    }
    status, notifications = _park_state(park_id)
    assert status == "first_stage_passed"
    assert len(notifications) == 1
    assert notifications[0].title == "First review passed"
    assert notifications[0].type == "park_approval_required"
    assert notifications[0].meta == {"park_id": str(park_id)}


def test_facility_without_images_cannot_be_approved(client):
    admin_headers, _ = create_user(is_admin=True)
    _, owner_id = create_user()
    park_id = create_park(owner_id)
    resp = client.post(
        f"/api/admin/parks/{park_id}/decision",
        json={"approve": True},
        headers=admin_headers,
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "validation"
    status, _ = _park_state(park_id)
    assert status == "pending"


def test_failed_attempts_are_idempotent():
    _, admin_id = create_user(is_admin=True)
    _, owner_id = create_user()
    park_id = create_park(owner_id)
    add_image(park_id, "overview", approval="pending")
    db = TestingSessionLocal()
    try:
        principal = _admin_principal(admin_id)
        for _ in range(3):
            result = approvals.decide_facility(db, principal, park_id, True)
            assert not result.success
            assert result.error == "validation"
        events = (
            db.query(models.DogParkReviewEvent)
            .filter(models.DogParkReviewEvent.park_id == park_id)
            .count()
        )
        assert events == 0
    finally:
        db.close()
    status, notifications = _park_state(park_id)
    assert status == "pending"
    assert notifications == []


def test_rejection_needs_no_images_and_records_reason(client):
    admin_headers, _ = create_user(is_admin=True)
    _, owner_id = create_user()
    park_id = create_park(owner_id, name="Hilltop Run")
    resp = client.post(
        f"/api/admin/parks/{park_id}/decision",
        json={"approve": False, "note": "Fence too low"},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "rejected"

    status, notifications = _park_state(park_id)
    assert status == "rejected"
    assert len(notifications) == 1
    assert notifications[0].title == "Review result"
    assert notifications[0].message.endswith("Reason: Fence too low")

    db = TestingSessionLocal()
    try:
        stage = (
            db.query(models.DogParkReviewStage)
            .filter(models.DogParkReviewStage.park_id == park_id)
            .one()
        )
        assert stage.rejection_reason == "Fence too low"
        assert stage.rejected_at is not None
        (event,) = list_review_events(db, park_id)
        assert (event.from_status, event.to_status, event.note) == ("pending", "rejected", "Fence too low")
        audit = db.query(models.AuditLog).filter(models.AuditLog.target_id == park_id).one()
        assert audit.action == "reject_park"
    finally:
        db.close()

    again = client.post(
        f"/api/admin/parks/{park_id}/decision",
        json={"approve": False},
        headers=admin_headers,
    )
    assert again.status_code == 400
    assert "already closed" in again.json()["message"]


def test_full_review_cycle_reaches_approved(client):
    admin_headers, _ = create_user(is_admin=True)
    owner_headers, owner_id = create_user()
    park_id = create_park(owner_id, large_dog_area=True)
    for image_type in ("overview", "entrance", "gate"):
        add_image(park_id, image_type, approval="approved")

    first = client.post(f"/api/admin/parks/{park_id}/decision", json={"approve": True}, headers=admin_headers)
    assert first.json()["status"] == "first_stage_passed"

    blocked = client.post(f"/api/admin/parks/{park_id}/decision", json={"approve": True}, headers=admin_headers)
    assert blocked.status_code == 400
    assert "waiting on the owner" in blocked.json()["message"]

    req = client.post(f"/api/parks/{park_id}/second-stage/request", headers=owner_headers)
    assert req.status_code == 200
    assert req.json()["status"] == "second_stage_waiting"

    missing = client.post(f"/api/parks/{park_id}/second-stage/submit", headers=owner_headers)
    assert missing.status_code == 400
    assert "large_dog_area" in missing.json()["message"]

    upload = client.post(
        f"/api/parks/{park_id}/images",
        json={"image_type": "large_dog_area", "image_url": "https://cdn.example.com/large.jpg"},
        headers=owner_headers,
    )
    assert upload.status_code == 200
    assert upload.json()["status"] == "pending"

    submit = client.post(f"/api/parks/{park_id}/second-stage/submit", headers=owner_headers)
    assert submit.status_code == 200
    assert submit.json()["status"] == "second_stage_review"

    gated = client.post(f"/api/admin/parks/{park_id}/decision", json={"approve": True}, headers=admin_headers)
    assert gated.status_code == 400

    images = client.get(f"/api/admin/parks/{park_id}/images", headers=admin_headers).json()
    pending = [image for image in images if image["approval"] == "pending"]
    assert len(pending) == 1
    client.post(f"/api/admin/images/{pending[0]['id']}/decision", json={"approve": True}, headers=admin_headers)

    second = client.post(f"/api/admin/parks/{park_id}/decision", json={"approve": True}, headers=admin_headers)
    assert second.json()["status"] == "smart_lock_testing"
    final = client.post(f"/api/admin/parks/{park_id}/decision", json={"approve": True}, headers=admin_headers)
    assert final.json()["status"] == "approved"

    detail = client.get(f"/api/parks/{park_id}", headers=owner_headers)
    assert detail.status_code == 200
    body = detail.json()
    assert body["approved_at"] is not None
    assert [event["to_status"] for event in body["review_events"]] == [
        "first_stage_passed",
        "second_stage_waiting",
        "second_stage_review",
        "smart_lock_testing",
        "approved",
    ]
    assert body["review_stage"]["first_stage_passed_at"] is not None
    assert body["review_stage"]["second_stage_submitted_at"] is not None

    titles = [n["title"] for n in client.get("/api/notifications/", headers=owner_headers).json()]
    assert sorted(titles) == sorted(["First review passed", "Second review passed", "Facility approved"])


def test_non_admin_is_refused(client):
    owner_headers, owner_id = create_user()
    park_id = create_park(owner_id)
    resp = client.post(f"/api/admin/parks/{park_id}/decision", json={"approve": True}, headers=owner_headers)
    assert resp.status_code == 403


def test_engine_refuses_principal_without_admin_role():
    _, owner_id = create_user()
    park_id = create_park(owner_id)
    db = TestingSessionLocal()
    try:
        principal = Principal(user_id=owner_id, email="owner@example.com", roles=frozenset({Role.OWNER}))
        result = approvals.decide_facility(db, principal, park_id, False)
        assert not result.success
        assert result.error == "forbidden"
    finally:
        db.close()
    status, _ = _park_state(park_id)
    assert status == "pending"


def test_unknown_facility_is_not_found(client):
    admin_headers, _ = create_user(is_admin=True)
    resp = client.post(
        f"/api/admin/parks/{uuid.uuid4()}/decision",
        json={"approve": False},
        headers=admin_headers,
    )
    assert resp.status_code == 404
    assert resp.json()["error"] == "not_found"


def test_image_whitespace_note_is_stored_as_null(client):
    admin_headers, _ = create_user(is_admin=True)
    _, owner_id = create_user()
    park_id = create_park(owner_id)
    image_id = add_image(park_id, "overview")
    client.post(
        f"/api/admin/images/{image_id}/decision",
        json={"approve": False, "note": "   "},
        headers=admin_headers,
    )
    images = client.get(f"/api/admin/parks/{park_id}/images", headers=admin_headers).json()
    assert images[0]["approval"] == "rejected"
    assert images[0]["admin_notes"] is None

    client.post(
        f"/api/admin/images/{image_id}/decision",
        json={"approve": False, "note": "blurry"},
        headers=admin_headers,
    )
    images = client.get(f"/api/admin/parks/{park_id}/images", headers=admin_headers).json()
    assert images[0]["admin_notes"] == "blurry"


def test_pending_parks_listing_includes_image_summary(client):
    admin_headers, _ = create_user(is_admin=True)
    _, owner_id = create_user(full_name="Aiko Tanaka")
    park_id = create_park(owner_id, name="Summary Park")
    add_image(park_id, "overview", approval="approved")
    add_image(park_id, "entrance", approval="pending")
    resp = client.get("/api/admin/parks/pending", headers=admin_headers)
    assert resp.status_code == 200
    match = [park for park in resp.json() if park["id"] == str(park_id)]
    assert len(match) == 1
    assert match[0]["owner_name"] == "Aiko Tanaka"
    assert match[0]["images"] == {
        "total": 2,
        "pending": 1,
        "approved": 1,
        "rejected": 0,
        "fully_approved": False,
    }


def test_delete_facility_cascades(client):
    admin_headers, _ = create_user(is_admin=True)
    _, owner_id = create_user()
    park_id = create_park(owner_id)
    add_image(park_id, "overview", approval="approved")
    client.post(f"/api/admin/parks/{park_id}/decision", json={"approve": False, "note": "dup"}, headers=admin_headers)

    resp = client.delete(f"/api/admin/parks/{park_id}", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["success"] is True

    db = TestingSessionLocal()
    try:
        assert db.get(models.DogPark, park_id) is None
        for model in (models.DogParkFacilityImage, models.DogParkReviewStage, models.DogParkReviewEvent):
            assert db.query(model).filter(model.park_id == park_id).count() == 0
    finally:
        db.close()


def test_resubmitted_facility_keeps_every_rejection_reason(client):
    admin_headers, _ = create_user(is_admin=True)
    owner_headers, owner_id = create_user()
    park_id = create_park(owner_id)

    client.post(f"/api/admin/parks/{park_id}/decision", json={"approve": False, "note": "No shade"}, headers=admin_headers)
    resubmit = client.post(f"/api/parks/{park_id}/resubmit", headers=owner_headers)
    assert resubmit.status_code == 200
    assert resubmit.json()["status"] == "pending"
    client.post(f"/api/admin/parks/{park_id}/decision", json={"approve": False, "note": "Gate broken"}, headers=admin_headers)

    db = TestingSessionLocal()
    try:
        rejections = [event.note for event in list_review_events(db, park_id) if event.to_status == "rejected"]
        assert sorted(rejections) == ["Gate broken", "No shade"]
        stage = (
            db.query(models.DogParkReviewStage)
            .filter(models.DogParkReviewStage.park_id == park_id)
            .one()
        )
        assert stage.rejection_reason == "Gate broken"
    finally:
        db.close()


def test_only_the_owner_may_resubmit(client):
    _, owner_id = create_user()
    other_headers, _ = create_user()
    park_id = create_park(owner_id, status="rejected")
    resp = client.post(f"/api/parks/{park_id}/resubmit", headers=other_headers)
    assert resp.status_code == 403
    status, _ = _park_state(park_id)
    assert status == "rejected"


def test_admin_operations_refuse_owner_principal():
    _, owner_id = create_user()
    park_id = create_park(owner_id)
    image_id = add_image(park_id, "overview")
    db = TestingSessionLocal()
    try:
        dog = models.Dog(owner_id=owner_id, name="Pochi")
        db.add(dog)
        db.flush()
        cert = models.VaccineCertification(dog_id=dog.id, rabies_vaccine_image="temp/a.jpg")
        db.add(cert)
        db.commit()
        cert_id = cert.id

        principal = Principal(user_id=owner_id, email="owner@example.com", roles=frozenset({Role.OWNER}))
        results = [
            approvals.decide_facility(db, principal, park_id, True),
            approvals.decide_image(db, principal, image_id, True),
            approvals.decide_vaccine(db, principal, cert_id, True),
            approvals.update_vaccine_expiry(db, principal, cert_id, rabies_expiry=date(2030, 1, 1)),
            approvals.delete_facility_cascade(db, principal, park_id),
        ]
        assert [result.error for result in results] == ["forbidden"] * len(results)
        with pytest.raises(AuthorizationError):
            maintenance.create_schedule(db, principal, title="Upgrade", message="Back soon")
    finally:
        db.close()

    db = TestingSessionLocal()
    try:
        assert db.get(models.DogPark, park_id).status == "pending"
        assert db.get(models.DogParkFacilityImage, image_id).approval == "pending"
        stored = db.get(models.VaccineCertification, cert_id)
        assert stored.status == "pending"
        assert stored.rabies_expiry_date is None
        assert db.query(models.MaintenanceSchedule).count() == 0
        assert db.query(models.AuditLog).filter(models.AuditLog.user_id == owner_id).count() == 0
    finally:
        db.close()


def test_record_store_failure_rolls_back_the_whole_decision(monkeypatch, caplog):
    _, admin_id = create_user(is_admin=True)
    _, owner_id = create_user()
    park_id = create_park(owner_id)
    add_image(park_id, "overview", approval="approved")

    def store_down(db, **kwargs):
        raise OperationalError("INSERT INTO notifications", {}, Exception("database is locked"))

    monkeypatch.setattr(notification_dispatch, "dispatch", store_down)
    db = TestingSessionLocal()
    try:
        with caplog.at_level(logging.ERROR):
            result = approvals.decide_facility(db, _admin_principal(admin_id), park_id, True)
        assert not result.success
        assert result.error == "infrastructure"
        assert result.message == "Approval processing failed"
        assert "decision failed against the record store" in caplog.text
        assert any(record.exc_info for record in caplog.records)
    finally:
        db.close()

    status, notifications = _park_state(park_id)
    assert status == "pending"
    assert notifications == []
    db = TestingSessionLocal()
    try:
        assert db.query(models.DogParkReviewStage).filter(models.DogParkReviewStage.park_id == park_id).count() == 0
        assert db.query(models.DogParkReviewEvent).filter(models.DogParkReviewEvent.park_id == park_id).count() == 0
        assert db.query(models.AuditLog).filter(models.AuditLog.target_id == park_id).count() == 0
    finally:
        db.close()


def test_foreign_stored_objects_cannot_be_attached(client):
    owner_headers, owner_id = create_user()
    park_id = create_park(owner_id)
    victim = storage.save_binary_payload(
        b"someone else", "rabies.jpg", bucket=storage.VACCINE_BUCKET, namespace="temp/victim-dog"
    )
    for image_url in (victim, f"s3://{storage.VACCINE_BUCKET}/temp/victim-dog/rabies.jpg", "/etc/hosts"):
        resp = client.post(
            f"/api/parks/{park_id}/images",
            json={"image_type": "overview", "image_url": image_url},
            headers=owner_headers,
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "validation"
    assert os.path.exists(victim)


def test_delete_purges_only_photos_stored_for_that_park(client):
    admin_headers, _ = create_user(is_admin=True)
    owner_headers, owner_id = create_user()
    park_id = create_park(owner_id)
    other_park = create_park(owner_id, name="Second Run")

    upload = client.post(
        f"/api/parks/{park_id}/images/upload",
        data={"image_type": "overview"},
        files={"file": ("front.jpg", b"front-bytes", "image/jpeg")},
        headers=owner_headers,
    )
    assert upload.status_code == 200
    other_upload = client.post(
        f"/api/parks/{other_park}/images/upload",
        data={"image_type": "overview"},
        files={"file": ("other.jpg", b"other-bytes", "image/jpeg")},
        headers=owner_headers,
    )
    assert other_upload.status_code == 200

    db = TestingSessionLocal()
    try:
        own_photo = (
            db.query(models.DogParkFacilityImage)
            .filter(models.DogParkFacilityImage.park_id == park_id)
            .one()
            .image_url
        )
        other_photo = (
            db.query(models.DogParkFacilityImage)
            .filter(models.DogParkFacilityImage.park_id == other_park)
            .one()
            .image_url
        )
    finally:
        db.close()
    assert storage.resolve_locator(own_photo)[0] == storage.FACILITY_BUCKET
    # a row pointing at another park's object, as legacy data might
    add_image(park_id, "entrance", image_url=other_photo)

    resp = client.delete(f"/api/admin/parks/{park_id}", headers=admin_headers)
    assert resp.status_code == 200
    assert not os.path.exists(own_photo)
    assert os.path.exists(other_photo)


def test_photo_upload_requires_park_owner(client, upload_dir):
    _, owner_id = create_user()
    other_headers, _ = create_user()
    park_id = create_park(owner_id)
    resp = client.post(
        f"/api/parks/{park_id}/images/upload",
        data={"image_type": "overview"},
        files={"file": ("front.jpg", b"front-bytes", "image/jpeg")},
        headers=other_headers,
    )
    assert resp.status_code == 403
    assert not (upload_dir / storage.FACILITY_BUCKET).exists()


def test_photo_upload_with_unknown_type_leaves_no_file(client, upload_dir):
    owner_headers, owner_id = create_user()
    park_id = create_park(owner_id)
    resp = client.post(
        f"/api/parks/{park_id}/images/upload",
        data={"image_type": "helipad"},
        files={"file": ("pad.jpg", b"pad-bytes", "image/jpeg")},
        headers=owner_headers,
    )
    assert resp.status_code == 400
    park_dir = upload_dir / storage.FACILITY_BUCKET / "parks" / str(park_id)
    assert not park_dir.exists() or list(park_dir.iterdir()) == []
