"""API tests for the admin review surface and audit trail."""

import hashlib
import json
from datetime import datetime, timedelta

from app.models.audit import AuditLog
from app.models.verification import VerificationStatus
from app.services.audit_service import AuditService

S = VerificationStatus
VERDICT = {"status": "flagged", "confidence": 40, "flags": ["Name mismatch"]}


def as_user(user):
    return {"user-id": user.id}


class TestAccess:
    def test_non_admin_is_forbidden(self, client, make_user):
        response = client.get("/api/admin/verifications", headers=as_user(make_user()))
        assert response.status_code == 403

    def test_anonymous_is_unauthorized(self, client):
        assert client.get("/api/admin/dashboard").status_code == 401


class TestQueue:
    def test_lists_pending_admin_oldest_first(self, client, admin, make_user, make_record):
        now = datetime.utcnow()
        newer = make_record(make_user(), S.PENDING_ADMIN, submitted_at=now - timedelta(hours=1), ai_verdict=VERDICT)
        older = make_record(make_user(), S.PENDING_ADMIN, submitted_at=now - timedelta(hours=9))
        make_record(make_user(), S.ACTIVE)

        response = client.get("/api/admin/verifications", headers=as_user(admin))

        assert response.status_code == 200
        data = response.json()
        assert [v["id"] for v in data["verifications"]] == [older.id, newer.id]
        assert data["pagination"] == {"page": 1, "limit": 20, "total": 2, "pages": 1}
        summary = data["verifications"][1]
        assert summary["aiStatus"] == "flagged"
        assert summary["flagCount"] == 1
        assert summary["subject"]["name"] == "Casey Rivera"
        assert all("storageKey" not in d for d in summary["documents"])

    def test_all_statuses_and_paging(self, client, admin, make_user, make_record):
        for status in (S.DRAFT, S.PENDING_AI, S.ACTIVE):
            make_record(make_user(), status)

        response = client.get(
            "/api/admin/verifications", params={"status": "all", "limit": 2, "page": 2}, headers=as_user(admin)
        )

        data = response.json()
        assert data["pagination"]["total"] == 3
        assert data["pagination"]["pages"] == 2
        assert len(data["verifications"]) == 1

    def test_unknown_status_filter(self, client, admin):
        response = client.get("/api/admin/verifications", params={"status": "approved"}, headers=as_user(admin))
        assert response.status_code == 400

    def test_detail_includes_verdict_and_allowed_actions(self, client, admin, make_user, make_record):
        record = make_record(make_user(), S.PENDING_ADMIN, ai_verdict=VERDICT)

        response = client.get(f"/api/admin/verifications/{record.id}", headers=as_user(admin))

        assert response.status_code == 200
        data = response.json()
        assert data["aiVerdict"]["flags"] == ["Name mismatch"]
        assert data["allowedActions"] == ["approve", "reject"]
        assert data["statusHistory"] == []

    def test_detail_not_found(self, client, admin):
        assert client.get("/api/admin/verifications/missing", headers=as_user(admin)).status_code == 404

    def test_dashboard_counts(self, client, admin, make_user, make_record):
        make_record(make_user(), S.PENDING_ADMIN, tier="priority")
        make_record(make_user(), S.PENDING_ADMIN)
        make_record(make_user(), S.ACTIVE, kind="contractor")

        data = client.get("/api/admin/dashboard", headers=as_user(admin)).json()

        assert data["total"] == 3
        assert data["byStatus"] == {"pending-admin": 2, "active": 1}
        assert data["pendingReviewByTier"] == {"priority": 1, "standard": 1}
        assert data["byKind"] == {"seller": 2, "contractor": 1}


class TestDocumentViewer:
    def test_signed_url_and_audit(self, client, db, admin, make_user, make_record, s3_client):
        record = make_record(make_user(), S.PENDING_ADMIN)

        response = client.get(
            f"/api/admin/verifications/{record.id}/document",
            params={"type": "business_license"},
            headers=as_user(admin),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["expiresIn"] == 900
        assert "op=get_object" in data["viewUrl"]
        assert data["fileName"] == "business.pdf"
        operation, params, ttl = s3_client.calls[-1]
        assert params["Key"].endswith("b2-business.pdf")
        assert ttl == 900
        entry = db.query(AuditLog).filter_by(target_id=record.id).one()
        assert entry.action == "DOCUMENT_VIEW"

    def test_missing_document_type(self, client, admin, make_user, make_record):
        record = make_record(make_user(), S.PENDING_ADMIN)
        response = client.get(
            f"/api/admin/verifications/{record.id}/document", params={"type": "passport"}, headers=as_user(admin)
        )
        assert response.status_code == 404


class TestDecisions:
    def decide(self, client, admin, record, action, **extra):
        return client.post(
            "/api/admin/verifications/decision",
            json={"verificationId": record.id, "action": action, **extra},
            headers=as_user(admin),
        )

    def test_approve_activates_and_verifies_subject(self, client, admin, make_user, make_record):
        user = make_user()
        record = make_record(user, S.PENDING_ADMIN, submitted_at=datetime.utcnow())

        response = self.decide(client, admin, record, "approve", notes="All documents check out")

        assert response.status_code == 200
        assert response.json()["verification"]["status"] == "active"
        status = client.get("/api/verification/status", params={"kind": "seller"}, headers=as_user(user)).json()
        assert status["verified"] is True
        assert status["label"] == "Verified"

    def test_reject_without_reason_changes_nothing(self, client, db, admin, make_user, make_record):
        record = make_record(make_user(), S.PENDING_ADMIN)

        for extra in ({}, {"rejectionReason": ""}, {"rejectionReason": "   "}):
            response = self.decide(client, admin, record, "reject", **extra)
            assert response.status_code == 400
            assert response.json()["detail"] == "Rejection reason required"

        db.refresh(record)
        assert record.status == S.PENDING_ADMIN
        assert record.history == []
        assert db.query(AuditLog).count() == 0

    def test_reject_with_reason(self, client, admin, make_user, make_record):
        user = make_user()
        record = make_record(user, S.PENDING_ADMIN)

        response = self.decide(client, admin, record, "reject", rejectionReason="EIN does not match business name")

        assert response.status_code == 200
        assert response.json()["verification"]["status"] == "rejected"
        status = client.get("/api/verification/status", params={"kind": "seller"}, headers=as_user(user)).json()
        assert status["rejectionReason"] == "EIN does not match business name"

    def test_illegal_transition_conflicts(self, client, admin, make_user, make_record):
        record = make_record(make_user(), S.ACTIVE)
        response = self.decide(client, admin, record, "approve")
        assert response.status_code == 409

    def test_unknown_action_is_invalid(self, client, admin, make_user, make_record):
        record = make_record(make_user(), S.PENDING_ADMIN)
        assert self.decide(client, admin, record, "delete").status_code == 422

    def test_unknown_record(self, client, admin):
        response = client.post(
            "/api/admin/verifications/decision",
            json={"verificationId": "missing", "action": "approve"},
            headers=as_user(admin),
        )
        assert response.status_code == 404


class TestAuditTrail:
    def test_decisions_form_a_valid_chain(self, client, db, admin, make_user, make_record):
        record = make_record(make_user(), S.PENDING_ADMIN)
        client.post(
            "/api/admin/verifications/decision",
            json={"verificationId": record.id, "action": "approve"},
            headers=as_user(admin),
        )
        client.post(
            "/api/admin/verifications/decision",
            json={"verificationId": record.id, "action": "revoke", "notes": "Complaint upheld"},
            headers=as_user(admin),
        )

        trail = client.get(f"/api/admin/audit/{record.id}", headers=as_user(admin)).json()
        assert [e["action"] for e in trail] == ["VERIFICATION_APPROVE", "VERIFICATION_REVOKE"]

        verify = client.get(f"/api/admin/audit/{record.id}/verify", headers=as_user(admin)).json()
        assert verify == {"valid": True, "total_entries": 2, "broken_at": None}

        tampered = db.query(AuditLog).filter_by(action="VERIFICATION_APPROVE").one()
        tampered.reason = "Edited after the fact"
        db.commit()

        verify = client.get(f"/api/admin/audit/{record.id}/verify", headers=as_user(admin)).json()
        assert verify["valid"] is False
        assert verify["broken_at"] == tampered.id

    def test_empty_trail_is_not_found(self, client, admin):
        assert client.get("/api/admin/audit/unknown", headers=as_user(admin)).status_code == 404

    def test_entries_link_to_their_predecessor(self, db, admin):
        first = AuditService.log(db, admin.id, "VERIFICATION_APPROVE", "record-9", details={"status": "active"})
        second = AuditService.log(db, admin.id, "VERIFICATION_REVOKE", "record-9", reason="Complaint upheld")
        other = AuditService.log(db, admin.id, "VERIFICATION_APPROVE", "record-10")

        canonical = json.dumps({
            "actor": admin.id,
            "action": "VERIFICATION_APPROVE",
            "target": "record-9",
            "details": {"status": "active"},
            "reason": None,
            "timestamp": first.timestamp.isoformat(),
        }, sort_keys=True).encode("utf-8")
        expected = hashlib.sha256(hashlib.sha256(canonical).hexdigest().encode("utf-8")).hexdigest()

        assert first.previous_hash == ""
        assert first.payload_hash == expected
        assert second.previous_hash == first.payload_hash
        assert other.previous_hash == ""
        assert AuditService.verify_chain(db, "record-9") == {"valid": True, "total_entries": 2, "broken_at": None}
