"""
Audit Service — Immutable, hash-chained trail of admin actions.
"""
import hashlib
import json
from datetime import datetime
from typing import Optional, Dict

from sqlalchemy.orm import Session

from app.models.audit import AuditLog


def _chain_payload(entry: AuditLog) -> dict:
    """Fields covered by an entry's hash."""
    return {
        "actor": entry.actor_id,
        "action": entry.action,
        "target": entry.target_id,
        "details": entry.details or {},
        "reason": entry.reason,
        "timestamp": entry.timestamp.isoformat(),
    }


def chain_hash(entry: AuditLog, previous_hash: str = "") -> str:
    """Link hash of an entry: sha256(previous_hash + sha256(canonical payload)).

    The payload is serialized with sorted keys so the hash is stable across
    dict ordering and JSON round-trips through the database.
    """
    canonical = json.dumps(_chain_payload(entry), sort_keys=True, default=str).encode("utf-8")
    payload_digest = hashlib.sha256(canonical).hexdigest()
    return hashlib.sha256(f"{previous_hash}{payload_digest}".encode("utf-8")).hexdigest()


class AuditService:
    """Creates tamper-evident audit log entries chained per target record."""

    @staticmethod
    def log(
        db: Session,
        actor_id: str,
        action: str,
        target_id: str,
        details: Optional[Dict] = None,
        reason: Optional[str] = None,
        commit: bool = True,
    ) -> AuditLog:
        """Append an audit entry linked to the previous entry for the target.

        Args:
            db: Database session.
            actor_id: Admin user performing the action.
            action: Action identifier (e.g. VERIFICATION_APPROVE).
            target_id: Verification record the action applies to.
            details: Structured payload; hashed into the chain.
            reason: Free-text justification.
            commit: False when the caller commits as part of a larger unit.

        Returns:
            The created AuditLog entry.
        """
        last_entry = (
            db.query(AuditLog)
            .filter(AuditLog.target_id == target_id)
            .order_by(AuditLog.id.desc())
            .first()
        )
        previous_hash = last_entry.payload_hash if last_entry else ""

        entry = AuditLog(
            actor_id=actor_id,
            action=action,
            target_id=target_id,
            details=details or {},
            reason=reason,
            previous_hash=previous_hash,
            timestamp=datetime.utcnow(),
        )
        entry.payload_hash = chain_hash(entry, previous_hash)
        db.add(entry)

        if commit:
            db.commit()
            db.refresh(entry)
        return entry

    @staticmethod
    def get_trail(db: Session, target_id: str) -> list[AuditLog]:
        """Full audit trail for a record, in insertion order."""
        return (
            db.query(AuditLog)
            .filter(AuditLog.target_id == target_id)
            .order_by(AuditLog.id.asc())
            .all()
        )

    @staticmethod
    def verify_chain(db: Session, target_id: str) -> dict:
        """Recompute every link of a record's audit chain.

        Returns:
            dict with 'valid' (bool), 'total_entries', and 'broken_at' (if invalid).
        """
        entries = AuditService.get_trail(db, target_id)

        if not entries:
            return {"valid": True, "total_entries": 0, "broken_at": None}

        previous_hash = ""
        for entry in entries:
            expected = chain_hash(entry, previous_hash)
            if entry.previous_hash != previous_hash or entry.payload_hash != expected:
                return {
                    "valid": False,
                    "total_entries": len(entries),
                    "broken_at": entry.id,
                    "message": f"Chain broken at entry {entry.id} ({entry.action})",
                }
            previous_hash = entry.payload_hash

        return {"valid": True, "total_entries": len(entries), "broken_at": None}
