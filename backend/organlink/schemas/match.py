from __future__ import annotations

from datetime import datetime
from typing import Any, Dict

from ..models import Match


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def match_document(match: Match) -> Dict[str, Any]:
    return {
        "_id": match.id,
        "patient_id": match.patient_id,
        "donor_id": match.donor_id,
        "hospital_id": match.hospital_id,
        "donor_hospital_id": match.donor_hospital_id,
        "patient_name": match.patient_name,
        "donor_name": match.donor_name,
        "organ_type": match.organ_type,
        "score": match.score,
        "status": match.status.value,
        "created_at": _iso(match.created_at),
        "expires_at": _iso(match.expires_at),
        "accepted_at": _iso(match.accepted_at),
        "rejected_at": _iso(match.rejected_at),
        "completed_at": _iso(match.completed_at),
        "cancelled_at": _iso(match.cancelled_at),
        "expired_at": _iso(match.expired_at),
        "rejection_reason": match.rejection_reason,
        "cancellation_reason": match.cancellation_reason,
        "model_version": match.model_version,
        "model_source": match.model_source,
        "cold_start": match.cold_start,
        "features": dict(match.features),
    }
