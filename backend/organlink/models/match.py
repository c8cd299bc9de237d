from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict

from pydantic import BaseModel, ConfigDict, Field


class MatchStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


ALLOWED_TRANSITIONS: Dict[MatchStatus, frozenset] = {
    MatchStatus.PENDING: frozenset({MatchStatus.ACCEPTED, MatchStatus.REJECTED, MatchStatus.EXPIRED}),
    MatchStatus.ACCEPTED: frozenset({MatchStatus.COMPLETED, MatchStatus.CANCELLED}),
}


class Match(BaseModel):
    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    id: str = Field(alias="_id")
    patient_id: str
    donor_id: str
    hospital_id: str
    donor_hospital_id: str
    patient_name: str
    donor_name: str
    organ_type: str
    score: float = Field(ge=0.0, le=1.0)
    status: MatchStatus = MatchStatus.PENDING
    created_at: datetime
    expires_at: datetime | None = None
    accepted_at: datetime | None = None
    rejected_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    expired_at: datetime | None = None
    rejection_reason: str | None = None
    cancellation_reason: str | None = None
    model_version: str | None = None
    model_source: str | None = None
    cold_start: bool = False
    features: Dict[str, float] = Field(default_factory=dict)

    def can_transition(self, target: MatchStatus) -> bool:
        return target in ALLOWED_TRANSITIONS.get(self.status, frozenset())

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now
