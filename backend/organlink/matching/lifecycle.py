from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Sequence

from loguru import logger

from ..ai.compatibility_model import TrainedModel
from ..database import Settings
from ..errors import (
    DonorUnavailableError,
    InvalidTransitionError,
    MatchNotFoundError,
    MatchPersistenceError,
    NotificationError,
    StoreError,
)
from ..models import AvailabilityStatus, Hospital, Match, MatchStatus, Patient, PatientStatus
from ..store.base import RecordStore
from ..utils.notifications import MATCHING_LINK, NotificationService
from .ranking import ScoredCandidate


def new_match_id(now: datetime) -> str:
    return f"MATCH-{int(now.timestamp() * 1000)}-{uuid.uuid4().hex[:6].upper()}"


class MatchLifecycleManager:
    """Creates PENDING matches and drives them through their lifecycle.

    PENDING -> ACCEPTED | REJECTED | EXPIRED, ACCEPTED -> COMPLETED | CANCELLED.
    """

    def __init__(self, store: RecordStore, notifier: NotificationService, config: Settings) -> None:
        self.store = store
        self.notifier = notifier
        self.config = config

    async def create_pending(
        self,
        patient: Patient,
        ranked: Sequence[ScoredCandidate],
        model: TrainedModel,
        now: datetime | None = None,
    ) -> List[Match]:
        """Persist ranked candidates as PENDING matches and notify both hospitals.

        A pair that already has a PENDING match keeps it; no second row or
        notification is produced for it.
        """
        now = now or datetime.now(timezone.utc)
        expires_at = now + timedelta(hours=self.config.match_expiry_hours)
        results: List[Match] = []
        created: List[Match] = []

        try:
            for candidate in ranked:
                existing = await self.store.find_pending_match(patient.id, candidate.donor.id)
                if existing is not None:
                    logger.info(
                        "Pending match {} already exists for patient {} and donor {}",
                        existing.id,
                        patient.id,
                        candidate.donor.id,
                    )
                    results.append(existing)
                    continue
                match = Match(
                    id=new_match_id(now),
                    patient_id=patient.id,
                    donor_id=candidate.donor.id,
                    hospital_id=patient.hospital_id,
                    donor_hospital_id=candidate.donor.hospital_id,
                    patient_name=patient.full_name,
                    donor_name=candidate.donor.full_name,
                    organ_type=patient.organ_needed,
                    score=candidate.probability,
                    created_at=now,
                    expires_at=expires_at,
                    model_version=model.version,
                    model_source=model.source,
                    cold_start=model.is_synthetic,
                    features=dict(candidate.features),
                )
                results.append(match)
                created.append(match)
            await self.store.insert_matches(created)
        except StoreError as exc:
            logger.error("Could not persist matches for patient {}: {}", patient.id, exc)
            raise MatchPersistenceError(f"Could not persist matches for patient {patient.id}: {exc}") from exc

        logger.info("Persisted {} new PENDING matches for patient {}", len(created), patient.id)
        try:
            await self._notify_created(created)
        except (NotificationError, StoreError) as exc:
            raise NotificationError(
                f"Matches for patient {patient.id} were saved but notification failed: {exc}",
                matches=results,
            ) from exc
        return results

    async def _notify_created(self, matches: Sequence[Match]) -> None:
        hospitals: Dict[str, Hospital | None] = {}

        async def _hospital(hospital_id: str) -> Hospital | None:
            if hospital_id not in hospitals:
                hospitals[hospital_id] = await self.store.get_hospital(hospital_id)
            return hospitals[hospital_id]

        for match in matches:
            patient_hospital = await _hospital(match.hospital_id)
            donor_hospital = await _hospital(match.donor_hospital_id)
            donor_hospital_name = donor_hospital.name if donor_hospital else match.donor_hospital_id
            patient_hospital_name = patient_hospital.name if patient_hospital else match.hospital_id

            await self._send(
                patient_hospital,
                match.hospital_id,
                f"Match found for patient {match.patient_name}! Donor {match.donor_name} "
                f"from {donor_hospital_name} hospital (Score: {match.score:.2f}).",
            )
            if match.donor_hospital_id != match.hospital_id:
                await self._send(
                    donor_hospital,
                    match.donor_hospital_id,
                    f"Your donor {match.donor_name} has a potential match! Patient {match.patient_name} "
                    f"from {patient_hospital_name} needs {match.organ_type} (Score: {match.score:.2f}).",
                )

    async def _send(self, hospital: Hospital | None, hospital_id: str, message: str) -> None:
        if hospital is None or not hospital.contact_user_id:
            logger.warning("No contact user for hospital {}; notification skipped", hospital_id)
            return
        await self.notifier.notify(hospital.contact_user_id, message, MATCHING_LINK)

    async def get(self, match_id: str) -> Match:
        match = await self.store.get_match(match_id)
        if match is None:
            raise MatchNotFoundError(match_id)
        return match

    async def matches_for_hospital(self, hospital_id: str, status: MatchStatus | None = None) -> List[Match]:
        return await self.store.find_matches(status=status, hospital_id=hospital_id)

    async def _transition(self, match_id: str, target: MatchStatus, **changes) -> Match:
        match = await self.get(match_id)
        if not match.can_transition(target):
            raise InvalidTransitionError(match_id, match.status.value, target.value)
        updated = match.model_copy(update={"status": target, **changes})
        await self.store.save_match(updated)
        logger.info("Match {} moved from {} to {}", match_id, match.status.value, target.value)
        return updated

    async def accept(self, match_id: str, now: datetime | None = None) -> Match:
        now = now or datetime.now(timezone.utc)
        match = await self.get(match_id)
        if match.status == MatchStatus.PENDING and match.is_expired(now):
            await self._transition(match_id, MatchStatus.EXPIRED, expired_at=now)
            raise InvalidTransitionError(match_id, MatchStatus.EXPIRED.value, MatchStatus.ACCEPTED.value)
        if match.can_transition(MatchStatus.ACCEPTED):
            donor = await self.store.get_donor(match.donor_id)
            availability = donor.availability_status if donor else None
            if availability != AvailabilityStatus.AVAILABLE:
                raise DonorUnavailableError(match.donor_id, availability.value if availability else "MISSING")
        updated = await self._transition(match_id, MatchStatus.ACCEPTED, accepted_at=now)
        await self.store.set_donor_availability(updated.donor_id, AvailabilityStatus.MATCHED)
        await self.store.set_patient_status(updated.patient_id, PatientStatus.MATCHED)
        return updated

    async def reject(self, match_id: str, reason: str | None = None, now: datetime | None = None) -> Match:
        now = now or datetime.now(timezone.utc)
        return await self._transition(match_id, MatchStatus.REJECTED, rejected_at=now, rejection_reason=reason)

    async def complete(self, match_id: str, now: datetime | None = None) -> Match:
        now = now or datetime.now(timezone.utc)
        return await self._transition(match_id, MatchStatus.COMPLETED, completed_at=now)

    async def cancel(self, match_id: str, reason: str | None = None, now: datetime | None = None) -> Match:
        now = now or datetime.now(timezone.utc)
        updated = await self._transition(
            match_id, MatchStatus.CANCELLED, cancelled_at=now, cancellation_reason=reason
        )
        await self.store.set_donor_availability(updated.donor_id, AvailabilityStatus.AVAILABLE)
        await self.store.set_patient_status(updated.patient_id, PatientStatus.WAITING)
        return updated

    async def expire_stale(self, now: datetime | None = None) -> List[Match]:
        """Move every PENDING match past its expiry to EXPIRED."""
        now = now or datetime.now(timezone.utc)
        expired = []
        for match in await self.store.find_matches(status=MatchStatus.PENDING):
            if match.is_expired(now):
                expired.append(await self._transition(match.id, MatchStatus.EXPIRED, expired_at=now))
        if expired:
            logger.info("Expired {} stale PENDING matches", len(expired))
        return expired
