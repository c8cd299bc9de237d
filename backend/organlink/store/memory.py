from __future__ import annotations

import asyncio
from typing import Dict, Iterable, List, Optional

from ..matching.filters import filter_candidates
from ..matching.policies import active_policies
from ..models import (
    AvailabilityStatus,
    Donor,
    Hospital,
    Match,
    MatchStatus,
    Notification,
    Patient,
    PatientStatus,
    Policy,
)
from .base import RecordStore


class InMemoryRecordStore(RecordStore):
    def __init__(
        self,
        donors: Iterable[Donor] = (),
        patients: Iterable[Patient] = (),
        policies: Iterable[Policy] = (),
        hospitals: Iterable[Hospital] = (),
    ) -> None:
        self.donors: Dict[str, Donor] = {donor.id: donor for donor in donors}
        self.patients: Dict[str, Patient] = {patient.id: patient for patient in patients}
        self.policies: Dict[str, Policy] = {policy.id: policy for policy in policies}
        self.hospitals: Dict[str, Hospital] = {hospital.id: hospital for hospital in hospitals}
        self.matches: Dict[str, Match] = {}
        self.notifications: List[Notification] = []
        self._lock = asyncio.Lock()

    async def get_patient(self, patient_id: str) -> Optional[Patient]:
        return self.patients.get(patient_id)

    async def get_donor(self, donor_id: str) -> Optional[Donor]:
        return self.donors.get(donor_id)

    async def get_hospital(self, hospital_id: str) -> Optional[Hospital]:
        return self.hospitals.get(hospital_id)

    async def find_donors_by_organ(self, organ: str, availability: AvailabilityStatus) -> List[Donor]:
        return filter_candidates(self.donors.values(), organ, availability)

    async def find_implemented_policies(self, organ: str) -> List[Policy]:
        return active_policies(self.policies.values(), organ)

    async def find_waiting_patients(self, hospital_id: str) -> List[Patient]:
        return [
            patient
            for patient in self.patients.values()
            if patient.hospital_id == hospital_id and patient.status == PatientStatus.WAITING
        ]

    async def insert_matches(self, matches: List[Match]) -> List[Match]:
        async with self._lock:
            for match in matches:
                self.matches[match.id] = match
        return matches

    async def get_match(self, match_id: str) -> Optional[Match]:
        return self.matches.get(match_id)

    async def save_match(self, match: Match) -> Match:
        async with self._lock:
            self.matches[match.id] = match
        return match

    async def find_pending_match(self, patient_id: str, donor_id: str) -> Optional[Match]:
        for match in self.matches.values():
            if (
                match.patient_id == patient_id
                and match.donor_id == donor_id
                and match.status == MatchStatus.PENDING
            ):
                return match
        return None

    async def find_matches(
        self,
        status: MatchStatus | None = None,
        hospital_id: str | None = None,
    ) -> List[Match]:
        found = [
            match
            for match in self.matches.values()
            if (status is None or match.status == status)
            and (hospital_id is None or hospital_id in (match.hospital_id, match.donor_hospital_id))
        ]
        return sorted(found, key=lambda match: (match.created_at, match.id))

    async def set_donor_availability(self, donor_id: str, availability: AvailabilityStatus) -> None:
        donor = self.donors.get(donor_id)
        if donor is not None:
            self.donors[donor_id] = donor.model_copy(update={"availability_status": availability})

    async def set_patient_status(self, patient_id: str, status: PatientStatus) -> None:
        patient = self.patients.get(patient_id)
        if patient is not None:
            self.patients[patient_id] = patient.model_copy(update={"status": status})

    async def insert_notification(self, notification: Notification) -> Notification:
        self.notifications.append(notification)
        return notification
