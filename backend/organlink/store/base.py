from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

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


class RecordStore(ABC):
    """Donor, patient, policy, hospital, match and notification records.

    Implementations raise ``StoreError`` when the backing store fails.
    """

    @abstractmethod
    async def get_patient(self, patient_id: str) -> Optional[Patient]: ...

    @abstractmethod
    async def get_donor(self, donor_id: str) -> Optional[Donor]: ...

    @abstractmethod
    async def get_hospital(self, hospital_id: str) -> Optional[Hospital]: ...

    @abstractmethod
    async def find_donors_by_organ(self, organ: str, availability: AvailabilityStatus) -> List[Donor]: ...

    @abstractmethod
    async def find_implemented_policies(self, organ: str) -> List[Policy]: ...

    @abstractmethod
    async def find_waiting_patients(self, hospital_id: str) -> List[Patient]: ...

    @abstractmethod
    async def insert_matches(self, matches: List[Match]) -> List[Match]: ...

    @abstractmethod
    async def get_match(self, match_id: str) -> Optional[Match]: ...

    @abstractmethod
    async def save_match(self, match: Match) -> Match: ...

    @abstractmethod
    async def find_pending_match(self, patient_id: str, donor_id: str) -> Optional[Match]: ...

    @abstractmethod
    async def find_matches(
        self,
        status: MatchStatus | None = None,
        hospital_id: str | None = None,
    ) -> List[Match]: ...

    @abstractmethod
    async def set_donor_availability(self, donor_id: str, availability: AvailabilityStatus) -> None: ...

    @abstractmethod
    async def set_patient_status(self, patient_id: str, status: PatientStatus) -> None: ...

    @abstractmethod
    async def insert_notification(self, notification: Notification) -> Notification: ...
