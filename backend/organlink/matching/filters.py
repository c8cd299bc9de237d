from __future__ import annotations

from typing import Iterable, List

from ..models.donor import AvailabilityStatus, Donor


def is_candidate(donor: Donor, organ: str, availability: AvailabilityStatus = AvailabilityStatus.AVAILABLE) -> bool:
    """Organ offered by exact string equality and donor in the requested availability state.

    No immunological compatibility is checked here.
    """
    return donor.availability_status == availability and organ in donor.organ_types


def filter_candidates(
    donors: Iterable[Donor],
    organ: str,
    availability: AvailabilityStatus = AvailabilityStatus.AVAILABLE,
) -> List[Donor]:
    return [donor for donor in donors if is_candidate(donor, organ, availability)]
