from __future__ import annotations

from datetime import date
from typing import Dict, Iterable, List

from ..ai.compatibility_model import MODEL_FEATURES
from ..models.donor import Donor
from ..models.patient import Patient
from ..models.policy import Policy
from .policies import policy_adjustment


def blood_type_match(patient: Patient, donor: Donor) -> int:
    # Literal string equality, not ABO compatibility.
    return 1 if patient.blood_type == donor.blood_type else 0


def build_feature_row(
    patient: Patient,
    donor: Donor,
    policies: Iterable[Policy],
    today: date | None = None,
) -> Dict[str, float]:
    today = today or date.today()
    patient_age = patient.age_on(today)
    return {
        "patient_age": float(patient_age),
        "donor_age": float(donor.age_on(today)),
        "blood_type_match": float(blood_type_match(patient, donor)),
        "urgency_level": float(patient.urgency_level.rank),
        "waiting_time_days": float(patient.waiting_days_on(today)),
        "policy_adjustment": policy_adjustment(policies, patient, patient_age),
    }


def to_vector(row: Dict[str, float]) -> List[float]:
    return [row[name] for name in MODEL_FEATURES]


def vectorize(
    patient: Patient,
    donor: Donor,
    policies: Iterable[Policy],
    today: date | None = None,
) -> List[float]:
    return to_vector(build_feature_row(patient, donor, policies, today))
