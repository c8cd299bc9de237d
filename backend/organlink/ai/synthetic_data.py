"""Synthetic match-outcome data for bootstrapping the compatibility model.

Rows are simulated match attempts. The label is drawn from a hand-written
success heuristic that also looks at attributes outside the live feature
schema (BMI, distance, HLA score), so a model trained on this data is only a
stand-in until real outcomes are available.
"""

from __future__ import annotations

import numpy as np
import pandas as pd

from .compatibility_model import LABEL_COLUMN, MODEL_FEATURES

BLOOD_TYPES = ["A+", "A-", "B+", "B-", "AB+", "AB-", "O+", "O-"]
ORGAN_TYPES = ["heart", "liver", "kidney", "lung", "pancreas"]
URGENCY_LEVELS = 5
POLICY_ADJUSTMENTS = [0.0, 5.0, 10.0, 15.0]


def is_blood_type_compatible(donor_type: str, patient_type: str) -> bool:
    if donor_type == "O-":
        return True
    if patient_type == "AB+":
        return True
    return donor_type == patient_type


def success_probability(
    blood_compatible: bool,
    age_difference: float,
    distance_km: float,
    hla_match_score: float,
) -> float:
    probability = 0.5
    if blood_compatible:
        probability += 0.3
    if age_difference < 10:
        probability += 0.1
    if distance_km < 100:
        probability += 0.1
    if hla_match_score > 4:
        probability += 0.1
    return min(1.0, probability)


def generate_synthetic_dataset(size: int, seed: int | None = None) -> pd.DataFrame:
    if size <= 0:
        raise ValueError("Synthetic dataset size must be positive")
    rng = np.random.default_rng(seed)

    donor_age = 20 + rng.random(size) * 50
    patient_age = 18 + rng.random(size) * 60
    donor_bmi = 18 + rng.random(size) * 15
    patient_bmi = 18 + rng.random(size) * 15
    donor_blood = rng.choice(BLOOD_TYPES, size)
    patient_blood = rng.choice(BLOOD_TYPES, size)
    urgency = rng.integers(0, URGENCY_LEVELS, size)
    waiting_days = rng.random(size) * 1000
    distance_km = rng.random(size) * 1000
    hla_score = rng.random(size) * 6
    organ = rng.choice(ORGAN_TYPES, size)
    policy = rng.choice(POLICY_ADJUSTMENTS, size)

    compatible = np.array(
        [is_blood_type_compatible(d, p) for d, p in zip(donor_blood, patient_blood)],
        dtype=bool,
    )
    age_difference = np.abs(donor_age - patient_age)
    probability = np.array(
        [
            success_probability(c, a, d, h)
            for c, a, d, h in zip(compatible, age_difference, distance_km, hla_score)
        ]
    )
    outcome = (rng.random(size) < probability).astype(int)

    frame = pd.DataFrame(
        {
            "patient_age": np.floor(patient_age),
            "donor_age": np.floor(donor_age),
            "blood_type_match": (donor_blood == patient_blood).astype(float),
            "urgency_level": urgency.astype(float),
            "waiting_time_days": np.floor(waiting_days),
            "policy_adjustment": policy,
            "donor_bmi": donor_bmi,
            "patient_bmi": patient_bmi,
            "donor_blood_type": donor_blood,
            "patient_blood_type": patient_blood,
            "blood_type_compatible": compatible.astype(int),
            "age_difference": age_difference,
            "distance_km": distance_km,
            "hla_match_score": hla_score,
            "organ_type": organ,
            "success_probability": probability,
            LABEL_COLUMN: outcome,
        }
    )
    return frame[MODEL_FEATURES + [c for c in frame.columns if c not in MODEL_FEATURES]]
