"""
Shared fixtures: an in-memory record store seeded with three hospitals, a
kidney patient and a small donor pool, plus a fake estimator whose
probabilities are keyed by donor age so ranking scenarios stay deterministic.
"""
from datetime import date
from typing import Dict

import numpy as np
import pytest

from organlink.ai.compatibility_model import MODEL_FEATURES, TrainedModel
from organlink.ai.model_handle import ModelHandle
from organlink.database import Settings
from organlink.matching.engine import MatchingEngine
from organlink.models import (
    AvailabilityStatus,
    Donor,
    Hospital,
    Patient,
    PatientStatus,
    Policy,
    PolicyStatus,
    UrgencyLevel,
)
from organlink.store.memory import InMemoryRecordStore

TODAY = date.today()


class FakeEstimator:
    """Returns a fixed success probability per donor age."""

    classes_ = np.array([0, 1])

    def __init__(self, by_donor_age: Dict[float, float], default: float = 0.0) -> None:
        self.by_donor_age = by_donor_age
        self.default = default
        self.seen_columns = None

    def predict_proba(self, frame):
        self.seen_columns = list(frame.columns)
        success = np.array([self.by_donor_age.get(age, self.default) for age in frame["donor_age"]])
        return np.column_stack([1.0 - success, success])


def fake_model(by_donor_age: Dict[float, float], source: str = "csv") -> TrainedModel:
    return TrainedModel(
        estimator=FakeEstimator(by_donor_age),
        features=tuple(MODEL_FEATURES),
        version="test-1",
        source=source,
        training_size=0,
    )


def make_donor(donor_id: str, birth_year: int, hospital_id: str = "H2", **overrides) -> Donor:
    fields = {
        "id": donor_id,
        "first_name": "Donor",
        "last_name": donor_id,
        "date_of_birth": date(birth_year, 6, 1),
        "blood_type": "O+",
        "organ_types": ["kidney"],
        "availability_status": AvailabilityStatus.AVAILABLE,
        "hospital_id": hospital_id,
        "city": "Bangalore",
    }
    fields.update(overrides)
    return Donor(**fields)


def make_patient(patient_id: str = "P1", **overrides) -> Patient:
    fields = {
        "id": patient_id,
        "first_name": "Asha",
        "last_name": "Rao",
        "date_of_birth": date(1990, 3, 15),
        "blood_type": "O+",
        "organ_needed": "kidney",
        "urgency_level": UrgencyLevel.HIGH,
        "waiting_list_date": date(2025, 12, 2),
        "status": PatientStatus.WAITING,
        "hospital_id": "H1",
        "city": "Chennai",
    }
    fields.update(overrides)
    return Patient(**fields)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        model_dir=tmp_path / "models",
        datasets_dir=tmp_path / "datasets",
        matching_threshold=0.6,
        n_estimators=10,
        cv_folds=3,
        synthetic_training_size=200,
        allow_synthetic_bootstrap=False,
    )


@pytest.fixture
def hospitals():
    return [
        Hospital(id="H1", name="City General", city="Chennai", contact_user_id="user-h1"),
        Hospital(id="H2", name="Lakeside", city="Bangalore", contact_user_id="user-h2"),
        Hospital(id="H3", name="Hilltop", city="Mysore"),
    ]


@pytest.fixture
def donors():
    # Ages on TODAY: D0 46, D1 36, D2 26 (year difference).
    return [
        make_donor("D0", TODAY.year - 46, "H2"),
        make_donor("D1", TODAY.year - 36, "H1"),
        make_donor("D2", TODAY.year - 26, "H2"),
    ]


@pytest.fixture
def store(hospitals, donors):
    policies = [
        Policy(id="POL-1", title="Paediatric priority", organ_type="kidney",
               status=PolicyStatus.IMPLEMENTED, policy_data='{"age_priority": 18}'),
    ]
    return InMemoryRecordStore(donors=donors, patients=[make_patient()], policies=policies, hospitals=hospitals)


@pytest.fixture
def scenario_model():
    return fake_model({46.0: 0.9, 36.0: 0.3, 26.0: 0.7})


@pytest.fixture
def engine(store, settings, scenario_model):
    handle = ModelHandle(settings.model_path, model=scenario_model)
    return MatchingEngine(store, handle, settings)
