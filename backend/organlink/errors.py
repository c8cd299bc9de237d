from __future__ import annotations

from typing import Any, List, Sequence


class OrganLinkError(Exception):
    """Base class for every error the matching service reports to callers."""


class PatientNotFoundError(OrganLinkError):
    def __init__(self, patient_id: str) -> None:
        super().__init__(f"Patient not found with ID: {patient_id}")
        self.patient_id = patient_id


class MatchNotFoundError(OrganLinkError):
    def __init__(self, match_id: str) -> None:
        super().__init__(f"Match not found: {match_id}")
        self.match_id = match_id


class InvalidTransitionError(OrganLinkError):
    def __init__(self, match_id: str, current: str, target: str) -> None:
        super().__init__(f"Match {match_id} cannot move from {current} to {target}")
        self.match_id = match_id
        self.current = current
        self.target = target


class DonorUnavailableError(OrganLinkError):
    def __init__(self, donor_id: str, availability: str) -> None:
        super().__init__(f"Donor {donor_id} is not available (status {availability})")
        self.donor_id = donor_id
        self.availability = availability


class ModelNotTrainedError(OrganLinkError):
    """No persisted model, no dataset to train on and synthetic bootstrap is disabled."""


class ModelLoadError(OrganLinkError):
    """The persisted model artifact exists but cannot be read."""


class FeatureSchemaMismatchError(OrganLinkError):
    def __init__(self, expected: Sequence[str], actual: Sequence[Any]) -> None:
        super().__init__(f"Feature schema mismatch: expected {list(expected)}, got {list(actual)}")
        self.expected = list(expected)
        self.actual = list(actual)


class TrainingError(OrganLinkError):
    pass


class TrainingInProgressError(OrganLinkError):
    def __init__(self) -> None:
        super().__init__("A training run is already in progress")


class DatasetError(OrganLinkError):
    pass


class PolicyParseError(OrganLinkError):
    pass


class StoreError(OrganLinkError):
    pass


class MatchPersistenceError(OrganLinkError):
    pass


class NotificationError(OrganLinkError):
    """Raised after matches were persisted but a hospital could not be notified."""

    def __init__(self, message: str, matches: List[Any] | None = None) -> None:
        super().__init__(message)
        self.matches = matches or []
