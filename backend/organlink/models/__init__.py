from .donor import AvailabilityStatus, Donor
from .hospital import Hospital, Notification
from .match import ALLOWED_TRANSITIONS, Match, MatchStatus
from .patient import Patient, PatientStatus, UrgencyLevel
from .policy import Policy, PolicyStatus

__all__ = [
    "ALLOWED_TRANSITIONS",
    "AvailabilityStatus",
    "Donor",
    "Hospital",
    "Match",
    "MatchStatus",
    "Notification",
    "Patient",
    "PatientStatus",
    "Policy",
    "PolicyStatus",
    "UrgencyLevel",
]
