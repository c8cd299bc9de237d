"""Interpretation of organization-approved allocation policies.

A policy document is a JSON object of named clauses. Two clauses are known:

* ``age_priority`` -- integer threshold; patients strictly younger receive
  ``AGE_PRIORITY_BONUS`` points.
* ``location_bonus`` -- city name; patients whose city matches it
  case-insensitively receive ``LOCATION_BONUS`` points.

Unknown clauses are ignored. A document that cannot be decoded, or whose known
clauses carry values of the wrong type, is skipped as a whole with a warning.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Union

from loguru import logger

from ..errors import PolicyParseError
from ..models.patient import Patient
from ..models.policy import Policy, PolicyStatus

AGE_PRIORITY_BONUS = 10.0
LOCATION_BONUS = 5.0


@dataclass(frozen=True)
class AgePriority:
    threshold: int

    def bonus(self, patient_age: int, patient_city: str | None) -> float:
        return AGE_PRIORITY_BONUS if patient_age < self.threshold else 0.0


@dataclass(frozen=True)
class LocationBonus:
    city: str

    def bonus(self, patient_age: int, patient_city: str | None) -> float:
        if patient_city and patient_city.casefold() == self.city.casefold():
            return LOCATION_BONUS
        return 0.0


PolicyClause = Union[AgePriority, LocationBonus]


def _decode(policy_data: Any) -> Mapping[str, Any]:
    if policy_data is None:
        return {}
    if isinstance(policy_data, Mapping):
        return policy_data
    if isinstance(policy_data, (str, bytes)):
        try:
            decoded = json.loads(policy_data)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise PolicyParseError(f"Invalid policy JSON: {exc}") from exc
        if not isinstance(decoded, Mapping):
            raise PolicyParseError(f"Policy document must be an object, got {type(decoded).__name__}")
        return decoded
    raise PolicyParseError(f"Unsupported policy document type {type(policy_data).__name__}")


def parse_policy_rules(policy_data: Any) -> List[PolicyClause]:
    rules = _decode(policy_data)
    clauses: List[PolicyClause] = []

    if "age_priority" in rules:
        threshold = rules["age_priority"]
        # bool is an int subclass
        if isinstance(threshold, bool) or not isinstance(threshold, int):
            raise PolicyParseError(f"age_priority must be an integer, got {threshold!r}")
        clauses.append(AgePriority(threshold))

    if "location_bonus" in rules:
        city = rules["location_bonus"]
        if not isinstance(city, str):
            raise PolicyParseError(f"location_bonus must be a city name, got {city!r}")
        clauses.append(LocationBonus(city))

    return clauses


def active_policies(policies: Iterable[Policy], organ: str) -> List[Policy]:
    return [
        policy
        for policy in policies
        if policy.status == PolicyStatus.IMPLEMENTED and policy.organ_type == organ
    ]


def policy_adjustment(policies: Iterable[Policy], patient: Patient, patient_age: int) -> float:
    """Sum the bonus points granted to ``patient`` by every parseable policy."""
    total = 0.0
    for policy in policies:
        try:
            clauses = parse_policy_rules(policy.policy_data)
        except PolicyParseError as exc:
            logger.warning("Skipping policy {}: {}", policy.id, exc)
            continue
        for clause in clauses:
            total += clause.bonus(patient_age, patient.city)
    return total
