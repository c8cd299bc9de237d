from __future__ import annotations

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class UrgencyLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"
    EMERGENCY = "EMERGENCY"

    @property
    def rank(self) -> int:
        return list(UrgencyLevel).index(self)


class PatientStatus(str, Enum):
    REGISTERED = "REGISTERED"
    ACTIVE = "ACTIVE"
    WAITING = "WAITING"
    MATCHED = "MATCHED"
    TRANSPLANTED = "TRANSPLANTED"
    DECEASED = "DECEASED"
    SUSPENDED = "SUSPENDED"
    REMOVED = "REMOVED"


class Patient(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    first_name: str
    last_name: str
    date_of_birth: date
    blood_type: str
    organ_needed: str
    urgency_level: UrgencyLevel = UrgencyLevel.MEDIUM
    waiting_list_date: date | None = None
    status: PatientStatus = PatientStatus.REGISTERED
    hospital_id: str
    city: str | None = None
    state: str | None = None
    country: str | None = None
    bmi: float | None = None
    created_at: datetime | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def age_on(self, today: date) -> int:
        return today.year - self.date_of_birth.year

    @property
    def age(self) -> int:
        return self.age_on(date.today())

    def waiting_days_on(self, today: date) -> int:
        if self.waiting_list_date is None:
            return 0
        return (today - self.waiting_list_date).days
