from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field


class AvailabilityStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    TEMPORARILY_UNAVAILABLE = "TEMPORARILY_UNAVAILABLE"
    MATCHED = "MATCHED"
    NOT_AVAILABLE = "NOT_AVAILABLE"


class Donor(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    first_name: str
    last_name: str
    date_of_birth: date
    blood_type: str
    organ_types: List[str] = Field(default_factory=list)
    availability_status: AvailabilityStatus = AvailabilityStatus.AVAILABLE
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
