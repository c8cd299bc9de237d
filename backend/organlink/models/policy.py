from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field


class PolicyStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING = "PENDING"
    VOTING = "VOTING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    IMPLEMENTED = "IMPLEMENTED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class Policy(BaseModel):
    """Organization-approved allocation policy for one organ type.

    ``policy_data`` is kept as submitted (JSON text or an already decoded
    mapping); it is only interpreted by the policy rule evaluator.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    title: str = ""
    organ_type: str
    status: PolicyStatus = PolicyStatus.PENDING
    policy_data: str | Dict[str, Any] | None = None
    implementation_date: datetime | None = None
