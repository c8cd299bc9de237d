from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class Hospital(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    name: str
    city: str | None = None
    contact_user_id: str | None = None


class Notification(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    recipient: str
    message: str
    link: str | None = None
    read: bool = False
    created_at: datetime
