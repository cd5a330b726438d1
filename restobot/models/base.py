# restobot/models/base.py
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, field_validator

class TimeStampedModel(BaseModel):
    """Base model for stored rows with a uuid primary key"""
    id: str
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value):
        return str(value)
