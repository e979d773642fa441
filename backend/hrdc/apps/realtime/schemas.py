from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class LiveEventName(str, Enum):
    NOTIFICATION_CREATED = "notification.created"
    NOTIFICATION_READ = "notification.read"
    NOTIFICATION_ALL_READ = "notification.all_read"


class LiveTargetKind(str, Enum):
    USER = "user"
    GROUP = "group"


class LiveEnvelope(BaseModel):
    """Wire format mirrored between API processes over MQTT."""

    model_config = ConfigDict(extra="forbid")

    v: int = Field(default=1, ge=1)
    id: str = Field(min_length=4, max_length=64)
    ts: int = Field(ge=0)
    origin: str = Field(min_length=1, max_length=64)
    targetKind: LiveTargetKind
    target: str = Field(min_length=1, max_length=64)
    event: LiveEventName
    payload: dict[str, Any] = Field(default_factory=dict)

    @field_validator("payload")
    @classmethod
    def _payload_size(cls, value: dict[str, Any]) -> dict[str, Any]:
        if len(value) > 32:
            raise ValueError("payload has too many keys")
        return value
