"""
Kumiho stream event schema.

Contains the Pydantic model for event payloads delivered over the
server-sent events stream.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SseEvent(BaseModel):
    """Schema for one Kumiho stream event.

    Unknown fields are preserved so the delivered record is the full server
    payload, not just the fields the filters look at.

    Attributes:
        kref: Kref URI of the entity the event is about
        routing_key: Dotted routing key (e.g. item.model.created)
        timestamp: Server timestamp as sent (not parsed)
        details: Event-type specific details (tag, artifact name, ...)
        cursor: Opaque resume cursor; checkpointed before delivery

    Example:
        >>> event = SseEvent.model_validate(
        ...     {"kref": "kref://proj/space/hero.model", "cursor": "c1"}
        ... )
        >>> event.cursor
        'c1'
    """

    model_config = ConfigDict(extra="allow")

    kref: str = Field(default="", description="Kref URI of the subject entity")
    routing_key: str = Field(default="", description="Dotted routing key")
    timestamp: str | None = Field(default=None, description="Server timestamp")
    details: dict[str, Any] = Field(default_factory=dict, description="Event details")
    cursor: str | None = Field(default=None, description="Resume cursor")

    @field_validator("kref", "routing_key", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> str:
        if v is None:
            return ""
        return str(v)

    @field_validator("timestamp", "cursor", mode="before")
    @classmethod
    def coerce_optional_text(cls, v: Any) -> str | None:
        if v is None or v == "":
            return None
        return str(v)

    @field_validator("details", mode="before")
    @classmethod
    def coerce_details(cls, v: Any) -> dict[str, Any]:
        return v if isinstance(v, dict) else {}

    def to_record(self) -> dict[str, Any]:
        """The full payload, including unknown server fields."""
        return self.model_dump(mode="json", exclude_unset=True)
