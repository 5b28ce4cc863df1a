"""Event value model — the payload-bearing unit routed by the dispatcher.

Events are frozen Pydantic models.  The payload is opaque to the
dispatcher: parameterize ``Event[...]`` at the call site to narrow it.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

PayloadT = TypeVar("PayloadT")


class Event(BaseModel, Generic[PayloadT]):
    """A named, timestamped event.

    Examples
    --------
    >>> event = Event(name="order.created", payload={"id": "42"})
    >>> event.payload["id"]
    '42'
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)  # routing key
    payload: PayloadT | None = None
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))

    def describe(self) -> dict[str, Any]:
        """Return a JSON-safe summary without the payload."""
        return {
            "event_id": self.event_id,
            "name": self.name,
            "timestamp": self.timestamp.isoformat(),
        }
