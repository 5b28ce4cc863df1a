"""Broker message model used by the in-process channel."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict


class BrokerMessage(BaseModel):
    """A published message waiting in a local queue."""

    model_config = ConfigDict(frozen=True)

    body: bytes
    exchange: str = ""
    routing_key: str = ""
    headers: dict[str, Any] = {}
    redelivered: bool = False
