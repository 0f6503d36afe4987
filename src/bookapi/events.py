"""
bookapi/events.py: NATS event publisher.

Publishes account lifecycle events:
    • ``bookapi.account.registered``       self-service registration
    • ``bookapi.account.verified``         OTP accepted
    • ``bookapi.account.approved``         approved by a manager/admin
    • ``bookapi.account.rejected``         rejected (record deleted)
    • ``bookapi.account.manager_created``  manager created by an admin

Graceful degradation: when NATS is unreachable the event is skipped with a
log line; the lifecycle transition has already been persisted.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import nats
from nats.aio.client import Client as NATSClient

logger = logging.getLogger(__name__)

SUBJECT_PREFIX = "bookapi.account"


class EventPublisher:
    """Lazily connected NATS publisher, one per process."""

    def __init__(self, url: str, enabled: bool = True) -> None:
        self.url = url
        self.enabled = enabled
        self._nc: NATSClient | None = None

    async def connect(self) -> NATSClient | None:
        """Connects to NATS if not connected yet."""
        if not self.enabled:
            return None
        if self._nc is not None and self._nc.is_connected:
            return self._nc
        try:
            self._nc = await nats.connect(self.url)
            logger.info("NATS publisher connected: %s", self.url)
            return self._nc
        except Exception as exc:
            logger.warning("NATS connect failed (events will be skipped): %s", exc)
            self._nc = None
            return None

    async def disconnect(self) -> None:
        if self._nc and self._nc.is_connected:
            await self._nc.drain()
            logger.info("NATS publisher disconnected")
        self._nc = None

    async def publish(self, subject: str, data: dict[str, Any]) -> None:
        """
        Publishes a JSON event.

        Args:
            subject: Message subject (e.g. ``bookapi.account.registered``).
            data: Payload, serialized to JSON.
        """
        nc = await self.connect()
        if nc is None:
            logger.debug("NATS unavailable, skipping event %s", subject)
            return
        try:
            await nc.publish(subject, json.dumps(data, default=str).encode("utf-8"))
            logger.info("NATS event published: %s", subject)
        except Exception as exc:
            logger.warning("NATS publish failed for %s: %s", subject, exc)

    async def emit(self, event: str, account: dict) -> None:
        """Account event; the payload never includes credentials."""
        await self.publish(f"{SUBJECT_PREFIX}.{event}", {
            "event": f"account.{event}",
            "account_id": str(account["account_id"]),
            "email": account["email"],
            "username": account["username"],
            "role": account["role"],
        })
