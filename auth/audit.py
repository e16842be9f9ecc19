"""
auth/audit.py -- Security audit trail.

Sinks:
  LoggingAuditSink -- one structured line per event on the marketplace.audit
      logger; ship it wherever the process logs go.
  StoreAuditSink   -- rows in the audit_logs table.

AuditTrail fans an event out to every sink. Emission is a side effect, not a
gate: a failing sink is logged and skipped, and the caller's decision stands.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Protocol

from auth.models import AuditEvent
from auth.store import CredentialStore
from auth.tokens import utcnow

logger = logging.getLogger("marketplace.audit")

_SENSITIVE_KEYS = ("password", "token", "secret", "api_key", "card_number", "cvv")


def mask_sensitive(data: dict, visible_chars: int = 4) -> dict:
    """Return a copy of data with sensitive-looking values masked."""
    masked = {}
    for key, value in data.items():
        if any(s in key.lower() for s in _SENSITIVE_KEYS) and value:
            text = str(value)
            masked[key] = "****" if len(text) <= visible_chars else text[:visible_chars] + "*" * (len(text) - visible_chars)
        else:
            masked[key] = value
    return masked


class AuditSink(Protocol):
    def emit(self, event: AuditEvent) -> None: ...


class LoggingAuditSink:
    def emit(self, event: AuditEvent) -> None:
        level = logging.INFO if event.success else logging.WARNING
        logger.log(
            level,
            "AUDIT %s",
            json.dumps(
                {
                    "action": event.action,
                    "success": event.success,
                    "actor": event.actor_id,
                    "resource": event.resource,
                    "origin": event.origin,
                    "detail": event.detail,
                    "timestamp": event.timestamp.isoformat() if event.timestamp else None,
                },
                default=str,
            ),
        )


class StoreAuditSink:
    def __init__(self, store: CredentialStore) -> None:
        self._store = store

    def emit(self, event: AuditEvent) -> None:
        self._store.append_audit(event)


class AuditTrail:
    """Fan-out over sinks that never raises."""

    def __init__(self, sinks: Iterable[AuditSink], clock: Callable[[], datetime] = utcnow) -> None:
        self._sinks = list(sinks)
        self._clock = clock

    def record(
        self,
        action: str,
        success: bool,
        actor_id: str | None = None,
        origin: str | None = None,
        resource: str | None = None,
        **detail,
    ) -> None:
        event = AuditEvent(
            action=action,
            success=success,
            actor_id=actor_id or "unknown",
            origin=origin,
            resource=resource,
            detail=mask_sensitive(detail),
            timestamp=self._clock(),
        )
        for sink in self._sinks:
            try:
                sink.emit(event)
            except Exception:
                logger.exception("Audit sink %s failed for action %s", type(sink).__name__, action)
