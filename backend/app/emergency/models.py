"""
models.py — Shared data structures for the emergency push fan-out.

Defines:
    • EmergencyEvent      — the inbound emergency report (one per request)
    • LocationRecord      — a user's last known position + device token
    • NotificationPayload — the fixed-shape push message
    • DispatchOutcome     — per-recipient delivery result
    • FanoutResult        — aggregate over all attempted recipients

═══════════════════════════════════════════════════════════════════════════
COUNTING RULES
═══════════════════════════════════════════════════════════════════════════

    sent_count + failed_count == len(outcomes)
                              == candidates attempted (token present,
                                 not the reporter)

A candidate without a push token is never attempted, so it appears in
neither count. Both counts are derived from ``outcomes`` rather than
stored, so they cannot drift from the detail list.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class EmergencyEvent:
    """
    An emergency raised by a reporting user.

    Attributes
    ----------
    emergency_id : str
        Opaque identifier of the emergency record.
    reporter_id : str
        User who raised it; never notified about their own event.
    emergency_type : str
        Free-form type shown in the notification body (e.g. "Medical").
    lat, lng : float
        Reporter position in decimal degrees.
    """
    emergency_id: str
    reporter_id: str
    emergency_type: str
    lat: float
    lng: float


@dataclass(frozen=True)
class LocationRecord:
    """A directory entry: where a user was last seen and how to reach them."""
    user_id: str
    lat: float
    lng: float
    push_token: Optional[str] = None

    @property
    def has_token(self) -> bool:
        return bool(self.push_token)


@dataclass(frozen=True)
class NotificationPayload:
    """Push message content; ``data`` values are always strings."""
    title: str
    body: str
    data: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class DispatchOutcome:
    """Result of the single delivery attempt made for one recipient."""
    user_id: str
    success: bool
    error_detail: Optional[str] = None
    receipt: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        entry: Dict[str, Any] = {"user": self.user_id, "success": self.success}
        if self.success:
            entry["result"] = self.receipt
        else:
            entry["error"] = self.error_detail
        return entry


@dataclass
class FanoutResult:
    """Aggregate of a fan-out; ``outcomes`` follow candidate order."""
    outcomes: List[DispatchOutcome] = field(default_factory=list)

    @property
    def sent_count(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed_count(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sent": self.sent_count,
            "failed": self.failed_count,
            "details": [o.to_dict() for o in self.outcomes],
        }
