"""
dispatcher.py — Concurrent push fan-out with per-recipient failure isolation.

═══════════════════════════════════════════════════════════════════════════
FAN-OUT FLOW
═══════════════════════════════════════════════════════════════════════════

    candidates (lookup order)
          │
          ▼
    ┌─────────────────────┐
    │  1. Eligibility     │  drop token-less records and the reporter
    └─────────┬───────────┘
              ▼
    ┌─────────────────────┐
    │  2. Payload         │  one fixed NotificationPayload per event
    └─────────┬───────────┘
              ▼
    ┌─────────────────────┐
    │  3. Schedule        │  one asyncio task per candidate,
    │                     │  bounded by a semaphore
    └─────────┬───────────┘
              ▼
    ┌─────────────────────┐
    │  4. Collect         │  receipt | DispatchError per task,
    │                     │  read back in task (= input) order
    └─────────┬───────────┘
              ▼
    ┌─────────────────────┐
    │  5. Aggregate       │  FanoutResult(outcomes)
    └─────────────────────┘

Each task returns either the transport receipt or a ``DispatchError``;
it never raises. A dead token, a timeout or a bug in one transport call
therefore only turns that recipient's outcome into a failure.

Exactly one attempt is made per recipient. If the overall deadline
passes, finished outcomes are kept and the still-running sends are
cancelled and recorded as failed ("abandoned"), so
``sent + failed == attempted`` holds in every case.
If the caller cancels the fan-out, the sends that already finished are
logged with a sent/failed summary before the cancellation propagates.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Union

from backend.app.core.errors import DispatchError
from backend.app.emergency.channels.base import PushTransport
from backend.app.emergency.models import (
    DispatchOutcome,
    EmergencyEvent,
    FanoutResult,
    LocationRecord,
    NotificationPayload,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Payload
# ═══════════════════════════════════════════════════════════════════════════

EMERGENCY_TITLE = "🚨 EMERGENCY NEARBY"
CLICK_ACTION = "FLUTTER_NOTIFICATION_CLICK"
ABANDONED_DETAIL = "dispatch abandoned: fan-out deadline exceeded"

# Receipt on success, typed error on failure
DispatchResult = Union[Dict[str, Any], DispatchError]


def build_notification(event: EmergencyEvent) -> NotificationPayload:
    """
    The message every nearby user receives for ``event``.

    ``click_action`` makes the Flutter app open its emergency screen
    when the notification is tapped.
    """
    return NotificationPayload(
        title=EMERGENCY_TITLE,
        body=f"{event.emergency_type} emergency within 500m! Tap to respond.",
        data={
            "emergency_id": event.emergency_id,
            "type": event.emergency_type,
            "lat": str(event.lat),
            "lng": str(event.lng),
            "click_action": CLICK_ACTION,
        },
    )


def eligible_candidates(
    event: EmergencyEvent, candidates: Sequence[LocationRecord],
) -> List[LocationRecord]:
    """Candidates that will get exactly one send attempt."""
    return [
        c for c in candidates
        if c.has_token and c.user_id != event.reporter_id
    ]


def to_outcome(candidate: LocationRecord, result: DispatchResult) -> DispatchOutcome:
    if isinstance(result, DispatchError):
        return DispatchOutcome(
            user_id=candidate.user_id, success=False, error_detail=result.message,
        )
    return DispatchOutcome(user_id=candidate.user_id, success=True, receipt=result)


# ═══════════════════════════════════════════════════════════════════════════
# Dispatcher
# ═══════════════════════════════════════════════════════════════════════════

class FanoutDispatcher:
    """
    Sends one event to many recipients concurrently.

    Parameters
    ----------
    transport : PushTransport
        Delivery backend; called once per eligible candidate.
    max_concurrency : int
        Upper bound on simultaneous transport calls.
    timeout_seconds : float | None
        Deadline for the whole fan-out; ``None`` waits for every send.
    """

    def __init__(
        self,
        transport: PushTransport,
        *,
        max_concurrency: int = 50,
        timeout_seconds: Optional[float] = None,
    ):
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {max_concurrency}")
        self.transport = transport
        self.max_concurrency = max_concurrency
        self.timeout_seconds = timeout_seconds

    async def _attempt(
        self,
        token: str,
        payload: NotificationPayload,
        semaphore: asyncio.Semaphore,
    ) -> DispatchResult:
        async with semaphore:
            try:
                return await self.transport.send(token, payload)
            except DispatchError as exc:
                return exc
            except Exception as exc:
                # Unexpected transport bug: still only this recipient's failure
                logger.exception("Push transport raised unexpectedly")
                return DispatchError(
                    f"{type(exc).__name__}: {exc}", reason="unexpected",
                )

    @staticmethod
    def _report_cancelled(
        event: EmergencyEvent,
        targets: Sequence[LocationRecord],
        tasks: Sequence["asyncio.Task[DispatchResult]"],
        finished: Sequence[bool],
    ) -> FanoutResult:
        """Log the outcomes of sends that completed before the fan-out was cancelled."""
        partial = FanoutResult(outcomes=[
            to_outcome(c, t.result())
            for c, t, done in zip(targets, tasks, finished) if done
        ])
        delivered = [o.user_id for o in partial.outcomes if o.success]
        logger.warning(
            "Fan-out for %s cancelled after %d/%d send(s): sent=%d failed=%d delivered=%s",
            event.emergency_id, len(partial.outcomes), len(targets),
            partial.sent_count, partial.failed_count, delivered,
            extra={
                "emergency_id": event.emergency_id,
                "sent": partial.sent_count,
                "failed": partial.failed_count,
            },
        )
        return partial

    async def dispatch(
        self,
        event: EmergencyEvent,
        candidates: Sequence[LocationRecord],
    ) -> FanoutResult:
        """
        Notify every eligible candidate once and aggregate the outcomes.

        Returns
        -------
        FanoutResult
            ``outcomes`` in the same order as ``candidates`` (ineligible
            ones removed), independent of completion order.
        """
        targets = eligible_candidates(event, candidates)
        skipped = len(candidates) - len(targets)
        if skipped:
            logger.debug("Skipping %d candidate(s) without token or self", skipped)
        if not targets:
            return FanoutResult()

        payload = build_notification(event)
        semaphore = asyncio.Semaphore(self.max_concurrency)
        tasks = [
            asyncio.create_task(self._attempt(c.push_token, payload, semaphore))
            for c in targets
        ]

        try:
            _, pending = await asyncio.wait(tasks, timeout=self.timeout_seconds)
        except asyncio.CancelledError:
            finished = [t.done() and not t.cancelled() for t in tasks]
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            self._report_cancelled(event, targets, tasks, finished)
            raise

        if pending:
            logger.warning(
                "Fan-out for %s hit %.1fs deadline; abandoning %d send(s)",
                event.emergency_id, self.timeout_seconds, len(pending),
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        results: List[DispatchResult] = [
            DispatchError(ABANDONED_DETAIL, reason="abandoned")
            if task in pending else task.result()
            for task in tasks
        ]

        outcomes = [to_outcome(c, r) for c, r in zip(targets, results)]
        for outcome, result in zip(outcomes, results):
            if isinstance(result, DispatchError):
                logger.warning(
                    "Push to %s failed: %s", outcome.user_id, outcome.error_detail,
                    extra={"user_id": outcome.user_id, "reason": result.reason},
                )

        return FanoutResult(outcomes=outcomes)
