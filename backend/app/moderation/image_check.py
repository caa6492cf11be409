"""
image_check.py — Route sensitive crime reports to human moderation.

The client runs its own image checks before upload and sends the result
along as ``client_check``. The server adds one rule on top: reports in a
sensitive category (violent death and similar) are never auto-published.

    crime_category contains a sensitive term   →  needs_review / human_moderation
    otherwise                                  →  approved     / publish

Matching is a case-insensitive substring test, so "Murder (suspected)"
and "MURDER" both match "murder".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Sequence

logger = logging.getLogger(__name__)


DEFAULT_SENSITIVE_CATEGORIES: Sequence[str] = (
    "killing",
    "murder",
    "homicide",
    "dead body",
    "violent death",
)


class ReviewStatus(str, Enum):
    APPROVED = "approved"
    NEEDS_REVIEW = "needs_review"


class NextStep(str, Enum):
    PUBLISH = "publish"
    HUMAN_MODERATION = "human_moderation"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class VerificationRecord:
    """Server-side verification result for one report image."""
    report_id: str
    image_url: str
    user_id: str
    crime_category: str
    is_sensitive: bool
    client_check: Optional[Dict[str, Any]] = None
    created_at: datetime = field(default_factory=_now)

    @property
    def needs_human_review(self) -> bool:
        return self.is_sensitive

    @property
    def overall_status(self) -> ReviewStatus:
        return ReviewStatus.NEEDS_REVIEW if self.is_sensitive else ReviewStatus.APPROVED

    @property
    def next_step(self) -> NextStep:
        return NextStep.HUMAN_MODERATION if self.is_sensitive else NextStep.PUBLISH

    def to_dict(self) -> Dict[str, Any]:
        return {
            "report_id": self.report_id,
            "image_url": self.image_url,
            "user_id": self.user_id,
            "client_check": self.client_check,
            "crime_category": self.crime_category,
            "is_sensitive": self.is_sensitive,
            "needs_human_review": self.needs_human_review,
            "overall_status": self.overall_status.value,
            "created_at": self.created_at.isoformat(),
        }


def is_sensitive_category(
    crime_category: str,
    sensitive_categories: Iterable[str] = DEFAULT_SENSITIVE_CATEGORIES,
) -> bool:
    """
    >>> is_sensitive_category("Suspected MURDER")
    True
    >>> is_sensitive_category("theft")
    False
    """
    lowered = crime_category.lower()
    return any(term.lower() in lowered for term in sensitive_categories)


def verify_report(
    report_id: str,
    image_url: str,
    user_id: str,
    crime_category: str,
    *,
    client_check: Optional[Dict[str, Any]] = None,
    sensitive_categories: Iterable[str] = DEFAULT_SENSITIVE_CATEGORIES,
) -> VerificationRecord:
    """Classify a report and log the verification record."""
    record = VerificationRecord(
        report_id=report_id,
        image_url=image_url,
        user_id=user_id,
        crime_category=crime_category,
        is_sensitive=is_sensitive_category(crime_category, sensitive_categories),
        client_check=client_check,
    )
    logger.info(
        "Verification for report %s (category=%r): %s",
        report_id, crime_category, record.overall_status.value,
    )
    return record
