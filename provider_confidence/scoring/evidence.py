"""
Evidence and result types for the confidence scoring engine.

ProviderPlanEvidence is the immutable snapshot the persistence layer hands
to the engine for one provider/plan pair; ConfidenceResult is what the
engine hands back.
"""

import math
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Dict, Optional, Type, TypeVar, Union

import pandas as pd

from .sources import VerificationSource, coerce_source

Timestamp = Union[datetime, date]

SECONDS_PER_DAY = 24 * 60 * 60

StatusT = TypeVar("StatusT", bound=Enum)


class ProviderStatus(str, Enum):
    ACTIVE = "ACTIVE"
    DEACTIVATED = "DEACTIVATED"


class AcceptanceStatus(str, Enum):
    ACCEPTED = "ACCEPTED"
    NOT_ACCEPTED = "NOT_ACCEPTED"
    PENDING = "PENDING"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class ProviderPlanEvidence:
    """
    Snapshot of everything known about one provider/plan acceptance record.

    Source and status fields accept enum members or their string names.
    Unrecognized statuses fall back to the field default (ACTIVE, UNKNOWN),
    as unrecognized sources fall back to absent.
    Counts are expected to be non-negative.
    """

    data_source: Optional[VerificationSource] = None
    data_source_date: Optional[Timestamp] = None
    last_verified_at: Optional[Timestamp] = None
    verification_source: Optional[VerificationSource] = None
    verification_count: int = 0
    upvotes: int = 0
    downvotes: int = 0
    user_submissions: int = 0
    plan_effective_date: Optional[Timestamp] = None
    plan_termination_date: Optional[Timestamp] = None
    provider_last_update_date: Optional[Timestamp] = None
    provider_status: ProviderStatus = ProviderStatus.ACTIVE
    acceptance_status: AcceptanceStatus = AcceptanceStatus.UNKNOWN

    def __post_init__(self):
        object.__setattr__(self, "data_source", coerce_source(self.data_source))
        object.__setattr__(self, "verification_source", coerce_source(self.verification_source))
        object.__setattr__(self, "provider_status",
                           coerce_status(ProviderStatus, self.provider_status, ProviderStatus.ACTIVE))
        object.__setattr__(self, "acceptance_status",
                           coerce_status(AcceptanceStatus, self.acceptance_status, AcceptanceStatus.UNKNOWN))


@dataclass(frozen=True)
class FactorScore:
    """Raw (unrounded) score of one factor with its explanation."""

    score: float
    reason: str


@dataclass(frozen=True)
class ConfidenceFactors:
    data_source_score: int
    data_source_reason: str
    recency_score: int
    recency_reason: str
    verification_score: int
    verification_reason: str
    crowdsource_score: int
    crowdsource_reason: str

    def to_dict(self) -> Dict[str, Union[int, str]]:
        return {
            "dataSourceScore": self.data_source_score,
            "dataSourceReason": self.data_source_reason,
            "recencyScore": self.recency_score,
            "recencyReason": self.recency_reason,
            "verificationScore": self.verification_score,
            "verificationReason": self.verification_reason,
            "crowdsourceScore": self.crowdsource_score,
            "crowdsourceReason": self.crowdsource_reason,
        }


@dataclass(frozen=True)
class ConfidenceResult:
    score: int
    factors: ConfidenceFactors
    recommendation: str
    needs_verification: bool

    def to_dict(self) -> Dict:
        """Serialize to the JSON shape returned by the API layer."""
        return {
            "score": self.score,
            "factors": self.factors.to_dict(),
            "recommendation": self.recommendation,
            "needsVerification": self.needs_verification,
        }


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def coerce_status(status_type: Type[StatusT], value, default: StatusT) -> StatusT:
    """
    Convert a raw status value into a member of ``status_type``.

    Args:
        status_type: ProviderStatus or AcceptanceStatus
        value: Enum member, its string name (any case), or None
        default: Member used for absent or unrecognized values

    Returns:
        Matching status member, or ``default``
    """
    if isinstance(value, status_type):
        return value
    if _missing(value):
        return default

    try:
        return status_type(str(value).strip().upper())
    except ValueError:
        return default


def as_instant(now: Timestamp) -> datetime:
    """Evaluation instant as a datetime; a plain date means its midnight."""
    if isinstance(now, datetime):
        return now
    return datetime(now.year, now.month, now.day)


def as_datetime(value: Timestamp, now: Timestamp) -> datetime:
    """
    Align a date or datetime with the timezone awareness of ``now``.

    Plain dates are taken as midnight. Naive values are assumed to be in
    ``now``'s timezone; aware values compared against a naive ``now`` are
    converted to naive UTC.
    """
    now = as_instant(now)
    result = as_instant(value)

    if result.tzinfo is None and now.tzinfo is not None:
        result = result.replace(tzinfo=now.tzinfo)
    elif result.tzinfo is not None and now.tzinfo is None:
        result = result.astimezone(timezone.utc).replace(tzinfo=None)

    return result


def days_since(value: Timestamp, now: Timestamp) -> int:
    """Whole days elapsed from ``value`` to ``now`` (floored)."""
    now = as_instant(now)
    elapsed = now - as_datetime(value, now)
    return int(math.floor(elapsed.total_seconds() / SECONDS_PER_DAY))


def _missing(value) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _timestamp(value) -> Optional[Timestamp]:
    if _missing(value):
        return None
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, (datetime, date)):
        return value
    try:
        return pd.Timestamp(value).to_pydatetime()
    except (TypeError, ValueError):
        return None


def _count(value) -> int:
    return 0 if _missing(value) else int(value)


def evidence_from_record(record: Dict) -> ProviderPlanEvidence:
    """
    Build a ProviderPlanEvidence from a flat acceptance record.

    Accepts the snake_case column names used in record files. NaN, NaT and
    missing keys are treated as absent evidence.

    Args:
        record: Mapping such as a DataFrame row converted with ``to_dict()``

    Returns:
        Evidence snapshot for the record
    """
    return ProviderPlanEvidence(
        data_source=None if _missing(record.get("data_source")) else record.get("data_source"),
        data_source_date=_timestamp(record.get("data_source_date")),
        last_verified_at=_timestamp(record.get("last_verified_at")),
        verification_source=(None if _missing(record.get("verification_source"))
                             else record.get("verification_source")),
        verification_count=_count(record.get("verification_count")),
        upvotes=_count(record.get("upvotes")),
        downvotes=_count(record.get("downvotes")),
        user_submissions=_count(record.get("user_submissions")),
        plan_effective_date=_timestamp(record.get("plan_effective_date")),
        plan_termination_date=_timestamp(record.get("plan_termination_date")),
        provider_last_update_date=_timestamp(record.get("provider_last_update_date")),
        provider_status=record.get("provider_status"),
        acceptance_status=record.get("acceptance_status"),
    )
