"""
Re-verification policy for ProviderConfidence.

Higher-confidence records are allowed to go longer without a fresh
verification before they are considered stale.
"""

import logging
import math
from datetime import datetime
from typing import Optional

import pandas as pd

from ..scoring.evidence import Timestamp, days_since, evidence_from_record

logger = logging.getLogger(__name__)


class ReverificationPolicy:
    """
    Decides whether a record's last verification is too old for its score.

    The allowed staleness window is a multiple of ``baseline_days`` chosen
    by confidence tier:

        score >= 90  ->  2.0 x baseline
        score >= 75  ->  1.5 x baseline
        score >= 50  ->  1.0 x baseline
        otherwise    ->  0.5 x baseline
    """

    # (minimum score, multiplier), highest tier first
    TIER_MULTIPLIERS = [
        (90, 2.0),
        (75, 1.5),
        (50, 1.0),
    ]
    LOW_CONFIDENCE_MULTIPLIER = 0.5

    def __init__(self, baseline_days: int = 90):
        """
        Initialize policy.

        Args:
            baseline_days: Staleness window for a moderate-confidence record
        """
        self.baseline_days = baseline_days
        logger.info(f"Initialized ReverificationPolicy (baseline {baseline_days} days)")

    def allowed_days(self, confidence_score: int, baseline_days: Optional[int] = None) -> float:
        """
        Staleness window for a confidence score.

        Args:
            confidence_score: Confidence score (0-100)
            baseline_days: Override for the policy's baseline

        Returns:
            Number of days a verification stays fresh
        """
        baseline = self.baseline_days if baseline_days is None else baseline_days

        for min_score, multiplier in self.TIER_MULTIPLIERS:
            if confidence_score >= min_score:
                return baseline * multiplier

        return baseline * self.LOW_CONFIDENCE_MULTIPLIER

    def is_stale(self, last_verified_at: Optional[Timestamp], confidence_score: int,
                 now: Timestamp, baseline_days: Optional[int] = None) -> bool:
        """
        Check whether a record needs re-verification.

        Args:
            last_verified_at: Time of the last verification, or None
            confidence_score: Current confidence score (0-100)
            now: Evaluation instant
            baseline_days: Override for the policy's baseline

        Returns:
            True if the record is stale; always True when never verified
        """
        if last_verified_at is None:
            return True

        return days_since(last_verified_at, now) >= self.allowed_days(confidence_score, baseline_days)

    def days_until_stale(self, last_verified_at: Optional[Timestamp], confidence_score: int,
                         now: Timestamp, baseline_days: Optional[int] = None) -> int:
        """
        Days remaining before a record becomes stale.

        Returns:
            Whole days left; 0 when already stale or never verified
        """
        if last_verified_at is None:
            return 0

        allowed = self.allowed_days(confidence_score, baseline_days)
        return max(0, math.ceil(allowed) - days_since(last_verified_at, now))

    def flag_stale_records(self, scored_df: pd.DataFrame, now: datetime) -> pd.DataFrame:
        """
        Flag stale records in a scored DataFrame.

        Args:
            scored_df: DataFrame with ``last_verified_at`` and ``confidence_score`` columns
            now: Evaluation instant

        Returns:
            Copy of the DataFrame with ``is_stale`` and ``days_until_stale`` columns
        """
        flagged_df = scored_df.copy()
        is_stale = []
        days_left = []

        for row in scored_df.to_dict(orient="records"):
            last_verified_at = evidence_from_record(row).last_verified_at
            score = int(row.get("confidence_score", 0))
            is_stale.append(self.is_stale(last_verified_at, score, now))
            days_left.append(self.days_until_stale(last_verified_at, score, now))

        flagged_df["is_stale"] = is_stale
        flagged_df["days_until_stale"] = days_left

        logger.info(f"Flagged {sum(is_stale)} of {len(flagged_df)} records for re-verification")
        return flagged_df
