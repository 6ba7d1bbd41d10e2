"""
Factor scorers for ProviderConfidence.

Each scorer looks at one slice of a ProviderPlanEvidence snapshot and
returns an unrounded FactorScore inside its own band:

    data source    0-30
    recency        0-25
    verification   0-25
    crowdsource    0-20

Scorers hold no per-call state, so one instance can score any number of
records concurrently.
"""

import math
from datetime import datetime
from typing import List, Tuple

from .evidence import (
    FactorScore,
    ProviderPlanEvidence,
    ProviderStatus,
    as_datetime,
    as_instant,
    clamp,
    days_since,
    round_half_up,
)
from .sources import MAX_SOURCE_WEIGHT, get_source_weight


class DataSourceScorer:
    """
    Scores the primary data provenance, decayed by the age of the datum.
    """

    MAX_SCORE = MAX_SOURCE_WEIGHT

    # (max age in days, multiplier, description)
    AGE_TIERS: List[Tuple[int, float, str]] = [
        (30, 1.0, "data from within last 30 days"),
        (90, 0.9, "data from within last 90 days"),
        (180, 0.75, "data from within last 6 months"),
        (365, 0.5, "data is 6-12 months old"),
    ]
    STALE_MULTIPLIER = 0.25
    UNKNOWN_AGE_MULTIPLIER = 0.5

    def score(self, evidence: ProviderPlanEvidence, now: datetime) -> FactorScore:
        """
        Score the data source of a record.

        Args:
            evidence: Provider/plan evidence snapshot
            now: Evaluation instant

        Returns:
            FactorScore in the 0-30 band
        """
        source = evidence.data_source
        if source is None:
            return FactorScore(0, "No data source available")

        base_score = get_source_weight(source)

        if evidence.data_source_date is None:
            return FactorScore(
                clamp(base_score * self.UNKNOWN_AGE_MULTIPLIER, 0, self.MAX_SCORE),
                f"{source.value} data (unknown date)"
            )

        age_in_days = days_since(evidence.data_source_date, now)
        for max_age, multiplier, description in self.AGE_TIERS:
            if age_in_days <= max_age:
                return FactorScore(clamp(base_score * multiplier, 0, self.MAX_SCORE),
                                   f"{source.value} {description}")

        return FactorScore(clamp(base_score * self.STALE_MULTIPLIER, 0, self.MAX_SCORE),
                           f"{source.value} data is over 1 year old")


class RecencyScorer:
    """
    Scores how fresh the last verification is and whether the plan is in force.

    Verification age contributes up to 15 points and plan validity up to 10.
    """

    MAX_SCORE = 25

    VERIFICATION_TIERS: List[Tuple[int, int, str]] = [
        (7, 15, "Verified within last week"),
        (30, 12, "Verified within last month"),
        (90, 8, "Verified within last 3 months"),
        (180, 4, "Verified within last 6 months"),
    ]
    STALE_VERIFICATION_POINTS = 1

    ACTIVE_PLAN_POINTS = 10
    PENDING_PLAN_POINTS = 5
    OPEN_ENDED_PLAN_POINTS = 7

    def score_verification_age(self, evidence: ProviderPlanEvidence, now: datetime) -> Tuple[int, str]:
        if evidence.last_verified_at is None:
            return 0, ""

        age_in_days = days_since(evidence.last_verified_at, now)
        for max_age, points, description in self.VERIFICATION_TIERS:
            if age_in_days <= max_age:
                return points, description

        return self.STALE_VERIFICATION_POINTS, "Verification is stale (>6 months)"

    def score_plan_validity(self, evidence: ProviderPlanEvidence, now: datetime) -> Tuple[int, str]:
        now = as_instant(now)
        effective = evidence.plan_effective_date
        termination = evidence.plan_termination_date

        if effective is not None and termination is not None:
            if now < as_datetime(effective, now):
                return self.PENDING_PLAN_POINTS, "Plan not yet effective"
            if now > as_datetime(termination, now):
                return 0, "Plan has terminated"
            return self.ACTIVE_PLAN_POINTS, "Plan is currently active"

        if effective is not None and now >= as_datetime(effective, now):
            return self.OPEN_ENDED_PLAN_POINTS, "Plan is effective (no termination date)"

        return 0, ""

    def score(self, evidence: ProviderPlanEvidence, now: datetime) -> FactorScore:
        """
        Score verification freshness plus plan validity.

        Args:
            evidence: Provider/plan evidence snapshot
            now: Evaluation instant

        Returns:
            FactorScore in the 0-25 band
        """
        verification_points, verification_reason = self.score_verification_age(evidence, now)
        plan_points, plan_reason = self.score_plan_validity(evidence, now)

        reasons = [reason for reason in (verification_reason, plan_reason) if reason]
        total = clamp(verification_points + plan_points, 0, self.MAX_SCORE)

        return FactorScore(total, "; ".join(reasons) if reasons else "No recency data available")


class VerificationScorer:
    """
    Scores verification provenance and volume.

    A deactivated provider loses points here but can never gain any.
    """

    MAX_SCORE = 25
    MAX_SOURCE_POINTS = 15
    POINTS_PER_VERIFICATION = 2
    MAX_VOLUME_POINTS = 10
    DEACTIVATION_PENALTY = 10

    def score(self, evidence: ProviderPlanEvidence, now: datetime) -> FactorScore:
        """
        Score verification source quality and count.

        Args:
            evidence: Provider/plan evidence snapshot
            now: Evaluation instant (unused; kept for a uniform scorer interface)

        Returns:
            FactorScore in the 0-25 band
        """
        total = 0.0
        reasons = []

        if evidence.verification_source is not None:
            total += min(get_source_weight(evidence.verification_source) / 2, self.MAX_SOURCE_POINTS)
            reasons.append(f"Verified via {evidence.verification_source.value}")

        if evidence.verification_count > 0:
            total += min(evidence.verification_count * self.POINTS_PER_VERIFICATION, self.MAX_VOLUME_POINTS)
            reasons.append(f"{evidence.verification_count} verification(s) on record")

        if evidence.provider_status == ProviderStatus.DEACTIVATED:
            total = max(0.0, total - self.DEACTIVATION_PENALTY)
            reasons.append("Warning: Provider NPI is deactivated")

        return FactorScore(clamp(total, 0, self.MAX_SCORE),
                           "; ".join(reasons) if reasons else "No verification data")


class CrowdsourceScorer:
    """
    Scores community vote agreement and independent submission volume.

    The vote ratio is trusted more as the number of votes grows, saturating
    at 25 votes.
    """

    MAX_SCORE = 20
    SATURATION_DIVISOR = 5

    # (minimum upvote ratio, points, label)
    RATIO_TIERS: List[Tuple[float, int, str]] = [
        (0.8, 15, "Strong positive feedback"),
        (0.6, 10, "Mostly positive feedback"),
        (0.4, 5, "Mixed feedback"),
    ]
    MAX_SUBMISSION_POINTS = 5

    def score_votes(self, upvotes: int, downvotes: int) -> Tuple[float, str]:
        total_votes = upvotes + downvotes
        if total_votes == 0:
            return 0.0, ""

        vote_ratio = upvotes / total_votes
        volume_multiplier = min(math.sqrt(total_votes) / self.SATURATION_DIVISOR, 1.0)

        for min_ratio, points, label in self.RATIO_TIERS:
            if vote_ratio >= min_ratio:
                return points * volume_multiplier, f"{label} ({upvotes}/{total_votes} upvotes)"

        return 0.0, f"Negative feedback dominant ({downvotes}/{total_votes} downvotes)"

    def score(self, evidence: ProviderPlanEvidence, now: datetime) -> FactorScore:
        """
        Score crowdsourced votes and submissions.

        Args:
            evidence: Provider/plan evidence snapshot
            now: Evaluation instant (unused; kept for a uniform scorer interface)

        Returns:
            FactorScore in the 0-20 band, already rounded
        """
        if evidence.upvotes + evidence.downvotes == 0 and evidence.user_submissions == 0:
            return FactorScore(0, "No crowdsource data")

        total, vote_reason = self.score_votes(evidence.upvotes, evidence.downvotes)
        reasons = [vote_reason] if vote_reason else []

        if evidence.user_submissions > 0:
            total += min(evidence.user_submissions, self.MAX_SUBMISSION_POINTS)
            reasons.append(f"{evidence.user_submissions} user submission(s)")

        return FactorScore(round_half_up(clamp(total, 0, self.MAX_SCORE)), "; ".join(reasons))
