"""
Unit tests for the confidence scoring engine.
"""

import itertools
import pytest
import pandas as pd
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add project root to path
sys.path.append(str(Path(__file__).parent.parent))

from provider_confidence.scoring.calculator import ConfidenceCalculator
from provider_confidence.scoring.evidence import (
    AcceptanceStatus,
    ProviderPlanEvidence,
    ProviderStatus,
    evidence_from_record,
)
from provider_confidence.scoring.factors import (
    CrowdsourceScorer,
    DataSourceScorer,
    RecencyScorer,
    VerificationScorer,
)
from provider_confidence.scoring.recommendation import (
    DEACTIVATED_MESSAGE,
    NOT_ACCEPTED_MESSAGE,
    NOT_ACCEPTED_UNCERTAIN_MESSAGE,
    UNKNOWN_MESSAGE,
    VERY_LOW_MESSAGE,
)
from provider_confidence.scoring.sources import VerificationSource, get_source_weight

NOW = datetime(2024, 6, 15, 12, 0, 0)


def days_ago(days: int) -> datetime:
    return NOW - timedelta(days=days)


def days_from_now(days: int) -> datetime:
    return NOW + timedelta(days=days)


def well_verified_evidence(**overrides) -> ProviderPlanEvidence:
    """Evidence for a fully verified, currently active plan."""
    fields = {
        "data_source": VerificationSource.CMS_DATA,
        "data_source_date": NOW,
        "last_verified_at": NOW,
        "verification_source": VerificationSource.CMS_DATA,
        "verification_count": 5,
        "upvotes": 10,
        "downvotes": 0,
        "user_submissions": 3,
        "plan_effective_date": days_ago(100),
        "plan_termination_date": days_from_now(200),
        "provider_status": ProviderStatus.ACTIVE,
        "acceptance_status": AcceptanceStatus.ACCEPTED,
    }
    fields.update(overrides)
    return ProviderPlanEvidence(**fields)


class TestSourceReliabilityTable:
    """Test cases for source weights."""

    def test_every_source_has_a_weight(self):
        for source in VerificationSource:
            assert get_source_weight(source) > 0

    def test_authoritative_highest_crowdsource_lowest(self):
        weights = {source: get_source_weight(source) for source in VerificationSource}
        assert max(weights, key=weights.get) == VerificationSource.CMS_DATA
        assert min(weights, key=weights.get) == VerificationSource.CROWDSOURCE

    def test_unknown_and_absent_sources_weigh_zero(self):
        assert get_source_weight(None) == 0
        assert get_source_weight("FAX_MACHINE") == 0

    def test_string_sources_are_coerced(self):
        assert get_source_weight("carrier_data") == 28


class TestDataSourceScorer:
    """Test cases for data source scoring."""

    def setup_method(self):
        self.scorer = DataSourceScorer()

    def test_no_data_source(self):
        result = self.scorer.score(ProviderPlanEvidence(), NOW)
        assert result.score == 0
        assert result.reason == "No data source available"

    @pytest.mark.parametrize("source,expected", [
        (VerificationSource.CMS_DATA, 30),
        (VerificationSource.CARRIER_DATA, 28),
        (VerificationSource.PROVIDER_PORTAL, 25),
        (VerificationSource.PHONE_CALL, 22),
        (VerificationSource.AUTOMATED, 15),
        (VerificationSource.CROWDSOURCE, 10),
    ])
    def test_fresh_source_weights(self, source, expected):
        evidence = ProviderPlanEvidence(data_source=source, data_source_date=days_ago(10))
        assert self.scorer.score(evidence, NOW).score == expected

    def test_reason_names_source_and_tier(self):
        evidence = ProviderPlanEvidence(data_source="CMS_DATA", data_source_date=days_ago(15))
        result = self.scorer.score(evidence, NOW)
        assert "CMS_DATA" in result.reason
        assert "within last 30 days" in result.reason

    @pytest.mark.parametrize("age,expected", [
        (30, 30),
        (31, 27),
        (90, 27),
        (120, 22.5),
        (200, 15),
        (365, 15),
        (400, 7.5),
    ])
    def test_age_decay(self, age, expected):
        evidence = ProviderPlanEvidence(data_source="CMS_DATA", data_source_date=days_ago(age))
        assert self.scorer.score(evidence, NOW).score == pytest.approx(expected)

    def test_unknown_date_halves_weight(self):
        evidence = ProviderPlanEvidence(data_source="CMS_DATA")
        result = self.scorer.score(evidence, NOW)
        assert result.score == 15
        assert "unknown date" in result.reason

    def test_unrecognized_source_is_no_evidence(self):
        evidence = ProviderPlanEvidence(data_source="FAX_MACHINE", data_source_date=NOW)
        assert self.scorer.score(evidence, NOW).score == 0

    def test_aware_now_with_naive_and_date_evidence(self):
        now = NOW.replace(tzinfo=timezone.utc)
        naive = ProviderPlanEvidence(data_source="CMS_DATA", data_source_date=days_ago(31))
        plain_date = ProviderPlanEvidence(data_source="CMS_DATA",
                                          data_source_date=(NOW - timedelta(days=31)).date())

        assert self.scorer.score(naive, now).score == 27
        assert self.scorer.score(plain_date, now).score == 27

    def test_aware_evidence_with_naive_now(self):
        # 10:00 at UTC-3 is 13:00 UTC, just under 31 days before NOW
        collected = datetime(2024, 5, 15, 10, 0, tzinfo=timezone(timedelta(hours=-3)))
        evidence = ProviderPlanEvidence(data_source="CMS_DATA", data_source_date=collected)

        assert self.scorer.score(evidence, NOW).score == 30


class TestRecencyScorer:
    """Test cases for recency scoring."""

    def setup_method(self):
        self.scorer = RecencyScorer()

    def test_no_recency_data(self):
        result = self.scorer.score(ProviderPlanEvidence(), NOW)
        assert result.score == 0
        assert result.reason == "No recency data available"

    @pytest.mark.parametrize("age,expected", [
        (0, 15), (7, 15), (8, 12), (30, 12), (31, 8), (90, 8), (91, 4), (180, 4), (181, 1), (1000, 1),
    ])
    def test_verification_age_tiers(self, age, expected):
        evidence = ProviderPlanEvidence(last_verified_at=days_ago(age))
        assert self.scorer.score(evidence, NOW).score == expected

    def test_stale_verification_reason(self):
        evidence = ProviderPlanEvidence(last_verified_at=days_ago(200))
        assert "stale" in self.scorer.score(evidence, NOW).reason

    def test_active_plan(self):
        evidence = ProviderPlanEvidence(plan_effective_date=days_ago(30),
                                        plan_termination_date=days_from_now(30))
        result = self.scorer.score(evidence, NOW)
        assert result.score == 10
        assert result.reason == "Plan is currently active"

    def test_plan_not_yet_effective(self):
        evidence = ProviderPlanEvidence(plan_effective_date=days_from_now(10),
                                        plan_termination_date=days_from_now(300))
        result = self.scorer.score(evidence, NOW)
        assert result.score == 5
        assert "not yet effective" in result.reason

    def test_terminated_plan(self):
        evidence = ProviderPlanEvidence(plan_effective_date=days_ago(400),
                                        plan_termination_date=days_ago(10))
        result = self.scorer.score(evidence, NOW)
        assert result.score == 0
        assert "terminated" in result.reason

    def test_effective_without_termination(self):
        evidence = ProviderPlanEvidence(plan_effective_date=days_ago(30))
        result = self.scorer.score(evidence, NOW)
        assert result.score == 7
        assert "no termination date" in result.reason

    def test_window_boundaries_are_inclusive(self):
        starts_now = ProviderPlanEvidence(plan_effective_date=NOW, plan_termination_date=days_from_now(30))
        ends_now = ProviderPlanEvidence(plan_effective_date=days_ago(30), plan_termination_date=NOW)
        assert self.scorer.score(starts_now, NOW).score == 10
        assert self.scorer.score(ends_now, NOW).score == 10

    def test_plain_dates_are_accepted(self):
        evidence = ProviderPlanEvidence(plan_effective_date=NOW.date() - timedelta(days=30),
                                        plan_termination_date=NOW.date() + timedelta(days=30))
        assert self.scorer.score(evidence, NOW).score == 10

    def test_combines_both_contributions(self):
        evidence = ProviderPlanEvidence(last_verified_at=days_ago(3),
                                        plan_effective_date=days_ago(30),
                                        plan_termination_date=days_from_now(30))
        result = self.scorer.score(evidence, NOW)
        assert result.score == 25
        assert "Verified within last week" in result.reason
        assert "Plan is currently active" in result.reason

    def test_recency_never_increases_with_age(self):
        previous = None
        for age in range(0, 400):
            score = self.scorer.score(ProviderPlanEvidence(last_verified_at=days_ago(age)), NOW).score
            if previous is not None:
                assert score <= previous
            previous = score

    def test_aware_now_with_naive_and_date_evidence(self):
        now = NOW.replace(tzinfo=timezone.utc)
        evidence = ProviderPlanEvidence(last_verified_at=days_ago(8),
                                        plan_effective_date=NOW.date() - timedelta(days=30),
                                        plan_termination_date=NOW.date() + timedelta(days=30))

        assert self.scorer.score(evidence, now).score == 22

    def test_aware_evidence_with_naive_now(self):
        verified = datetime(2024, 6, 8, 13, 0, tzinfo=timezone.utc)
        # 14:00 at UTC+3 is 11:00 UTC, an hour before NOW
        effective = datetime(2024, 6, 15, 14, 0, tzinfo=timezone(timedelta(hours=3)))
        evidence = ProviderPlanEvidence(last_verified_at=verified, plan_effective_date=effective)

        result = self.scorer.score(evidence, NOW)
        assert result.score == 22
        assert "Plan is effective" in result.reason


class TestVerificationScorer:
    """Test cases for verification scoring."""

    def setup_method(self):
        self.scorer = VerificationScorer()

    def test_no_verification_data(self):
        result = self.scorer.score(ProviderPlanEvidence(), NOW)
        assert result.score == 0
        assert result.reason == "No verification data"

    def test_source_quality_is_half_weight(self):
        assert self.scorer.score(ProviderPlanEvidence(verification_source="CMS_DATA"), NOW).score == 15
        assert self.scorer.score(ProviderPlanEvidence(verification_source="PHONE_CALL"), NOW).score == 11
        assert self.scorer.score(ProviderPlanEvidence(verification_source="CROWDSOURCE"), NOW).score == 5

    def test_volume_bonus_is_capped(self):
        assert self.scorer.score(ProviderPlanEvidence(verification_count=3), NOW).score == 6
        assert self.scorer.score(ProviderPlanEvidence(verification_count=50), NOW).score == 10

    def test_source_and_volume_combine(self):
        evidence = ProviderPlanEvidence(verification_source="CMS_DATA", verification_count=5)
        assert self.scorer.score(evidence, NOW).score == 25

    def test_deactivated_provider_penalty(self):
        evidence = ProviderPlanEvidence(verification_source="CMS_DATA", verification_count=5,
                                        provider_status=ProviderStatus.DEACTIVATED)
        result = self.scorer.score(evidence, NOW)
        assert result.score == 15
        assert "deactivated" in result.reason

    def test_deactivated_penalty_floors_at_zero(self):
        evidence = ProviderPlanEvidence(verification_count=2, provider_status="DEACTIVATED")
        assert self.scorer.score(evidence, NOW).score == 0


class TestCrowdsourceScorer:
    """Test cases for crowdsource scoring."""

    def setup_method(self):
        self.scorer = CrowdsourceScorer()

    def test_no_crowdsource_data(self):
        result = self.scorer.score(ProviderPlanEvidence(), NOW)
        assert result.score == 0
        assert result.reason == "No crowdsource data"

    @pytest.mark.parametrize("upvotes,downvotes,expected,label", [
        (25, 0, 15, "Strong positive"),
        (20, 5, 15, "Strong positive"),
        (15, 10, 10, "Mostly positive"),
        (10, 15, 5, "Mixed"),
        (5, 20, 0, "Negative feedback dominant"),
    ])
    def test_ratio_tiers_at_full_volume(self, upvotes, downvotes, expected, label):
        result = self.scorer.score(ProviderPlanEvidence(upvotes=upvotes, downvotes=downvotes), NOW)
        assert result.score == expected
        assert label in result.reason

    def test_negative_feedback_dominant(self):
        result = self.scorer.score(ProviderPlanEvidence(upvotes=1, downvotes=4), NOW)
        assert result.score == 0
        assert "Negative feedback dominant" in result.reason

    def test_volume_multiplier(self):
        # sqrt(4) / 5 = 0.4 of the 15-point tier
        assert self.scorer.score(ProviderPlanEvidence(upvotes=4), NOW).score == 6
        assert self.scorer.score(ProviderPlanEvidence(upvotes=100), NOW).score == 15

    def test_submission_bonus_is_capped(self):
        assert self.scorer.score(ProviderPlanEvidence(user_submissions=3), NOW).score == 3
        assert self.scorer.score(ProviderPlanEvidence(user_submissions=12), NOW).score == 5

    def test_votes_and_submissions_are_rounded_together(self):
        # 15 * sqrt(10) / 5 = 9.49, plus 3 submissions
        result = self.scorer.score(ProviderPlanEvidence(upvotes=10, user_submissions=3), NOW)
        assert result.score == 12
        assert "3 user submission(s)" in result.reason

    def test_maximum(self):
        result = self.scorer.score(ProviderPlanEvidence(upvotes=30, user_submissions=9), NOW)
        assert result.score == 20


class TestConfidenceCalculator:
    """Test cases for the combined confidence calculation."""

    def setup_method(self):
        self.calculator = ConfidenceCalculator()

    def test_well_verified_record(self):
        result = self.calculator.evaluate(well_verified_evidence(), NOW)

        assert result.score == 92
        assert result.factors.data_source_score == 30
        assert result.factors.recency_score == 25
        assert result.factors.verification_score == 25
        assert result.factors.crowdsource_score == 12
        assert result.needs_verification is False
        assert result.recommendation.startswith("High confidence")

    def test_no_evidence_unknown_acceptance(self):
        result = self.calculator.evaluate(ProviderPlanEvidence(acceptance_status=AcceptanceStatus.UNKNOWN), NOW)

        assert result.score == 0
        assert result.recommendation == UNKNOWN_MESSAGE
        assert result.needs_verification is True

    def test_deactivated_provider(self):
        active = self.calculator.evaluate(well_verified_evidence(), NOW)
        deactivated = self.calculator.evaluate(
            well_verified_evidence(provider_status=ProviderStatus.DEACTIVATED), NOW
        )

        assert deactivated.score == 82
        assert deactivated.score < active.score
        assert deactivated.recommendation == DEACTIVATED_MESSAGE

    @pytest.mark.parametrize("overrides", [
        {},
        {"verification_source": None},
        {"verification_count": 1, "verification_source": None},
        {"data_source": None, "upvotes": 0, "user_submissions": 0},
    ])
    def test_deactivation_never_raises_scores(self, overrides):
        active = self.calculator.evaluate(well_verified_evidence(**overrides), NOW)
        deactivated = self.calculator.evaluate(
            well_verified_evidence(provider_status="DEACTIVATED", **overrides), NOW
        )
        assert deactivated.factors.verification_score <= active.factors.verification_score
        assert deactivated.score <= active.score

    def test_total_rounds_half_up(self):
        evidence = ProviderPlanEvidence(data_source="CMS_DATA", data_source_date=days_ago(120),
                                        acceptance_status="ACCEPTED")
        result = self.calculator.evaluate(evidence, NOW)
        assert result.factors.data_source_score == 23
        assert result.score == 23

    def test_maximum_score_is_100(self):
        evidence = well_verified_evidence(upvotes=50, user_submissions=10)
        assert self.calculator.evaluate(evidence, NOW).score == 100

    def test_needs_verification_boundary(self):
        base = {
            "data_source": "CMS_DATA", "data_source_date": NOW, "last_verified_at": NOW,
            "plan_effective_date": days_ago(10), "plan_termination_date": days_from_now(10),
            "verification_source": "CMS_DATA", "verification_count": 2,
            "acceptance_status": "ACCEPTED",
        }
        at_threshold = self.calculator.evaluate(ProviderPlanEvidence(user_submissions=1, **base), NOW)
        below = self.calculator.evaluate(ProviderPlanEvidence(**base), NOW)

        assert at_threshold.score == 75
        assert at_threshold.needs_verification is False
        assert below.score == 74
        assert below.needs_verification is True

    def test_score_bands(self):
        moderate = ProviderPlanEvidence(data_source="CMS_DATA", data_source_date=NOW, last_verified_at=NOW,
                                        plan_effective_date=days_ago(10), plan_termination_date=days_from_now(10),
                                        acceptance_status="PENDING")
        good = ProviderPlanEvidence(data_source="CMS_DATA", data_source_date=NOW, last_verified_at=NOW,
                                    plan_effective_date=days_ago(10), plan_termination_date=days_from_now(10),
                                    verification_source="CMS_DATA", verification_count=5,
                                    acceptance_status="ACCEPTED")
        low = ProviderPlanEvidence(data_source="CMS_DATA", data_source_date=NOW, acceptance_status="ACCEPTED")
        very_low = ProviderPlanEvidence(data_source="CROWDSOURCE", data_source_date=NOW,
                                        acceptance_status="ACCEPTED")

        assert self.calculator.evaluate(moderate, NOW).recommendation.startswith("Moderate confidence")
        assert self.calculator.evaluate(good, NOW).recommendation.startswith("Good confidence")
        assert self.calculator.evaluate(low, NOW).recommendation.startswith("Low confidence")
        assert self.calculator.evaluate(very_low, NOW).recommendation == VERY_LOW_MESSAGE

    def test_not_accepted_recommendations(self):
        uncertain = ProviderPlanEvidence(acceptance_status=AcceptanceStatus.NOT_ACCEPTED)
        certain = well_verified_evidence(acceptance_status=AcceptanceStatus.NOT_ACCEPTED)

        assert self.calculator.evaluate(uncertain, NOW).recommendation == NOT_ACCEPTED_UNCERTAIN_MESSAGE
        assert self.calculator.evaluate(certain, NOW).recommendation == NOT_ACCEPTED_MESSAGE

    def test_evaluate_is_deterministic(self):
        evidence = well_verified_evidence(upvotes=7, downvotes=3, data_source_date=days_ago(45))
        assert self.calculator.evaluate(evidence, NOW) == self.calculator.evaluate(evidence, NOW)

    def test_to_dict(self):
        payload = self.calculator.evaluate(well_verified_evidence(), NOW).to_dict()
        assert set(payload) == {"score", "factors", "recommendation", "needsVerification"}
        assert payload["factors"]["dataSourceScore"] == 30
        assert "crowdsourceReason" in payload["factors"]

    def test_evaluate_batch_preserves_order(self):
        evidence_list = [
            ProviderPlanEvidence(),
            well_verified_evidence(),
            ProviderPlanEvidence(data_source="CMS_DATA", data_source_date=NOW),
        ]
        results = self.calculator.evaluate_batch(evidence_list, NOW)
        assert [r.score for r in results] == [0, 92, 30]
        assert self.calculator.evaluate_batch([], NOW) == []

    def test_score_records(self):
        records_df = pd.DataFrame({
            "provider_npi": ["1234567890", "1234567890"],
            "plan_id": ["P1", "P2"],
            "data_source": ["CMS_DATA", None],
            "data_source_date": [pd.Timestamp(NOW), pd.NaT],
            "verification_count": [0, 0],
            "acceptance_status": ["ACCEPTED", "UNKNOWN"],
        })

        scored_df = self.calculator.score_records(records_df, NOW)

        assert list(scored_df["confidence_score"]) == [30, 0]
        assert list(scored_df["needs_verification"]) == [True, True]
        assert scored_df["recommendation"].iloc[1] == UNKNOWN_MESSAGE

        stats = self.calculator.get_scoring_statistics(scored_df)
        assert stats["total_records"] == 2
        assert stats["score_statistics"]["max_score"] == 30
        assert stats["band_distribution"]["very_low"] == 1
        assert stats["band_distribution"]["low"] == 1

    def test_aware_now(self):
        result = self.calculator.evaluate(well_verified_evidence(), NOW.replace(tzinfo=timezone.utc))
        assert result.score == 92

    def test_plain_date_now(self):
        evidence = well_verified_evidence(data_source_date=days_ago(31), last_verified_at=days_ago(8))
        assert self.calculator.evaluate(evidence, NOW.date()).score == 92

    def test_unrecognized_statuses_use_defaults(self):
        evidence = ProviderPlanEvidence(provider_status="INACTIVE", acceptance_status="maybe")
        assert evidence.provider_status == ProviderStatus.ACTIVE
        assert evidence.acceptance_status == AcceptanceStatus.UNKNOWN

    def test_score_records_tolerates_unrecognized_statuses(self):
        records_df = pd.DataFrame({
            "provider_npi": ["1234567890", "1234567891"],
            "plan_id": ["P1", "P1"],
            "data_source": ["CMS_DATA", "CMS_DATA"],
            "data_source_date": [pd.Timestamp(NOW), pd.Timestamp(NOW)],
            "provider_status": ["INACTIVE", "deactivated"],
            "acceptance_status": ["ACCEPTED", "SOMETIMES"],
        })

        scored_df = self.calculator.score_records(records_df, NOW)

        assert list(scored_df["confidence_score"]) == [30, 30]
        assert scored_df["recommendation"].iloc[0].startswith("Low confidence")
        assert scored_df["recommendation"].iloc[1] == DEACTIVATED_MESSAGE

    def test_score_stays_within_bounds(self):
        sources = [None] + list(VerificationSource)
        ages = [None, -5, 0, 45, 200, 400]
        votes = [(0, 0), (1, 0), (3, 7), (40, 2)]

        for source, age, (upvotes, downvotes), status, count, submissions in itertools.product(
                sources, ages, votes, list(ProviderStatus), [0, 3, 50], [0, 9]):
            timestamp = None if age is None else days_ago(age)
            evidence = ProviderPlanEvidence(
                data_source=source, data_source_date=timestamp, last_verified_at=timestamp,
                verification_source=source, verification_count=count,
                upvotes=upvotes, downvotes=downvotes, user_submissions=submissions,
                plan_effective_date=timestamp, provider_status=status,
                acceptance_status=AcceptanceStatus.ACCEPTED,
            )
            result = self.calculator.evaluate(evidence, NOW)

            assert 0 <= result.score <= 100
            assert 0 <= result.factors.data_source_score <= 30
            assert 0 <= result.factors.recency_score <= 25
            assert 0 <= result.factors.verification_score <= 25
            assert 0 <= result.factors.crowdsource_score <= 20

    def test_evidence_from_record_treats_nan_as_absent(self):
        evidence = evidence_from_record({
            "data_source": float("nan"),
            "last_verified_at": pd.NaT,
            "upvotes": float("nan"),
            "provider_status": "deactivated",
            "acceptance_status": None,
        })
        assert evidence.data_source is None
        assert evidence.last_verified_at is None
        assert evidence.upvotes == 0
        assert evidence.provider_status == ProviderStatus.DEACTIVATED
        assert evidence.acceptance_status == AcceptanceStatus.UNKNOWN


if __name__ == "__main__":
    pytest.main([__file__])
