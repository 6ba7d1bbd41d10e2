"""
Confidence calculator for ProviderConfidence.

Runs the four factor scorers over a provider/plan evidence snapshot,
combines them into a 0-100 confidence score and attaches a recommendation.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from ..config import load_confidence_config
from .evidence import (
    ConfidenceFactors,
    ConfidenceResult,
    ProviderPlanEvidence,
    clamp,
    evidence_from_record,
    round_half_up,
)
from .factors import CrowdsourceScorer, DataSourceScorer, RecencyScorer, VerificationScorer
from .recommendation import RecommendationGenerator

logger = logging.getLogger(__name__)

# (label, lowest score, highest score)
SCORE_BANDS = [
    ("very_low", 0, 25),
    ("low", 26, 50),
    ("medium", 51, 75),
    ("high", 76, 90),
    ("very_high", 91, 100),
]


class ConfidenceCalculator:
    """
    Combines data source, recency, verification and crowdsource factors.

    The factor scorers are independent of one another; the calculator only
    sums their raw scores, clamps the total and derives the recommendation
    and verification flag from it.
    """

    def __init__(self, config: Optional[Dict] = None):
        """
        Initialize calculator with configuration.

        Args:
            config: Scoring configuration dictionary (optional)
        """
        self.config = config or {}

        self.default_thresholds = {
            "needs_verification": 75,
            "not_accepted_uncertain": 50,
        }
        self.thresholds = dict(self.default_thresholds)
        self.thresholds.update(self.config.get("thresholds", {}))

        self.data_source_scorer = DataSourceScorer()
        self.recency_scorer = RecencyScorer()
        self.verification_scorer = VerificationScorer()
        self.crowdsource_scorer = CrowdsourceScorer()
        self.recommendation_generator = RecommendationGenerator(
            uncertain_threshold=self.thresholds["not_accepted_uncertain"]
        )

        logger.info("Initialized ConfidenceCalculator")

    def evaluate(self, evidence: ProviderPlanEvidence, now: datetime) -> ConfidenceResult:
        """
        Calculate the confidence result for one provider/plan pair.

        Args:
            evidence: Provider/plan evidence snapshot
            now: Evaluation instant, used for every age computation

        Returns:
            ConfidenceResult with score, factors and recommendation
        """
        data_source = self.data_source_scorer.score(evidence, now)
        recency = self.recency_scorer.score(evidence, now)
        verification = self.verification_scorer.score(evidence, now)
        crowdsource = self.crowdsource_scorer.score(evidence, now)

        raw_total = data_source.score + recency.score + verification.score + crowdsource.score
        score = int(clamp(round_half_up(raw_total), 0, 100))

        factors = ConfidenceFactors(
            data_source_score=round_half_up(data_source.score),
            data_source_reason=data_source.reason,
            recency_score=round_half_up(recency.score),
            recency_reason=recency.reason,
            verification_score=round_half_up(verification.score),
            verification_reason=verification.reason,
            crowdsource_score=round_half_up(crowdsource.score),
            crowdsource_reason=crowdsource.reason,
        )

        return ConfidenceResult(
            score=score,
            factors=factors,
            recommendation=self.recommendation_generator.generate(score, evidence),
            needs_verification=score < self.thresholds["needs_verification"],
        )

    def evaluate_batch(self, evidence_list: List[ProviderPlanEvidence],
                       now: datetime) -> List[ConfidenceResult]:
        """
        Calculate confidence results for many pairs, preserving input order.

        Args:
            evidence_list: Evidence snapshots
            now: Evaluation instant shared by the whole batch

        Returns:
            One ConfidenceResult per input, in the same order
        """
        return [self.evaluate(evidence, now) for evidence in evidence_list]

    def score_records(self, records_df: pd.DataFrame, now: datetime) -> pd.DataFrame:
        """
        Score every acceptance record in a DataFrame.

        Args:
            records_df: DataFrame with one evidence record per row
            now: Evaluation instant shared by all rows

        Returns:
            Copy of the DataFrame with confidence columns appended
        """
        logger.info(f"Scoring {len(records_df)} acceptance records")

        results = [self.evaluate(evidence_from_record(row), now)
                   for row in records_df.to_dict(orient="records")]

        scored_df = records_df.copy()
        scored_df["confidence_score"] = [r.score for r in results]
        scored_df["data_source_score"] = [r.factors.data_source_score for r in results]
        scored_df["recency_score"] = [r.factors.recency_score for r in results]
        scored_df["verification_score"] = [r.factors.verification_score for r in results]
        scored_df["crowdsource_score"] = [r.factors.crowdsource_score for r in results]
        scored_df["recommendation"] = [r.recommendation for r in results]
        scored_df["needs_verification"] = [r.needs_verification for r in results]

        logger.info(f"Confidence scoring completed: {len(scored_df)} records scored")
        return scored_df

    def get_scoring_statistics(self, scored_df: pd.DataFrame) -> Dict[str, Any]:
        """
        Calculate summary statistics for scored records.

        Args:
            scored_df: DataFrame produced by score_records

        Returns:
            Dictionary with score statistics
        """
        if "confidence_score" not in scored_df.columns or scored_df.empty:
            return {}

        scores = scored_df["confidence_score"]
        needs_verification = int(scored_df["needs_verification"].sum())

        band_distribution = {
            label: int(((scores >= low) & (scores <= high)).sum())
            for label, low, high in SCORE_BANDS
        }

        return {
            "total_records": len(scored_df),
            "score_statistics": {
                "mean_score": float(scores.mean()),
                "median_score": float(scores.median()),
                "std_score": float(np.nan_to_num(scores.std())),
                "min_score": int(scores.min()),
                "max_score": int(scores.max()),
            },
            "needs_verification_count": needs_verification,
            "needs_verification_percentage": needs_verification / len(scored_df) * 100,
            "band_distribution": band_distribution,
            "thresholds": self.thresholds,
        }


def create_confidence_calculator(config_path: str = "config/provider_confidence.yaml") -> ConfidenceCalculator:
    """
    Convenience function to create a calculator from a configuration file.

    Args:
        config_path: Path to configuration file

    Returns:
        Initialized confidence calculator
    """
    config = load_confidence_config(config_path)
    return ConfidenceCalculator(config.get("scoring", {}))


def apply_confidence_scoring(records_df: pd.DataFrame, now: datetime,
                             config_path: str = "config/provider_confidence.yaml") -> pd.DataFrame:
    """
    Convenience function to score a DataFrame of acceptance records.

    Args:
        records_df: Acceptance records
        now: Evaluation instant
        config_path: Path to configuration file

    Returns:
        DataFrame with confidence columns appended
    """
    calculator = create_confidence_calculator(config_path)
    scored_df = calculator.score_records(records_df, now)

    stats = calculator.get_scoring_statistics(scored_df)
    if stats:
        logger.info(f"Confidence scoring completed: mean score = {stats['score_statistics']['mean_score']:.1f}, "
                    f"{stats['needs_verification_count']} need verification")

    return scored_df
