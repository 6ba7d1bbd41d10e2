"""
Provider-level aggregation of per-plan confidence scores.
"""

import logging
from typing import Dict, List, Union

import pandas as pd

from ..scoring.evidence import round_half_up

logger = logging.getLogger(__name__)


class AggregateConfidenceEvaluator:
    """
    Reduces a provider's per-plan confidence scores to one summary.

    A provider needs attention when any plan scores below
    ``min_score_threshold`` or the average falls below
    ``average_score_threshold``.
    """

    def __init__(self, min_score_threshold: int = 50, average_score_threshold: int = 60):
        self.min_score_threshold = min_score_threshold
        self.average_score_threshold = average_score_threshold
        logger.info("Initialized AggregateConfidenceEvaluator")

    def aggregate(self, scores: List[int]) -> Dict[str, Union[int, bool]]:
        """
        Summarize per-plan scores for one provider.

        Args:
            scores: Confidence scores, one per plan

        Returns:
            Dictionary with ``average``, ``min``, ``max`` and ``needs_attention``
        """
        if len(scores) == 0:
            return {"average": 0, "min": 0, "max": 0, "needs_attention": True}

        average = round_half_up(sum(scores) / len(scores))
        lowest = min(scores)
        highest = max(scores)

        return {
            "average": average,
            "min": lowest,
            "max": highest,
            "needs_attention": lowest < self.min_score_threshold or average < self.average_score_threshold,
        }

    def aggregate_by_provider(self, scored_df: pd.DataFrame,
                              provider_column: str = "provider_npi") -> pd.DataFrame:
        """
        Aggregate a scored DataFrame into one row per provider.

        Args:
            scored_df: DataFrame with ``confidence_score`` and a provider column
            provider_column: Column identifying the provider

        Returns:
            DataFrame with plan count, average, min, max and needs_attention per provider
        """
        columns = [provider_column, "plan_count", "average", "min", "max", "needs_attention"]
        if scored_df.empty:
            return pd.DataFrame(columns=columns)

        rows = []
        for provider, group in scored_df.groupby(provider_column, sort=True):
            summary = self.aggregate([int(score) for score in group["confidence_score"]])
            rows.append({provider_column: provider, "plan_count": len(group), **summary})

        summary_df = pd.DataFrame(rows, columns=columns)
        logger.info(f"Aggregated {len(scored_df)} records into {len(summary_df)} providers, "
                    f"{int(summary_df['needs_attention'].sum())} need attention")
        return summary_df
