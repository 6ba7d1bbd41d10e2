"""
Guidance text for confidence results.
"""

from .evidence import AcceptanceStatus, ProviderPlanEvidence, ProviderStatus

DEACTIVATED_MESSAGE = "Provider NPI is deactivated. Contact the practice directly to verify current status."
NOT_ACCEPTED_UNCERTAIN_MESSAGE = (
    "Provider likely does not accept this plan, but data is uncertain. Verify before scheduling."
)
NOT_ACCEPTED_MESSAGE = "Provider does not accept this plan based on available data."
UNKNOWN_MESSAGE = "No acceptance data available. Contact the provider to verify insurance acceptance."

# (minimum score, message), highest band first
SCORE_BANDS = [
    (90, "High confidence that provider accepts this plan. Data is well-verified."),
    (75, "Good confidence in plan acceptance. Consider calling to confirm for important visits."),
    (50, "Moderate confidence. Recommend calling the provider to verify insurance acceptance."),
    (25, "Low confidence in data accuracy. Strongly recommend verifying with the provider."),
]
VERY_LOW_MESSAGE = "Very low confidence. Data may be outdated or incorrect. Verification required."


class RecommendationGenerator:
    """
    Maps a final score and the record's status flags to guidance text.

    Status special cases take priority over the numeric bands, so a
    deactivated provider always gets the deactivation message.
    """

    def __init__(self, uncertain_threshold: int = 50):
        self.uncertain_threshold = uncertain_threshold

    def generate(self, score: int, evidence: ProviderPlanEvidence) -> str:
        """
        Pick the recommendation for a scored record.

        Args:
            score: Final confidence score (0-100)
            evidence: Evidence the score was computed from

        Returns:
            Recommendation text
        """
        if evidence.provider_status == ProviderStatus.DEACTIVATED:
            return DEACTIVATED_MESSAGE

        if evidence.acceptance_status == AcceptanceStatus.NOT_ACCEPTED:
            if score < self.uncertain_threshold:
                return NOT_ACCEPTED_UNCERTAIN_MESSAGE
            return NOT_ACCEPTED_MESSAGE

        if evidence.acceptance_status == AcceptanceStatus.UNKNOWN:
            return UNKNOWN_MESSAGE

        for min_score, message in SCORE_BANDS:
            if score >= min_score:
                return message

        return VERY_LOW_MESSAGE
