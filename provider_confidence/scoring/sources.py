"""
Source reliability table for ProviderConfidence.

Maps each kind of evidence source to a base trust weight on a 0-30 scale.
The same table backs both the primary data source and the verification
source of a provider/plan record.
"""

from enum import Enum
from typing import Dict, Optional, Union


class VerificationSource(str, Enum):
    """Kinds of evidence source, most authoritative first."""

    CMS_DATA = "CMS_DATA"
    CARRIER_DATA = "CARRIER_DATA"
    PROVIDER_PORTAL = "PROVIDER_PORTAL"
    PHONE_CALL = "PHONE_CALL"
    AUTOMATED = "AUTOMATED"
    CROWDSOURCE = "CROWDSOURCE"


SOURCE_WEIGHTS: Dict[VerificationSource, int] = {
    VerificationSource.CMS_DATA: 30,
    VerificationSource.CARRIER_DATA: 28,
    VerificationSource.PROVIDER_PORTAL: 25,
    VerificationSource.PHONE_CALL: 22,
    VerificationSource.AUTOMATED: 15,
    VerificationSource.CROWDSOURCE: 10,
}

MAX_SOURCE_WEIGHT = 30

# Every source kind must carry a weight; a new member without one fails at import.
_missing = set(VerificationSource) - set(SOURCE_WEIGHTS)
if _missing:
    raise RuntimeError(f"Source reliability table is missing weights for: {sorted(m.value for m in _missing)}")


def coerce_source(value: Union[VerificationSource, str, None]) -> Optional[VerificationSource]:
    """
    Convert a raw source value into a VerificationSource.

    Args:
        value: Enum member, its string name, or None

    Returns:
        Matching VerificationSource, or None for absent or unrecognized values
    """
    if value is None or isinstance(value, VerificationSource):
        return value

    try:
        return VerificationSource(str(value).strip().upper())
    except ValueError:
        return None


def get_source_weight(source: Union[VerificationSource, str, None]) -> int:
    """
    Look up the reliability weight for a source.

    Args:
        source: Evidence source kind

    Returns:
        Weight on a 0-30 scale; 0 for absent or unrecognized sources
    """
    source = coerce_source(source)
    if source is None:
        return 0
    return SOURCE_WEIGHTS.get(source, 0)
