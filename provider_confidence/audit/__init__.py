"""
Audit trail for ProviderConfidence.

Records confidence score changes made by recalculation runs.
"""
