"""
Anomaly Results - persistence of anomaly detection output

This package writes the results of a streaming anomaly detection job into a
per-job document collection:
- Buckets decomposed into bucket, record, influencer and summary documents
- Deterministic ids where later overwrites must replace, not append
- Best-effort batching that logs partial failures instead of raising
- Forced visibility only where readers depend on it (quantiles)
"""

__version__ = "0.1.0"
__all__ = [
    "config",
    "exceptions",
    "logging",
    "models",
    "persistence",
    "serialization",
    "store",
]
