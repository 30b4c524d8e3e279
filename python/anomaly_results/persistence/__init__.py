"""
Write coordination for anomaly detection results.

- ResultsPersister: persists buckets and standalone results, rewrites them
  after renormalization, and removes interim results
- BatchWriter: one bulk call per set of sibling documents
- IdentityPolicy: document kinds and how their ids are chosen
- WriteOutcome: what an operation wrote and which failures it logged
"""

from anomaly_results.persistence.bulk import BatchResult, BatchWriter
from anomaly_results.persistence.deleter import InterimResultsDeleter
from anomaly_results.persistence.identity import (
    DocumentKind,
    IdentityPolicy,
    Persistable,
    bucket_influencer_id,
    job_index_name,
    store_assigned,
)
from anomaly_results.persistence.outcome import OutcomeStatus, WriteOutcome
from anomaly_results.persistence.persister import (
    ResultsPersister,
    get_results_persister,
    set_results_persister,
)

__all__ = [
    "BatchResult",
    "BatchWriter",
    "DocumentKind",
    "IdentityPolicy",
    "InterimResultsDeleter",
    "OutcomeStatus",
    "Persistable",
    "ResultsPersister",
    "WriteOutcome",
    "bucket_influencer_id",
    "get_results_persister",
    "job_index_name",
    "set_results_persister",
    "store_assigned",
]
