"""Services for probing, scheduling, incident reconciliation and reporting."""
from .prober import ProberService, ProbeOutcome, classify_response
from .scheduler import SchedulerService, due_targets
from .worker_pool import WorkerPool, PoolResult
from .reconciler import IncidentReconciler, ReconcileOutcome
from .history import HistoryStore
from .cycle import CycleRunner, CycleSummary
from .notifier import NotifierService

__all__ = [
    "ProberService",
    "ProbeOutcome",
    "classify_response",
    "SchedulerService",
    "due_targets",
    "WorkerPool",
    "PoolResult",
    "IncidentReconciler",
    "ReconcileOutcome",
    "HistoryStore",
    "CycleRunner",
    "CycleSummary",
    "NotifierService",
]
