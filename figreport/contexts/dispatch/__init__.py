"""
Dispatch Context

Responsibilities:
- Runs a fixed-size pool of rendering workers over a queue of reports
- Guarantees one stop signal and one completion signal per worker
- Applies the batch failure policy (abort everything, or isolate per job)

Owns: Worker threads, job queue, batch outcomes
Never: Builds report content
"""

from figreport.contexts.dispatch.worker_pool import (
    DEFAULT_NUM_WORKERS,
    JobOutcome,
    JobStatus,
    PoolAbortedError,
    PoolSummary,
    ReportServer,
    serve_reports,
)

__all__ = [
    "DEFAULT_NUM_WORKERS",
    "JobOutcome",
    "JobStatus",
    "PoolAbortedError",
    "PoolSummary",
    "ReportServer",
    "serve_reports",
]
