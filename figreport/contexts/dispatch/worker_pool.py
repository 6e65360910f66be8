"""
Report Worker Pool

Renders a stream of report documents on a fixed number of worker threads.

A dispatcher thread forwards each submitted report onto a shared work queue.
Once the inbound stream ends it puts exactly one sentinel per worker on that
queue, then waits for exactly one completion signal per worker before the
pool reports itself drained. Any worker may pick up any report; the only
ordering guarantee is that a single worker handles its reports in the order
it took them off the queue.

Failure policy:
    "abort"   - the first failed render stops all further rendering. Reports
                still queued are drained without being rendered (recorded as
                skipped) and wait() raises PoolAbortedError.
    "isolate" - failures are recorded per job; other jobs still render.

Usage:
    server = ReportServer(num_workers=4)
    summary = server.run(reports)

    # or, streaming
    server = ReportServer(num_workers=4, failure_policy="isolate")
    server.start()
    for report in build_reports():
        server.submit(report)
    server.close()
    summary = server.wait()
"""

import os
import queue
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from dotenv import load_dotenv
from loguru import logger

from figreport.contexts.composing.document import ReportDocument
from figreport.contexts.dispatch.logger import (
    _log_debug,
    _log_error,
    _log_info,
    _log_warning,
    log_pool_summary,
)
from figreport.contexts.rendering.compiler import RenderResult, render_report
from figreport.contexts.rendering.exceptions import ReportRenderError
from figreport.utils.event_logging import log_job_event

load_dotenv()
DEFAULT_NUM_WORKERS = int(os.getenv("REPORT_WORKERS", "1"))

FAILURE_POLICIES = ("abort", "isolate")

# Marks the end of the inbound stream, and tells a worker to stop
_SENTINEL = None

Renderer = Callable[[ReportDocument], RenderResult]


class JobStatus(str, Enum):
    RENDERED = "rendered"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class JobOutcome:
    """
    What happened to one submitted report.

    Attributes:
        report_name: Report file name
        status: rendered, failed or skipped
        worker_id: Worker that took the report off the queue
        elapsed_time: Seconds spent rendering (0 when skipped)
        result: RenderResult returned by the renderer, if any
        error: Failure cause (ReportRenderError, or an unexpected exception)
    """

    report_name: str
    status: JobStatus
    worker_id: int
    elapsed_time: float = 0.0
    result: Optional[RenderResult] = None
    error: Optional[BaseException] = None


@dataclass
class PoolSummary:
    """
    Drained state of a worker pool.

    Attributes:
        num_workers: Pool size
        submitted: Reports forwarded to the work queue
        sentinels_sent: Stop signals put on the work queue
        completions_received: Completion signals collected from workers
        outcomes: One entry per submitted report
        elapsed_time: Seconds from dispatcher start to drain
        aborted: True if a failure stopped rendering under the abort policy
    """

    num_workers: int
    submitted: int = 0
    sentinels_sent: int = 0
    completions_received: int = 0
    outcomes: List[JobOutcome] = field(default_factory=list)
    elapsed_time: float = 0.0
    aborted: bool = False

    def _with_status(self, status: JobStatus) -> List[JobOutcome]:
        return [outcome for outcome in self.outcomes if outcome.status == status]

    @property
    def rendered(self) -> List[JobOutcome]:
        return self._with_status(JobStatus.RENDERED)

    @property
    def failed(self) -> List[JobOutcome]:
        return self._with_status(JobStatus.FAILED)

    @property
    def skipped(self) -> List[JobOutcome]:
        return self._with_status(JobStatus.SKIPPED)

    @property
    def success(self) -> bool:
        return not self.failed and not self.skipped


class PoolAbortedError(Exception):
    """
    Raised by ReportServer.wait() when a failed render aborted the pool.

    Attributes:
        error: The first failure
        summary: Drained pool summary, including skipped reports
    """

    def __init__(self, error: BaseException, summary: PoolSummary):
        self.error = error
        self.summary = summary
        super().__init__(
            f"Report pool aborted after a failed render "
            f"({len(summary.skipped)} queued reports skipped): {error}"
        )


class ReportServer:
    """
    Fixed-size pool of worker threads rendering queued reports.

    Args:
        num_workers: Number of worker threads (>= 1)
        failure_policy: "abort" or "isolate" (see module docstring)
        renderer: Callable turning a report into a RenderResult
                  (default: rendering.compiler.render_report)
        events_file: JSON Lines event log for job events (None = no event log)
        inbound: Queue to read reports from; put None on it to end the stream.
                 Defaults to a private queue fed by submit()/close().
    """

    def __init__(
        self,
        num_workers: int = DEFAULT_NUM_WORKERS,
        failure_policy: str = "abort",
        renderer: Optional[Renderer] = None,
        events_file: Optional[Path] = None,
        inbound: Optional[queue.Queue] = None,
    ):
        if num_workers < 1:
            raise ValueError(f"num_workers must be >= 1, got {num_workers}")
        if failure_policy not in FAILURE_POLICIES:
            raise ValueError(
                f"failure_policy must be one of {FAILURE_POLICIES}, got {failure_policy!r}"
            )

        self.num_workers = num_workers
        self.failure_policy = failure_policy
        self.renderer = renderer or render_report
        self.events_file = events_file

        self._inbound = inbound if inbound is not None else queue.Queue()
        # Size 1: a hand-off blocks until a worker is ready to take the report
        self._work: queue.Queue = queue.Queue(maxsize=1)
        self._finished: queue.Queue = queue.Queue()
        self._done = threading.Event()
        self._abort = threading.Event()
        self._lock = threading.Lock()

        self._outcomes: List[JobOutcome] = []
        self._first_error: Optional[BaseException] = None
        self._summary: Optional[PoolSummary] = None
        self._dispatcher_error: Optional[BaseException] = None
        self._dispatcher: Optional[threading.Thread] = None
        self._closed = False

    # Caller side

    def start(self) -> "ReportServer":
        """Start the dispatcher, which starts the workers."""
        if self._dispatcher is not None:
            raise RuntimeError("ReportServer already started")
        self._dispatcher = threading.Thread(
            target=self._dispatch, name="dispatcher", daemon=True
        )
        self._dispatcher.start()
        return self

    def submit(self, report: ReportDocument) -> None:
        """
        Queue a report for rendering. Ownership of the report passes to the pool.

        Raises:
            RuntimeError: If close() was already called
            ValueError: If report is None (use close() to end the stream)
        """
        if self._closed:
            raise RuntimeError("Cannot submit to a closed ReportServer")
        if report is _SENTINEL:
            raise ValueError("Use close() to end the report stream")
        self._inbound.put(report)

    def close(self) -> None:
        """End the inbound stream. Safe to call more than once."""
        if not self._closed:
            self._closed = True
            self._inbound.put(_SENTINEL)

    def wait(self, raise_on_abort: bool = True) -> PoolSummary:
        """
        Block until every worker has stopped, then return the pool summary.

        Args:
            raise_on_abort: Raise PoolAbortedError if the abort policy fired

        Raises:
            RuntimeError: If the pool was never started or the dispatcher crashed
            PoolAbortedError: If a failure aborted the pool and raise_on_abort is set
        """
        if self._dispatcher is None:
            raise RuntimeError("ReportServer was never started")

        self._done.wait()

        if self._summary is None:
            raise RuntimeError("Report dispatcher stopped unexpectedly") from self._dispatcher_error

        if self._summary.aborted and raise_on_abort:
            raise PoolAbortedError(self._first_error, self._summary)
        return self._summary

    def run(self, reports: Iterable[ReportDocument], raise_on_abort: bool = True) -> PoolSummary:
        """Start, submit every report, close, and wait for the pool to drain."""
        self.start()
        try:
            for report in reports:
                self.submit(report)
        finally:
            self.close()
        return self.wait(raise_on_abort=raise_on_abort)

    # Pool side

    def _event(self, event_type: str, report_name: Optional[str], **extra_fields) -> None:
        if self.events_file is not None:
            log_job_event(
                event_type, report_name, source="dispatch", events_file=self.events_file, **extra_fields
            )

    def _dispatch(self) -> None:
        try:
            self._summary = self._run_pool()
        except BaseException as e:
            self._dispatcher_error = e
            logger.exception(f"Report dispatcher failed: {e}")
            raise
        finally:
            self._done.set()

    def _run_pool(self) -> PoolSummary:
        start_time = time.time()
        summary = PoolSummary(num_workers=self.num_workers)

        workers = [
            threading.Thread(
                target=self._work_loop, args=(worker_id,), name=f"worker-{worker_id}", daemon=True
            )
            for worker_id in range(self.num_workers)
        ]
        for worker in workers:
            worker.start()
        _log_info(f"Started {self.num_workers} workers ({self.failure_policy} on failure)")

        try:
            while True:
                report = self._inbound.get()
                if report is _SENTINEL:
                    break
                self._event("job_dispatched", report.file_name)
                self._work.put(report)
                summary.submitted += 1
        finally:
            # One stop signal per worker, whatever order they finish in, and
            # even if forwarding failed, so no worker is left blocked on the queue
            for _ in range(self.num_workers):
                self._work.put(_SENTINEL)
                summary.sentinels_sent += 1

        for _ in range(self.num_workers):
            worker_id = self._finished.get()
            summary.completions_received += 1
            _log_debug(f"Worker {worker_id} finished")

        for worker in workers:
            worker.join()

        with self._lock:
            summary.outcomes = list(self._outcomes)
        summary.aborted = self._abort.is_set()
        summary.elapsed_time = time.time() - start_time

        log_pool_summary(summary)
        self._event(
            "pool_drained",
            None,
            num_workers=self.num_workers,
            submitted=summary.submitted,
            rendered=len(summary.rendered),
            failed=len(summary.failed),
            skipped=len(summary.skipped),
            aborted=summary.aborted,
        )
        return summary

    def _work_loop(self, worker_id: int) -> None:
        try:
            while True:
                report = self._work.get()
                if report is _SENTINEL:
                    break
                try:
                    self._run_job(worker_id, report)
                except Exception as e:
                    # Bookkeeping for this job failed (e.g. the event log is unwritable)
                    name = getattr(report, "file_name", repr(report))
                    logger.exception(f"Worker {worker_id} could not record outcome of {name}")
                    self._settle(JobOutcome(name, JobStatus.FAILED, worker_id, error=e))
        finally:
            self._finished.put(worker_id)

    def _run_job(self, worker_id: int, report: ReportDocument) -> None:
        name = report.file_name
        if self._abort.is_set():
            outcome = JobOutcome(name, JobStatus.SKIPPED, worker_id)
        else:
            outcome = self._render(worker_id, report)

        fields = {"worker_id": worker_id}
        if outcome.status != JobStatus.SKIPPED:
            fields["elapsed_s"] = round(outcome.elapsed_time, 2)
        if outcome.error is not None:
            message = str(outcome.error)
            fields["error"] = message.splitlines()[0] if message else type(outcome.error).__name__

        # Logged before the outcome is settled, so a failed write settles the job once, as failed
        self._event(f"job_{outcome.status.value}", name, **fields)
        self._settle(outcome)

    def _render(self, worker_id: int, report: ReportDocument) -> JobOutcome:
        name = report.file_name
        _log_debug(f"Worker {worker_id} rendering {name}")
        start_time = time.time()
        result = None

        try:
            result = self.renderer(report)
            result.raise_for_status()
        except ReportRenderError as e:
            return JobOutcome(name, JobStatus.FAILED, worker_id, time.time() - start_time, result, e)
        except Exception as e:
            # The worker still has to reach its sentinel, so record the crash as a failure
            logger.exception(f"Worker {worker_id} crashed rendering {name}")
            return JobOutcome(name, JobStatus.FAILED, worker_id, time.time() - start_time, result, e)

        return JobOutcome(name, JobStatus.RENDERED, worker_id, time.time() - start_time, result)

    def _settle(self, outcome: JobOutcome) -> None:
        with self._lock:
            self._outcomes.append(outcome)
            if outcome.status == JobStatus.FAILED and self._first_error is None:
                self._first_error = outcome.error

        if outcome.status != JobStatus.FAILED:
            return

        if self.failure_policy == "abort":
            if not self._abort.is_set():
                _log_error(
                    f"{outcome.report_name} failed on worker {outcome.worker_id}; "
                    "aborting remaining reports"
                )
            self._abort.set()
        else:
            _log_warning(
                f"{outcome.report_name} failed on worker {outcome.worker_id}; continuing"
            )


def serve_reports(
    inbound: queue.Queue,
    finished: queue.Queue,
    num_workers: int = DEFAULT_NUM_WORKERS,
    failure_policy: str = "abort",
    renderer: Optional[Renderer] = None,
    events_file: Optional[Path] = None,
) -> PoolSummary:
    """
    Render reports read from `inbound` until a None arrives, then put the
    PoolSummary on `finished`.

    Blocks the calling thread; run it on its own thread to keep feeding
    `inbound`. Under the abort policy the summary has aborted=True rather than
    raising, since the caller is waiting on `finished`.
    """
    server = ReportServer(
        num_workers=num_workers,
        failure_policy=failure_policy,
        renderer=renderer,
        events_file=events_file,
        inbound=inbound,
    )
    server.start()
    summary = server.wait(raise_on_abort=False)
    finished.put(summary)
    return summary
