"""Unit tests for the report worker pool with a fake renderer."""

import queue
import shutil
import threading
import time

import pytest

from figreport.contexts.composing.document import ReportDocument
from figreport.contexts.dispatch import worker_pool
from figreport.contexts.dispatch.worker_pool import (
    JobStatus,
    PoolAbortedError,
    ReportServer,
    serve_reports,
)
from figreport.contexts.rendering.compiler import RenderResult
from figreport.contexts.rendering.exceptions import ErrorKind, ReportRenderError
from figreport.utils.event_logging import get_recent_events


class FakeRenderer:
    """Records every render call; reports whose names start with 'bad' fail."""

    def __init__(self, barrier=None):
        self.calls = []
        self.threads = set()
        self._lock = threading.Lock()
        self._barrier = barrier

    def __call__(self, report):
        with self._lock:
            self.calls.append(report.file_name)
            self.threads.add(threading.current_thread().name)
        if self._barrier is not None:
            self._barrier.wait()
        if report.file_name.startswith("bad"):
            return RenderResult(
                success=False,
                report_name=report.file_name,
                error_kind=ErrorKind.TYPESET_EMERGENCY,
                errors=["Emergency stop."],
                output="! Emergency stop.",
            )
        return RenderResult(success=True, report_name=report.file_name)


def _reports(*names):
    return [ReportDocument(name) for name in names]


@pytest.mark.unit
@pytest.mark.parametrize("num_workers, num_reports", [(1, 1), (1, 5), (2, 2), (3, 7), (4, 16), (8, 8)])
def test_every_report_rendered_exactly_once(num_workers, num_reports):
    """Test k reports on W workers give k renders and one drained summary."""
    renderer = FakeRenderer()
    names = [f"report_{i}" for i in range(num_reports)]

    summary = ReportServer(num_workers=num_workers, renderer=renderer).run(_reports(*names))

    assert sorted(renderer.calls) == sorted(names)
    assert summary.submitted == num_reports
    assert len(summary.rendered) == num_reports
    assert sorted(o.report_name for o in summary.outcomes) == sorted(names)
    assert summary.success
    assert not summary.aborted


@pytest.mark.unit
@pytest.mark.parametrize("num_workers", [1, 2, 5])
def test_one_sentinel_and_one_completion_per_worker(num_workers):
    """Test exactly W stop signals go out and exactly W completions come back."""
    summary = ReportServer(num_workers=num_workers, renderer=FakeRenderer()).run(
        _reports("a", "b", "c")
    )

    assert summary.num_workers == num_workers
    assert summary.sentinels_sent == num_workers
    assert summary.completions_received == num_workers


@pytest.mark.unit
def test_empty_stream_drains():
    """Test closing without submitting still stops every worker."""
    renderer = FakeRenderer()
    summary = ReportServer(num_workers=3, renderer=renderer).run([])

    assert renderer.calls == []
    assert summary.submitted == 0
    assert summary.completions_received == 3


@pytest.mark.unit
def test_workers_render_concurrently():
    """Test W reports can be in the renderer at the same time on W workers."""
    barrier = threading.Barrier(3, timeout=10)
    renderer = FakeRenderer(barrier=barrier)

    summary = ReportServer(num_workers=3, renderer=renderer).run(_reports("a", "b", "c"))

    assert len(summary.rendered) == 3
    assert len(renderer.threads) == 3
    assert {o.worker_id for o in summary.outcomes} == {0, 1, 2}


@pytest.mark.unit
def test_abort_policy_stops_after_first_failure():
    """Test one failed render aborts the batch and skips what is still queued."""
    renderer = FakeRenderer()
    server = ReportServer(num_workers=1, failure_policy="abort", renderer=renderer)

    with pytest.raises(PoolAbortedError) as exc_info:
        server.run(_reports("ok_1", "bad_2", "ok_3", "ok_4"))

    summary = exc_info.value.summary
    assert renderer.calls == ["ok_1", "bad_2"]
    assert [o.report_name for o in summary.rendered] == ["ok_1"]
    assert [o.report_name for o in summary.failed] == ["bad_2"]
    assert [o.report_name for o in summary.skipped] == ["ok_3", "ok_4"]
    assert summary.aborted
    assert summary.completions_received == 1
    assert isinstance(exc_info.value.error, ReportRenderError)
    assert exc_info.value.error.kind == ErrorKind.TYPESET_EMERGENCY


@pytest.mark.unit
def test_abort_policy_without_raising():
    server = ReportServer(num_workers=2, renderer=FakeRenderer())
    summary = server.run(_reports("bad_1", "ok_2"), raise_on_abort=False)

    assert summary.aborted
    assert len(summary.failed) == 1
    assert not summary.success


@pytest.mark.unit
def test_isolate_policy_keeps_rendering():
    """Test failures are recorded per job when the pool isolates them."""
    renderer = FakeRenderer()
    server = ReportServer(num_workers=2, failure_policy="isolate", renderer=renderer)

    summary = server.run(_reports("ok_1", "bad_2", "ok_3", "bad_4", "ok_5"))

    assert sorted(renderer.calls) == ["bad_2", "bad_4", "ok_1", "ok_3", "ok_5"]
    assert sorted(o.report_name for o in summary.rendered) == ["ok_1", "ok_3", "ok_5"]
    assert sorted(o.report_name for o in summary.failed) == ["bad_2", "bad_4"]
    assert summary.skipped == []
    assert not summary.aborted
    for outcome in summary.failed:
        assert outcome.status == JobStatus.FAILED
        assert outcome.result is not None
        assert isinstance(outcome.error, ReportRenderError)


@pytest.mark.unit
def test_crashing_renderer_still_drains():
    """Test an unexpected exception is recorded and the worker still finishes."""

    def crashing_renderer(report):
        raise RuntimeError(f"boom in {report.file_name}")

    server = ReportServer(num_workers=2, failure_policy="isolate", renderer=crashing_renderer)
    summary = server.run(_reports("a", "b", "c"))

    assert len(summary.failed) == 3
    assert summary.completions_received == 2
    assert all(isinstance(o.error, RuntimeError) for o in summary.failed)


@pytest.mark.unit
def test_renderer_raising_render_error():
    def raising_renderer(report):
        raise ReportRenderError("cannot write", kind=ErrorKind.MARKUP_WRITE)

    with pytest.raises(PoolAbortedError) as exc_info:
        ReportServer(renderer=raising_renderer).run(_reports("a"))

    assert exc_info.value.error.kind == ErrorKind.MARKUP_WRITE


@pytest.mark.unit
def test_streaming_submit_and_close():
    renderer = FakeRenderer()
    server = ReportServer(num_workers=2, renderer=renderer).start()
    for report in _reports("a", "b", "c"):
        server.submit(report)
    server.close()
    server.close()

    summary = server.wait()

    assert sorted(renderer.calls) == ["a", "b", "c"]
    with pytest.raises(RuntimeError):
        server.submit(ReportDocument("late"))


@pytest.mark.unit
def test_serve_reports_with_external_queues():
    """Test the queue-driven form reads until None and reports on `finished`."""
    inbound = queue.Queue()
    finished = queue.Queue()
    renderer = FakeRenderer()

    thread = threading.Thread(
        target=serve_reports,
        args=(inbound, finished),
        kwargs={"num_workers": 3, "renderer": renderer},
    )
    thread.start()
    for report in _reports("a", "b", "c", "d"):
        inbound.put(report)
    inbound.put(None)

    summary = finished.get(timeout=10)
    thread.join(timeout=10)

    assert summary.submitted == 4
    assert summary.sentinels_sent == 3
    assert summary.completions_received == 3
    assert sorted(renderer.calls) == ["a", "b", "c", "d"]
    assert finished.empty()


@pytest.mark.unit
def test_job_events_logged(tmp_path):
    """Test dispatch, render and drain events go to the event log."""
    events_file = tmp_path / "events.log"
    server = ReportServer(
        num_workers=2, failure_policy="isolate", renderer=FakeRenderer(), events_file=events_file
    )

    server.run(_reports("ok_1", "bad_2", "ok_3"))

    events = get_recent_events(n=100, events_file=events_file)
    types = [event["event_type"] for event in events]
    assert types.count("job_dispatched") == 3
    assert types.count("job_rendered") == 2
    assert types.count("job_failed") == 1
    assert types[-1] == "pool_drained"
    assert events[-1]["rendered"] == 2

    failed = get_recent_events(event_type="job_failed", events_file=events_file)
    assert failed[0]["report_name"] == "bad_2"
    assert "worker_id" in failed[0]


@pytest.mark.unit
def test_invalid_configuration():
    with pytest.raises(ValueError):
        ReportServer(num_workers=0)
    with pytest.raises(ValueError):
        ReportServer(failure_policy="retry")


@pytest.mark.unit
def test_lifecycle_errors():
    server = ReportServer(renderer=FakeRenderer())
    with pytest.raises(RuntimeError):
        server.wait()
    with pytest.raises(ValueError):
        server.submit(None)

    server.start()
    with pytest.raises(RuntimeError):
        server.start()
    server.close()
    server.wait()


@pytest.mark.unit
def test_unwritable_event_log_fails_job_and_still_drains(tmp_path, monkeypatch):
    """Test a failed event write is recorded as a job failure and every worker finishes."""
    recorded = []

    def flaky_log_job_event(event_type, report_name, **kwargs):
        if event_type == "job_rendered":
            raise OSError("event log unwritable")
        recorded.append(event_type)

    monkeypatch.setattr(worker_pool, "log_job_event", flaky_log_job_event)
    server = ReportServer(
        num_workers=2,
        failure_policy="isolate",
        renderer=FakeRenderer(),
        events_file=tmp_path / "events.log",
    )

    summary = server.run(_reports("a", "b", "c"))

    assert summary.completions_received == 2
    assert sorted(o.report_name for o in summary.failed) == ["a", "b", "c"]
    assert all(isinstance(o.error, OSError) for o in summary.failed)
    assert recorded.count("job_dispatched") == 3
    assert recorded[-1] == "pool_drained"


@pytest.mark.unit
def test_unwritable_event_log_aborts_with_write_error(monkeypatch, tmp_path):
    def flaky_log_job_event(event_type, report_name, **kwargs):
        if event_type == "job_rendered":
            raise OSError("event log unwritable")

    monkeypatch.setattr(worker_pool, "log_job_event", flaky_log_job_event)
    server = ReportServer(num_workers=1, renderer=FakeRenderer(), events_file=tmp_path / "e.log")

    with pytest.raises(PoolAbortedError) as exc_info:
        server.run(_reports("a", "b"))

    assert isinstance(exc_info.value.error, OSError)
    assert [o.report_name for o in exc_info.value.summary.skipped] == ["b"]


@pytest.mark.unit
def test_event_directory_replaced_mid_render_does_not_hang(tmp_path):
    """Test the pool drains when the event log directory disappears during a render."""
    events_dir = tmp_path / "logs"
    renderer = FakeRenderer()

    def replacing_renderer(report):
        shutil.rmtree(events_dir)
        events_dir.write_text("not a directory", encoding="utf-8")
        return renderer(report)

    server = ReportServer(
        num_workers=1, renderer=replacing_renderer, events_file=events_dir / "events.log"
    )
    errors = []

    def run_pool():
        try:
            server.run(_reports("a"))
        except Exception as e:
            errors.append(e)

    thread = threading.Thread(target=run_pool, daemon=True)
    thread.start()
    thread.join(timeout=10)

    assert not thread.is_alive()
    assert renderer.calls == ["a"]
    # The drain event cannot be written either, so the pool reports a dispatcher failure
    assert len(errors) == 1
    assert isinstance(errors[0], RuntimeError)
    assert isinstance(errors[0].__cause__, OSError)


@pytest.mark.unit
def test_dispatcher_failure_still_stops_workers():
    """Test workers get their stop signals when forwarding a report raises."""
    inbound = queue.Queue()
    server = ReportServer(num_workers=3, renderer=FakeRenderer(), inbound=inbound).start()

    inbound.put("not a report")

    with pytest.raises(RuntimeError) as exc_info:
        server.wait()
    assert isinstance(exc_info.value.__cause__, AttributeError)

    deadline = time.monotonic() + 5
    while server._finished.qsize() < 3 and time.monotonic() < deadline:
        time.sleep(0.01)
    assert server._finished.qsize() == 3
