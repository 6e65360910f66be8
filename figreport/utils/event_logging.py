"""
Job event logging utilities for FIGREPORT.

Appends one JSON object per line to the report event log so that batch runs
can be inspected after the fact (which job ran, on which worker, how it ended).

For detailed within-context logging, use figreport.utils.logger instead.

Usage:
    from figreport.utils.event_logging import log_job_event, get_recent_events

    log_job_event(
        event_type="job_rendered",
        report_name="summary",
        source="dispatch",
        events_file=Path("outs/logs/report_events.log"),
        worker_id=2,
    )
"""

import json
import os
import threading
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from figreport.utils.timestamp import now_exact

load_dotenv()
LOGS_PATH = Path(os.getenv("LOGS_PATH", "outs/logs"))
REPORT_EVENTS_FILE = Path(os.getenv("REPORT_EVENTS_FILE", str(LOGS_PATH / "report_events.log")))

# Workers append concurrently; one writer at a time keeps lines intact
_write_lock = threading.Lock()


def log_job_event(
    event_type: str,
    report_name: Optional[str],
    source: str,
    events_file: Path = REPORT_EVENTS_FILE,
    **extra_fields,
) -> None:
    """
    Log an event to the report event log (JSON Lines format).

    Args:
        event_type: Type of event (e.g., "job_dispatched", "job_rendered", "pool_drained")
        report_name: Report file name, or None for pool-level events
        source: Event source (e.g., "dispatch", "cli")
        events_file: Log file to append to
        **extra_fields: Additional event-specific fields
    """
    event = {
        "timestamp": now_exact(),
        "event_type": event_type,
        "report_name": report_name,
        "source": source,
        **extra_fields,
    }

    with _write_lock:
        events_file.parent.mkdir(parents=True, exist_ok=True)
        with open(events_file, "a", encoding="utf-8") as f:
            f.write(json.dumps(event, default=str) + "\n")


def get_recent_events(
    n: int = 10,
    report_name: Optional[str] = None,
    event_type: Optional[str] = None,
    events_file: Path = REPORT_EVENTS_FILE,
) -> List[dict]:
    """
    Get the last n events from the report event log, optionally filtered.

    Args:
        n: Number of events to return
        report_name: Only return events for this report
        event_type: Only return events of this type
        events_file: Log file to read

    Returns:
        List of event dicts, oldest first
    """
    if not events_file.exists():
        return []

    events = []
    with open(events_file, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            event = json.loads(line)
            if report_name is not None and event.get("report_name") != report_name:
                continue
            if event_type is not None and event.get("event_type") != event_type:
                continue
            events.append(event)

    return events[-n:] if n > 0 else []
