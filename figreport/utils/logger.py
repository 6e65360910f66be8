"""
Session logging for report builds.

Each CLI command opens one logging session: a log directory holding a single
<context>.log file that records everything at DEBUG, plus a colorized console
echo at INFO. Every session starts with a provenance header saying which
command produced it and which external tools it was configured to call.

Context-specific wrappers ([render], [dispatch]) live in contexts/{context}/logger.py.
"""

import os
import platform
import sys
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv
from loguru import logger

load_dotenv()

# Worker threads share the file sink, so the thread name is part of every line
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <7} | {thread.name: <12} | {message}"
CONSOLE_FORMAT = "{time:HH:mm:ss} | <level>{level: <7}</level> | <level>{message}</level>"

LEVELS = [
    {"name": "DEBUG", "color": "<dim>"},
    {"name": "WARNING", "color": "<yellow>"},
    {"name": "ERROR", "color": "<red>"},
    {"name": "CRITICAL", "color": "<bold><red>"},
]

HEADER_RULE = "=" * 80


def session_provenance(extra_provenance: Optional[dict] = None) -> Dict[str, str]:
    """
    Collect the facts that identify a logging session.

    Args:
        extra_provenance: Context-specific entries (tool names, pool size, ...),
                          appended after the standard ones

    Returns:
        Ordered mapping of label to value
    """
    provenance = {
        "Command": " ".join(sys.argv),
        "Working directory": str(Path.cwd()),
        "Python": platform.python_version(),
        "Host": platform.node() or "unknown",
        "PID": str(os.getpid()),
    }
    for key, value in (extra_provenance or {}).items():
        provenance[str(key)] = str(value)
    return provenance


def provenance_lines(provenance: Dict[str, str]) -> List[str]:
    """Render a provenance mapping as aligned header lines, framed by rules."""
    width = max((len(key) for key in provenance), default=0)
    body = [f"{key.ljust(width)} : {value}" for key, value in provenance.items()]
    return [HEADER_RULE, *body, HEADER_RULE]


def log_provenance(extra_provenance: Optional[dict] = None) -> None:
    """Write the provenance header to whatever sinks are configured."""
    for line in provenance_lines(session_provenance(extra_provenance)):
        logger.info(line)


def setup_logger(
    context_name: str,
    log_dir: Path,
    extra_provenance: Optional[dict] = None,
    console_level: str = "INFO",
) -> Path:
    """
    Start a logging session for one context.

    Replaces any sinks configured earlier in the process, so a command that
    opens a second session stops writing to the first one.

    Args:
        context_name: Context identifier, used as the log file stem ("render", "dispatch")
        log_dir: Directory for this session, created if missing
        extra_provenance: Context-specific entries for the provenance header
        console_level: Minimum level echoed to stdout

    Returns:
        Path to the session log file

    Example:
        log_file = setup_logger(
            context_name="render",
            log_dir=Path("outs/logs/render_20251114_123456"),
            extra_provenance={"LaTeX compiler": "xelatex"},
        )
    """
    log_dir.mkdir(exist_ok=True, parents=True)
    log_file = log_dir / f"{context_name}.log"

    logger.configure(
        levels=LEVELS,
        handlers=[
            # enqueue: records from several worker threads land whole and in order
            {"sink": log_file, "format": FILE_FORMAT, "level": "DEBUG", "enqueue": True},
            {"sink": sys.stdout, "format": CONSOLE_FORMAT, "level": console_level, "colorize": True},
        ],
    )

    log_provenance({"Context": context_name, **(extra_provenance or {})})
    return log_file
