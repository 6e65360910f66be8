"""
Dispatch context logger.

Provides logging interface for the worker pool with automatic [dispatch] prefix.
"""

from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from figreport.utils.logger import setup_logger as _setup_logger

if TYPE_CHECKING:
    from figreport.contexts.dispatch.worker_pool import PoolSummary

CONTEXT_PREFIX = "[dispatch]"


def setup_dispatch_logger(log_dir: Path, num_workers: int) -> Path:
    """
    Setup logger for a batch run through the worker pool.

    Args:
        log_dir: Directory for this batch session
        num_workers: Pool size, recorded in the provenance header

    Returns:
        Path to log file
    """
    return _setup_logger(
        context_name="dispatch",
        log_dir=log_dir,
        extra_provenance={"Workers": num_workers},
    )


def _log_info(message: str) -> None:
    """Log info message with [dispatch] prefix."""
    logger.info(f"{CONTEXT_PREFIX} {message}")


def _log_success(message: str) -> None:
    """Log success message with [dispatch] prefix."""
    logger.success(f"{CONTEXT_PREFIX} {message}")


def _log_error(message: str) -> None:
    """Log error message with [dispatch] prefix."""
    logger.error(f"{CONTEXT_PREFIX} {message}")


def _log_warning(message: str) -> None:
    """Log warning message with [dispatch] prefix."""
    logger.warning(f"{CONTEXT_PREFIX} {message}")


def _log_debug(message: str) -> None:
    """Log debug message with [dispatch] prefix."""
    logger.debug(f"{CONTEXT_PREFIX} {message}")


def log_pool_summary(summary: "PoolSummary") -> None:
    """Log the outcome of a drained pool."""
    line = (
        f"Pool drained: {len(summary.rendered)} rendered, {len(summary.failed)} failed, "
        f"{len(summary.skipped)} skipped ({summary.elapsed_time:.2f}s, {summary.num_workers} workers)"
    )
    if summary.failed:
        _log_error(line)
        for outcome in summary.failed:
            _log_error(f"  {outcome.report_name}: {outcome.error}")
    else:
        _log_success(line)
