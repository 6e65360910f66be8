"""
Rendering context logger.

Provides logging interface for rendering context with automatic [render] prefix.
All rendering modules should import from this module, not from utils.logger directly.
"""

import os
from pathlib import Path
from typing import TYPE_CHECKING

from dotenv import load_dotenv
from loguru import logger

from figreport.utils.logger import setup_logger as _setup_logger

if TYPE_CHECKING:
    from figreport.contexts.rendering.compiler import RenderResult

load_dotenv()

CONTEXT_PREFIX = "[render]"


def setup_rendering_logger(log_dir: Path) -> Path:
    """
    Setup logger for rendering context.

    Args:
        log_dir: Directory for this rendering session

    Returns:
        Path to log file
    """
    return _setup_logger(
        context_name="render",
        log_dir=log_dir,
        extra_provenance={
            "LaTeX compiler": os.getenv("LATEX_COMPILER", "xelatex"),
            "Raster converter": os.getenv("RASTER_CONVERTER", "convert"),
            "Video encoder": os.getenv("VIDEO_ENCODER", "ffmpeg"),
        },
    )


def _log_info(message: str) -> None:
    """Log info message with [render] prefix."""
    logger.info(f"{CONTEXT_PREFIX} {message}")


def _log_success(message: str) -> None:
    """Log success message with [render] prefix."""
    logger.success(f"{CONTEXT_PREFIX} {message}")


def _log_error(message: str) -> None:
    """Log error message with [render] prefix."""
    logger.error(f"{CONTEXT_PREFIX} {message}")


def _log_warning(message: str) -> None:
    """Log warning message with [render] prefix."""
    logger.warning(f"{CONTEXT_PREFIX} {message}")


def _log_debug(message: str) -> None:
    """Log debug message with [render] prefix."""
    logger.debug(f"{CONTEXT_PREFIX} {message}")


def log_render_start(report_name: str, tex_file: Path, output_dir: Path) -> None:
    """Log start of a report render with context."""
    _log_info(f"Rendering: {report_name}")
    _log_debug(f"  Source: {tex_file}")
    _log_debug(f"  Output directory: {output_dir}")


def log_render_result(
    report_name: str,
    result: "RenderResult",
    elapsed_time: float,
    verbose: bool = False,
) -> None:
    """
    Log render result with diagnostics.

    Args:
        report_name: Report identifier
        result: RenderResult from render_report()
        elapsed_time: Time taken to render
        verbose: Show detailed warnings/errors and full tool output
    """
    if result.success:
        _log_success(f"{report_name}: {len(result.warnings)} warnings ({elapsed_time:.2f}s)")
        if result.pdf_path:
            _log_debug(f"  PDF: {result.pdf_path}")
        if result.png_path:
            _log_debug(f"  PNG: {result.png_path}")
    else:
        _log_error(f"{report_name}: {result.error_kind.value} ({elapsed_time:.2f}s)")
        error_limit = 10 if verbose else 5
        for i, err in enumerate(result.errors[:error_limit], 1):
            _log_error(f"  Error {i}: {err}")
        if len(result.errors) > error_limit:
            _log_error(f"  ... and {len(result.errors) - error_limit} more errors")

    if result.warnings:
        warning_limit = 10 if verbose else 3
        for i, warn in enumerate(result.warnings[:warning_limit], 1):
            _log_debug(f"  Warning {i}: {warn}")
        if len(result.warnings) > warning_limit:
            _log_debug(f"  ... and {len(result.warnings) - warning_limit} more warnings")

    # opt(raw=True) keeps loguru from stamping every line of multi-line tool output
    if (verbose or not result.success) and result.output:
        logger.opt(raw=True).debug(
            f"\n{'=' * 80}\nTOOL OUTPUT ({report_name}):\n{'=' * 80}\n{result.output}\n"
        )
