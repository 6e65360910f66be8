"""Error kinds and exceptions for the rendering context."""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Which rendering step failed."""

    MARKUP_WRITE = "markup_write"
    TYPESET_EMERGENCY = "typeset_emergency"
    RASTER_CONVERSION = "raster_conversion"
    VIDEO_ENCODING = "video_encoding"


class ReportRenderError(Exception):
    """
    Exception raised when a rendering step fails irrecoverably.

    Attributes:
        message: Error description
        kind: Failed step
        report_name: Report (or output) the step was working on
        output: Captured combined stdout/stderr of the external tool
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind,
        report_name: Optional[str] = None,
        output: str = "",
    ):
        self.message = message
        self.kind = kind
        self.report_name = report_name
        self.output = output

        parts = [f"[{kind.value}] {message}"]
        if report_name:
            parts.append(f"Report: {report_name}")
        if output:
            # Tail is where the tools print the fatal reason
            tail = output[-2000:]
            parts.append(f"\nTool output (tail):\n{tail}")

        super().__init__("\n".join(parts))
