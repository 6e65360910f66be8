"""
Rendering Context

Responsibilities:
- Writes report markup to <file_name>.tex
- Typesets with xelatex and detects emergency stops
- Rasterizes PDFs and encodes frame sequences to video

Owns: External tool invocation, rendered output files
Never: Modifies report content
"""

from figreport.contexts.rendering.compiler import (
    RenderResult,
    convert_to_png,
    create_video,
    render_report,
    write_markup,
)
from figreport.contexts.rendering.exceptions import ErrorKind, ReportRenderError

__all__ = [
    "RenderResult",
    "render_report",
    "write_markup",
    "convert_to_png",
    "create_video",
    "ErrorKind",
    "ReportRenderError",
]
