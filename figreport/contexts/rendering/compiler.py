"""
Report Rendering Module

Writes a report's markup to <file_name>.tex and typesets it with xelatex,
optionally rasterizing the PDF with ImageMagick. Also encodes frame sequences
to video with ffmpeg.

Every step returns a RenderResult instead of raising, so the caller (usually
the dispatch worker pool) decides whether a failure aborts the whole batch.
Use RenderResult.raise_for_status() to turn a failure into ReportRenderError.
"""

import os
import re
import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from dotenv import load_dotenv

from figreport.contexts.composing.document import ReportDocument
from figreport.contexts.rendering.exceptions import ErrorKind, ReportRenderError
from figreport.contexts.rendering.logger import (
    _log_debug,
    _log_error,
    _log_info,
    _log_success,
    _log_warning,
    log_render_result,
    log_render_start,
)
from figreport.utils.pdf_processing import page_count

load_dotenv()

LATEX_COMPILER = os.getenv("LATEX_COMPILER", "xelatex")
RASTER_CONVERTER = os.getenv("RASTER_CONVERTER", "convert")
VIDEO_ENCODER = os.getenv("VIDEO_ENCODER", "ffmpeg")
RASTER_DENSITY = int(os.getenv("RASTER_DENSITY", "400"))
VIDEO_FRAME_RATE = int(os.getenv("VIDEO_FRAME_RATE", "15"))

# xelatex may exit 0 after an emergency stop; its output is the only reliable signal
EMERGENCY_MARKER = "Emergency"


@dataclass
class RenderResult:
    """
    Result of one rendering step.

    Attributes:
        success: Whether every step succeeded
        report_name: Report file name (or output name for videos)
        error_kind: Failed step (None on success)
        tex_path: Written markup file
        pdf_path: Typeset PDF (None if not produced)
        png_path: Rasterized PNG (None if not requested or not produced)
        video_path: Encoded video (create_video only)
        output: Combined stdout/stderr of the external tools
        errors: Parsed error lines
        warnings: Parsed LaTeX warnings
        page_count: Pages in the typeset PDF (None if not available)
        returncode: Exit status of the last external tool run
    """

    success: bool
    report_name: str
    error_kind: Optional[ErrorKind] = None
    tex_path: Optional[Path] = None
    pdf_path: Optional[Path] = None
    png_path: Optional[Path] = None
    video_path: Optional[Path] = None
    output: str = ""
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    page_count: Optional[int] = None
    returncode: Optional[int] = None

    def raise_for_status(self) -> "RenderResult":
        """
        Raise ReportRenderError if this result is a failure.

        Returns:
            self, so calls can be chained

        Raises:
            ReportRenderError: If success is False
        """
        if not self.success:
            message = self.errors[0] if self.errors else "Rendering failed"
            raise ReportRenderError(
                message,
                kind=self.error_kind,
                report_name=self.report_name,
                output=self.output,
            )
        return self


def _run_tool(cmd: Sequence[str], cwd: Optional[Path] = None) -> Tuple[int, str]:
    """
    Run an external tool with stdin closed and stderr folded into stdout.

    Raises:
        FileNotFoundError: If the executable is not installed
    """
    _log_debug(f"  $ {' '.join(str(part) for part in cmd)}")
    result = subprocess.run(
        [str(part) for part in cmd],
        cwd=cwd,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        encoding="utf-8",
        errors="replace",  # TeX output is not always valid UTF-8
    )
    return result.returncode, result.stdout or ""


def _parse_typeset_output(output: str) -> Tuple[List[str], List[str]]:
    """
    Parse xelatex console output for errors and warnings.

    Args:
        output: Combined stdout/stderr of the typesetting run

    Returns:
        Tuple of (errors, warnings)
    """
    errors = []
    warnings = []

    # TeX error lines: "! Error message"
    for match in re.finditer(r"^! (.+)$", output, re.MULTILINE):
        errors.append(match.group(1).strip())

    warning_patterns = [
        r"LaTeX Warning: (.+)",
        r"Package \w+ Warning: (.+)",
    ]
    for pattern in warning_patterns:
        for match in re.finditer(pattern, output, re.MULTILINE):
            warnings.append(match.group(1).strip())

    return errors, warnings


def _resolve_output_dir(report: ReportDocument) -> Path:
    return report.output_dir if report.output_dir is not None else Path.cwd()


def write_markup(report: ReportDocument) -> Path:
    """
    Write the report's markup to <output_dir>/<file_name>.tex.

    Args:
        report: Report to write (finalized or not; written as-is)

    Returns:
        Path to the written .tex file

    Raises:
        OSError: If the directory or file cannot be created
    """
    output_dir = _resolve_output_dir(report)
    output_dir.mkdir(parents=True, exist_ok=True)
    tex_path = output_dir / f"{report.file_name}.tex"
    tex_path.write_text(report.text, encoding="utf-8")
    return tex_path


def render_report(report: ReportDocument, verbose: bool = False) -> RenderResult:
    """
    Finalize, write and typeset a report; rasterize it if png_convert is set.

    The report is finalized here if the caller has not already done so.
    xelatex runs from the current directory (so relative figure paths keep
    working) and writes into the report's output directory.

    Args:
        report: Report to render. Ownership passes to this call.
        verbose: Log full tool output even on success

    Returns:
        RenderResult; success is False if the markup could not be written, the
        typesetting output contains an emergency stop, or rasterization failed
    """
    name = report.file_name
    start_time = time.time()

    if not report.is_finalized:
        report.finalize()

    try:
        tex_path = write_markup(report)
    except OSError as e:
        result = RenderResult(
            success=False,
            report_name=name,
            error_kind=ErrorKind.MARKUP_WRITE,
            errors=[f"Could not write markup: {e}"],
        )
        log_render_result(name, result, time.time() - start_time, verbose=verbose)
        return result

    output_dir = tex_path.parent
    log_render_start(name, tex_path, output_dir)

    cmd = [LATEX_COMPILER]
    if report.output_dir is not None:
        cmd.append(f"-output-directory={output_dir}")
    cmd.append(str(tex_path))

    pdf_path = output_dir / f"{name}.pdf"
    # Drop a stale PDF so its presence afterwards means this run produced it
    if pdf_path.exists():
        pdf_path.unlink()

    try:
        returncode, output = _run_tool(cmd)
    except FileNotFoundError as e:
        result = RenderResult(
            success=False,
            report_name=name,
            error_kind=ErrorKind.TYPESET_EMERGENCY,
            tex_path=tex_path,
            errors=[f"LaTeX compiler not found: {e}"],
        )
        log_render_result(name, result, time.time() - start_time, verbose=verbose)
        return result

    errors, warnings = _parse_typeset_output(output)
    result = RenderResult(
        success=True,
        report_name=name,
        tex_path=tex_path,
        pdf_path=pdf_path if pdf_path.exists() else None,
        output=output,
        errors=errors,
        warnings=warnings,
        returncode=returncode,
    )

    if EMERGENCY_MARKER in output:
        result.success = False
        result.error_kind = ErrorKind.TYPESET_EMERGENCY
        if not any(EMERGENCY_MARKER in err for err in result.errors):
            result.errors.insert(0, f"{LATEX_COMPILER} reported an emergency stop")
        log_render_result(name, result, time.time() - start_time, verbose=verbose)
        return result

    if returncode != 0:
        _log_warning(f"{LATEX_COMPILER} exited with status {returncode} for {name}")
    if result.pdf_path is None:
        _log_warning(f"No PDF produced for {name}")
    else:
        result.page_count = page_count(result.pdf_path)

    if report.png_convert:
        png_result = convert_to_png(pdf_path, report_name=name)
        result.output = "\n".join(part for part in (result.output, png_result.output) if part)
        result.returncode = png_result.returncode
        if png_result.success:
            result.png_path = png_result.png_path
        else:
            result.success = False
            result.error_kind = png_result.error_kind
            result.errors = png_result.errors + result.errors

    log_render_result(name, result, time.time() - start_time, verbose=verbose)
    return result


def convert_to_png(
    pdf_path: Path,
    png_path: Optional[Path] = None,
    report_name: Optional[str] = None,
    density: int = RASTER_DENSITY,
) -> RenderResult:
    """
    Rasterize a PDF to PNG at a fixed density.

    Args:
        pdf_path: Typeset PDF
        png_path: Output image (default: pdf_path with .png suffix)
        report_name: Name used in logs and results (default: PDF stem)
        density: Resolution in dpi

    Returns:
        RenderResult; a nonzero converter exit is a RASTER_CONVERSION failure
    """
    pdf_path = Path(pdf_path)
    png_path = Path(png_path) if png_path is not None else pdf_path.with_suffix(".png")
    name = report_name or pdf_path.stem

    cmd = [RASTER_CONVERTER, "-density", str(density), str(pdf_path), str(png_path)]
    try:
        returncode, output = _run_tool(cmd)
    except FileNotFoundError as e:
        _log_error(f"Raster converter not found: {e}")
        return RenderResult(
            success=False,
            report_name=name,
            error_kind=ErrorKind.RASTER_CONVERSION,
            pdf_path=pdf_path,
            errors=[f"Raster converter not found: {e}"],
        )

    if returncode != 0:
        _log_error(f"PNG conversion failed for {name} (status {returncode})")
        return RenderResult(
            success=False,
            report_name=name,
            error_kind=ErrorKind.RASTER_CONVERSION,
            pdf_path=pdf_path,
            output=output,
            errors=[f"{RASTER_CONVERTER} exited with status {returncode}"],
            returncode=returncode,
        )

    _log_debug(f"  PNG written: {png_path}")
    return RenderResult(
        success=True,
        report_name=name,
        pdf_path=pdf_path,
        png_path=png_path,
        output=output,
        returncode=returncode,
    )


def create_video(
    filename_pattern: str,
    outfile: Path,
    frame_rate: int = VIDEO_FRAME_RATE,
) -> RenderResult:
    """
    Encode an image sequence to video, overwriting outfile.

    Args:
        filename_pattern: ffmpeg image2 input pattern (e.g., "frames/t_%04d.png")
        outfile: Output video path
        frame_rate: Input frame rate in frames per second

    Returns:
        RenderResult; a nonzero encoder exit is a VIDEO_ENCODING failure
    """
    outfile = Path(outfile)
    name = outfile.stem
    cmd = [
        VIDEO_ENCODER,
        "-y",
        "-f",
        "image2",
        "-r",
        str(frame_rate),
        "-i",
        filename_pattern,
        str(outfile),
    ]

    _log_info(f"Encoding video: {outfile}")
    try:
        returncode, output = _run_tool(cmd)
    except FileNotFoundError as e:
        _log_error(f"Video encoder not found: {e}")
        return RenderResult(
            success=False,
            report_name=name,
            error_kind=ErrorKind.VIDEO_ENCODING,
            errors=[f"Video encoder not found: {e}"],
        )

    if returncode != 0:
        _log_error(f"Video encoding failed for {outfile} (status {returncode})")
        return RenderResult(
            success=False,
            report_name=name,
            error_kind=ErrorKind.VIDEO_ENCODING,
            output=output,
            errors=[f"{VIDEO_ENCODER} exited with status {returncode}"],
            returncode=returncode,
        )

    _log_success(f"Video written: {outfile}")
    return RenderResult(
        success=True,
        report_name=name,
        video_path=outfile,
        output=output,
        returncode=returncode,
    )
