#!/usr/bin/env python3
"""
Report Build CLI

Builds LaTeX figure reports from YAML job files and renders them with xelatex.

Commands:
    render - Render a single report job file
    batch  - Render several job files on a pool of workers
    video  - Encode an image sequence to video
    layout - Show how figures would be placed in a grid

Examples:\n

    build_report.py render jobs/monthly_maps.yaml              # Render one report

    build_report.py render jobs/monthly_maps.yaml --verbose    # Full xelatex output

    build_report.py batch jobs/*.yaml --workers 4              # Render in parallel

    build_report.py batch jobs/*.yaml -w 4 --isolate           # Keep going past failures

    build_report.py video "frames/t_%04d.png" outs/t.mp4       # Encode frames

    build_report.py layout 7 3                                 # Grid placement table
"""

import os
from pathlib import Path
from typing import List, Optional

import typer
from dotenv import load_dotenv
from typing_extensions import Annotated

from figreport.contexts.composing import InvalidReportConfigError, load_report_config
from figreport.contexts.dispatch import DEFAULT_NUM_WORKERS, PoolAbortedError, ReportServer
from figreport.contexts.dispatch.logger import setup_dispatch_logger
from figreport.contexts.layout import grid_placements, numrows
from figreport.contexts.rendering import create_video, render_report
from figreport.contexts.rendering.logger import setup_rendering_logger
from figreport.utils.event_logging import REPORT_EVENTS_FILE
from figreport.utils.timestamp import now

load_dotenv()
LOGS_PATH = Path(os.getenv("LOGS_PATH", "outs/logs"))


app = typer.Typer(
    help="Build LaTeX figure reports from YAML job files and render them",
    add_completion=False,
    invoke_without_command=True,
)


@app.callback()
def main(ctx: typer.Context):
    """Show help by default when no command is provided."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def _load_or_exit(config_path: Path, output_dir: Optional[Path]):
    try:
        return load_report_config(config_path, output_dir=output_dir)
    except (FileNotFoundError, InvalidReportConfigError) as e:
        typer.secho(f"Error: {e}\n", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


@app.command("render")
def render_command(
    config_path: Annotated[
        Path,
        typer.Argument(help="Report job file (YAML)"),
    ],
    output_dir: Annotated[
        Optional[Path],
        typer.Option("--output-dir", "-o", help="Override the job's output directory"),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log full xelatex output"),
    ] = False,
):
    """
    Render one report job file to PDF (and PNG if the job asks for it).

    Examples:\n

        $ build_report.py render jobs/monthly_maps.yaml

        $ build_report.py render jobs/monthly_maps.yaml -o outs/reports --verbose
    """
    report = _load_or_exit(config_path, output_dir)

    log_dir = LOGS_PATH / f"render_{now()}"
    setup_rendering_logger(log_dir)

    typer.secho(f"\nRendering: {report.file_name}", fg=typer.colors.BLUE, bold=True)
    result = render_report(report, verbose=verbose)

    typer.echo("")
    if result.success:
        typer.secho("✓ Render succeeded", fg=typer.colors.GREEN, bold=True)
        typer.echo(f"  Warnings: {len(result.warnings)}")
        if result.pdf_path:
            typer.echo(f"  PDF: {result.pdf_path}")
        if result.png_path:
            typer.echo(f"  PNG: {result.png_path}")
    else:
        typer.secho(
            f"✗ Render failed ({result.error_kind.value})", fg=typer.colors.RED, bold=True
        )
        for error in result.errors[:10]:
            typer.secho(f"  - {error}", fg=typer.colors.RED)
        if len(result.errors) > 10:
            typer.echo(f"  ... and {len(result.errors) - 10} more")

    typer.echo(f"  Log: {log_dir / 'render.log'}")
    typer.echo("")
    raise typer.Exit(code=0 if result.success else 1)


@app.command("batch")
def batch_command(
    config_paths: Annotated[
        List[Path],
        typer.Argument(help="Report job files (YAML)"),
    ],
    workers: Annotated[
        int,
        typer.Option("--workers", "-w", help="Number of concurrent workers", min=1),
    ] = DEFAULT_NUM_WORKERS,
    isolate: Annotated[
        bool,
        typer.Option(
            "--isolate",
            help="Keep rendering other reports when one fails (default: abort the batch)",
        ),
    ] = False,
    output_dir: Annotated[
        Optional[Path],
        typer.Option("--output-dir", "-o", help="Override every job's output directory"),
    ] = None,
):
    """
    Render several report job files on a pool of workers.

    All job files are loaded and validated before any rendering starts.
    Distinct jobs must use distinct report names; two jobs writing the same
    file in the same directory race with each other.

    Examples:\n

        $ build_report.py batch jobs/*.yaml --workers 4

        $ build_report.py batch jobs/*.yaml -w 4 --isolate
    """
    reports = [_load_or_exit(path, output_dir) for path in config_paths]

    names = [report.file_name for report in reports]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        typer.secho(
            f"Warning: duplicate report names will overwrite each other: {', '.join(duplicates)}",
            fg=typer.colors.YELLOW,
            err=True,
        )

    log_dir = LOGS_PATH / f"batch_{now()}"
    setup_dispatch_logger(log_dir, workers)

    typer.secho(
        f"\nRendering {len(reports)} reports on {workers} workers",
        fg=typer.colors.BLUE,
        bold=True,
    )

    server = ReportServer(
        num_workers=workers,
        failure_policy="isolate" if isolate else "abort",
        events_file=REPORT_EVENTS_FILE,
    )
    try:
        summary = server.run(reports)
    except PoolAbortedError as e:
        summary = e.summary
        typer.secho(f"\n✗ Batch aborted: {e.error}", fg=typer.colors.RED, bold=True, err=True)

    typer.echo("")
    typer.echo(f"  Rendered: {len(summary.rendered)}")
    typer.echo(f"  Failed:   {len(summary.failed)}")
    typer.echo(f"  Skipped:  {len(summary.skipped)}")
    typer.echo(f"  Time:     {summary.elapsed_time:.2f}s")
    for outcome in summary.failed:
        typer.secho(f"  - {outcome.report_name}", fg=typer.colors.RED)
    typer.echo(f"  Log: {log_dir / 'dispatch.log'}")
    typer.echo("")

    raise typer.Exit(code=0 if summary.success else 1)


@app.command("video")
def video_command(
    filename_pattern: Annotated[
        str,
        typer.Argument(help="ffmpeg image2 input pattern, e.g. 'frames/t_%04d.png'"),
    ],
    outfile: Annotated[
        Path,
        typer.Argument(help="Output video file"),
    ],
):
    """
    Encode an image sequence to video with ffmpeg.

    Examples:\n

        $ build_report.py video "frames/t_%04d.png" outs/t.mp4
    """
    setup_rendering_logger(LOGS_PATH / f"video_{now()}")

    result = create_video(filename_pattern, outfile)
    if result.success:
        typer.secho(f"✓ Video written: {result.video_path}", fg=typer.colors.GREEN, bold=True)
        raise typer.Exit(code=0)

    typer.secho("✗ Video encoding failed", fg=typer.colors.RED, bold=True, err=True)
    for error in result.errors:
        typer.secho(f"  - {error}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


@app.command("layout")
def layout_command(
    num_figures: Annotated[int, typer.Argument(help="Number of figures", min=0)],
    columns: Annotated[int, typer.Argument(help="Figures per row", min=1)],
):
    """
    Show the row/column placement and caption label of each figure.

    Examples:\n

        $ build_report.py layout 7 3
    """
    rows, remainder = numrows(num_figures, columns)
    typer.echo(f"{num_figures} figures in {columns} columns: {rows} rows, last row holds "
               f"{remainder or (columns if rows else 0)}")
    typer.echo("")

    current_row = None
    for placement in grid_placements(num_figures, columns):
        if placement.row != current_row:
            current_row = placement.row
            typer.secho(f"Row {current_row}:", bold=True)
        typer.echo(f"  [{placement.column}] ({placement.label}) figure {placement.index}")


if __name__ == "__main__":
    app()
