"""
Report Document Builder

Accumulates the LaTeX markup for one report: a preamble, any number of figure
grids, animations and plots, and a closing \\end{document} added by finalize().

A ReportDocument is not thread-safe. It is built by one caller, then handed to
the rendering context (directly or through the dispatch worker pool), which
takes ownership of it.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import List, Optional, Sequence

from dotenv import load_dotenv

from figreport.contexts.composing.exceptions import DocumentStateError
from figreport.contexts.composing.registries import TemplateRegistry
from figreport.contexts.layout.grid import column_width, grid_placements, row_spans

load_dotenv()
MAIN_FONT = os.getenv("REPORT_MAIN_FONT", "Helvetica")
FONT_PATH = os.getenv("REPORT_FONT_PATH") or None

FIRST_FRAME = "0000"
LEGEND_WIDTH = 0.49


@lru_cache(maxsize=1)
def _default_registry() -> TemplateRegistry:
    return TemplateRegistry()


def _format_float(value: float) -> str:
    """Six-decimal fixed-point form used for lengths in the markup."""
    return f"{value:f}"


class ReportDocument:
    """
    In-memory LaTeX report under construction.

    Attributes:
        file_name: Base name of the output files (<file_name>.tex, .pdf, .png)
        standalone: True for a single-page figure with fixed paper size
        paper_width: Page width in inches (standalone only)
        paper_height: Page height in inches (standalone only)
        output_dir: Directory for rendered output (None = current directory)
        png_convert: Rasterize the PDF to PNG after typesetting
    """

    def __init__(
        self,
        file_name: str,
        output_dir: Optional[Path] = None,
        png_convert: bool = False,
        standalone: bool = False,
        paper_width: Optional[float] = None,
        paper_height: Optional[float] = None,
        main_font: str = MAIN_FONT,
        font_path: Optional[str] = FONT_PATH,
        template_registry: Optional[TemplateRegistry] = None,
    ):
        if not file_name:
            raise ValueError("file_name must be a non-empty string")
        if standalone:
            if paper_width is None or paper_height is None:
                raise ValueError("Standalone reports need both paper_width and paper_height")
            if paper_width <= 0 or paper_height <= 0:
                raise ValueError(
                    f"Paper size must be positive, got {paper_width}x{paper_height}in"
                )

        self.file_name = file_name
        self.output_dir = Path(output_dir) if output_dir is not None else None
        self.png_convert = png_convert
        self.standalone = standalone
        self.paper_width = paper_width
        self.paper_height = paper_height
        self.template_registry = template_registry or _default_registry()

        self._finalized = False
        self._fragments: List[str] = [
            self.template_registry.render(
                "preamble",
                standalone=standalone,
                paper_width=_format_float(paper_width) if standalone else None,
                paper_height=_format_float(paper_height) if standalone else None,
                main_font=main_font,
                font_path=font_path,
            )
        ]

    @classmethod
    def standalone_report(
        cls, file_name: str, width: float, height: float, **kwargs
    ) -> "ReportDocument":
        """Single-page report with paper size fixed to width x height inches."""
        return cls(
            file_name,
            standalone=True,
            paper_width=width,
            paper_height=height,
            **kwargs,
        )

    @property
    def text(self) -> str:
        """Markup accumulated so far."""
        return "".join(self._fragments)

    @property
    def is_finalized(self) -> bool:
        return self._finalized

    @property
    def caption_command(self) -> str:
        # Standalone figures are not numbered
        return "caption*" if self.standalone else "caption"

    def _append(self, fragment_name: str, **context) -> None:
        if self._finalized:
            raise DocumentStateError(
                f"Cannot add {fragment_name} to '{self.file_name}': document is finalized"
            )
        self._fragments.append(
            self.template_registry.render(
                fragment_name, caption_command=self.caption_command, **context
            )
        )

    def add_figure_grid(
        self,
        files: Sequence[str],
        titles: Sequence[str],
        legend_files: Sequence[str],
        caption: str,
        columns: int,
    ) -> None:
        """
        Append a grid of figures with lettered sub-captions.

        Figures fill rows of `columns` left to right, top to bottom. Each row of
        images is followed by a row of "(A) title" cells. Legend images and one
        overall caption follow the grid.

        Args:
            files: Image paths, one per figure
            titles: Sub-caption text, one per figure
            legend_files: Legend images placed under the grid
            caption: Caption for the whole grid
            columns: Figures per row

        Raises:
            ValueError: If files and titles differ in length, or columns < 1
            DocumentStateError: If the document is finalized
        """
        if len(files) != len(titles):
            raise ValueError(
                f"Got {len(files)} figure files but {len(titles)} titles; they must match"
            )
        if columns < 1:
            raise ValueError(f"columns must be >= 1, got {columns}")

        placements = grid_placements(len(files), columns)
        rows = [
            [
                {
                    "file": files[p.index],
                    "title": titles[p.index],
                    "label": p.label,
                }
                for p in placements[start:end]
            ]
            for start, end in row_spans(len(files), columns)
        ]

        self._append(
            "figure_grid",
            columns=columns,
            width=_format_float(column_width(columns)),
            rows=rows,
            legend_files=list(legend_files),
            legend_width=_format_float(LEGEND_WIDTH),
            caption=caption,
        )

    def add_animation(self, filebase: str, num_frames: int, caption: str, fps: int) -> None:
        """
        Append an animation over frames <filebase>0000 .. <filebase>NNNN.

        Frame files use a four-digit zero-padded index starting at 0000.

        Raises:
            ValueError: If num_frames < 1 or fps < 1
            DocumentStateError: If the document is finalized
        """
        if num_frames < 1:
            raise ValueError(f"num_frames must be >= 1, got {num_frames}")
        if fps < 1:
            raise ValueError(f"fps must be >= 1, got {fps}")

        self._append(
            "animation",
            fps=fps,
            filebase=filebase,
            first_frame=FIRST_FRAME,
            last_frame=f"{num_frames - 1:04d}",
            caption=caption,
        )

    def add_plot(self, file: str, caption: str) -> None:
        """Append a single image with a caption."""
        self._append("plot", file=file, caption=caption)

    def finalize(self) -> None:
        """
        Close the document. No fragments can be added afterwards.

        Raises:
            DocumentStateError: If the document was already finalized
        """
        if self._finalized:
            raise DocumentStateError(f"Report '{self.file_name}' is already finalized")
        self._fragments.append(self.template_registry.render("end"))
        self._finalized = True

    def __repr__(self) -> str:
        mode = "standalone" if self.standalone else "report"
        return (
            f"ReportDocument({self.file_name!r}, {mode}, "
            f"fragments={len(self._fragments)}, finalized={self._finalized})"
        )
