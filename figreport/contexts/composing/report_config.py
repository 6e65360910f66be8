"""
Report Job Files

Builds a ReportDocument from a YAML job description so that reports can be
queued from the command line without writing Python.

Example job file:

    name: temperature_maps
    output_dir: outs/reports
    png_convert: false
    standalone:            # optional; omit for a normal multi-page report
      width: 7.5
      height: 4.0
    items:
      - type: figure_grid
        files: [maps/t_jan.png, maps/t_feb.png, maps/t_mar.png]
        titles: [January, February, March]
        legend_files: [maps/legend.png]
        caption: Monthly mean temperature
        columns: 3
      - type: animation
        filebase: frames/t_
        num_frames: 24
        caption: Hourly temperature
        fps: 15
      - type: plot
        file: plots/timeseries.png
        caption: Domain mean temperature
"""

from pathlib import Path
from typing import Any, Dict, Optional, Union

from omegaconf import DictConfig, OmegaConf

from figreport.contexts.composing.document import ReportDocument
from figreport.contexts.composing.exceptions import InvalidReportConfigError

ITEM_FIELDS = {
    "figure_grid": ("files", "titles", "caption", "columns"),
    "animation": ("filebase", "num_frames", "caption", "fps"),
    "plot": ("file", "caption"),
}


def _require(item: Dict[str, Any], fields, index: int, config_path: Optional[Path]) -> None:
    missing = [name for name in fields if name not in item]
    if missing:
        raise InvalidReportConfigError(
            f"Item of type '{item['type']}' is missing fields: {', '.join(missing)}",
            config_path=config_path,
            item_index=index,
        )


def report_from_config(
    config: Union[DictConfig, Dict[str, Any]],
    config_path: Optional[Path] = None,
    output_dir: Optional[Path] = None,
) -> ReportDocument:
    """
    Build a finalized ReportDocument from a job description.

    Args:
        config: Parsed job description (OmegaConf node or plain dict)
        config_path: Where the description came from, for error messages
        output_dir: Override for the job's output_dir

    Returns:
        Finalized ReportDocument ready for rendering

    Raises:
        InvalidReportConfigError: If required fields are missing or an item type is unknown
    """
    if isinstance(config, DictConfig):
        data = OmegaConf.to_container(config, resolve=True)
    else:
        data = dict(config)

    if not data.get("name"):
        raise InvalidReportConfigError("Report job needs a 'name'", config_path=config_path)

    if output_dir is None and data.get("output_dir"):
        output_dir = Path(data["output_dir"])

    common = {
        "output_dir": output_dir,
        "png_convert": bool(data.get("png_convert", False)),
    }

    standalone = data.get("standalone")
    try:
        if standalone:
            if "width" not in standalone or "height" not in standalone:
                raise InvalidReportConfigError(
                    "'standalone' needs both 'width' and 'height' (inches)",
                    config_path=config_path,
                )
            report = ReportDocument.standalone_report(
                data["name"], float(standalone["width"]), float(standalone["height"]), **common
            )
        else:
            report = ReportDocument(data["name"], **common)

        for index, item in enumerate(data.get("items") or []):
            if not isinstance(item, dict):
                raise InvalidReportConfigError(
                    "Each item must be a mapping with a 'type' field",
                    config_path=config_path,
                    item_index=index,
                )
            item_type = item.get("type")
            if item_type not in ITEM_FIELDS:
                raise InvalidReportConfigError(
                    f"Unknown item type '{item_type}' (expected one of: {', '.join(ITEM_FIELDS)})",
                    config_path=config_path,
                    item_index=index,
                )
            _require(item, ITEM_FIELDS[item_type], index, config_path)

            if item_type == "figure_grid":
                report.add_figure_grid(
                    files=item["files"],
                    titles=item["titles"],
                    legend_files=item.get("legend_files") or [],
                    caption=item["caption"],
                    columns=int(item["columns"]),
                )
            elif item_type == "animation":
                report.add_animation(
                    filebase=item["filebase"],
                    num_frames=int(item["num_frames"]),
                    caption=item["caption"],
                    fps=int(item["fps"]),
                )
            else:
                report.add_plot(file=item["file"], caption=item["caption"])
    except ValueError as e:
        if isinstance(e, InvalidReportConfigError):
            raise
        raise InvalidReportConfigError(str(e), config_path=config_path) from e

    report.finalize()
    return report


def load_report_config(config_path: Path, output_dir: Optional[Path] = None) -> ReportDocument:
    """
    Load a YAML job file and build its ReportDocument.

    Args:
        config_path: Path to the YAML job file
        output_dir: Override for the job's output_dir

    Returns:
        Finalized ReportDocument

    Raises:
        FileNotFoundError: If the job file doesn't exist
        InvalidReportConfigError: If the job file is malformed
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Report job file not found: {config_path}")

    config = OmegaConf.load(config_path)

    if not isinstance(config, DictConfig):
        raise InvalidReportConfigError(
            "Report job file must contain a mapping at the top level", config_path=config_path
        )

    return report_from_config(config, config_path=config_path, output_dir=output_dir)
