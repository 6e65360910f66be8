"""
Composing Context

Responsibilities:
- Accumulates LaTeX markup for one report document
- Renders figure grids, animations and plots from Jinja2 fragment templates
- Builds report documents from YAML job files

Owns: Report markup, fragment templates, job file schema
Never: Writes files or runs external tools
"""

from figreport.contexts.composing.document import ReportDocument
from figreport.contexts.composing.exceptions import (
    DocumentStateError,
    InvalidReportConfigError,
    TemplateRenderError,
)
from figreport.contexts.composing.registries import TemplateRegistry
from figreport.contexts.composing.report_config import load_report_config, report_from_config

__all__ = [
    "ReportDocument",
    "TemplateRegistry",
    "load_report_config",
    "report_from_config",
    "DocumentStateError",
    "InvalidReportConfigError",
    "TemplateRenderError",
]
