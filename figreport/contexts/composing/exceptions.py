"""Custom exceptions for the composing context."""

from pathlib import Path
from typing import Optional


class DocumentStateError(RuntimeError):
    """Raised when a report document is mutated or finalized after finalize()."""

    pass


class TemplateRenderError(Exception):
    """
    Exception raised when a markup fragment template fails to render.

    Attributes:
        message: Error description
        fragment_name: Name of the fragment being rendered
        template_path: Path to the template file
        original_error: The original Jinja2 error
    """

    def __init__(
        self,
        message: str,
        fragment_name: Optional[str] = None,
        template_path: Optional[Path] = None,
        original_error: Optional[Exception] = None,
    ):
        self.message = message
        self.fragment_name = fragment_name
        self.template_path = template_path
        self.original_error = original_error

        parts = [message]

        if fragment_name and template_path:
            parts.append(f"\nTemplate: {template_path}")
            parts.append(f"Fragment: {fragment_name}")

        if original_error:
            parts.append(f"\nOriginal error: {str(original_error)}")

        super().__init__("\n".join(parts))


class InvalidReportConfigError(ValueError):
    """
    Exception raised when a report job file is structurally invalid.

    Attributes:
        message: Error description
        config_path: Path of the offending job file, when loaded from disk
        item_index: Index of the offending entry under 'items', if any
    """

    def __init__(
        self,
        message: str,
        config_path: Optional[Path] = None,
        item_index: Optional[int] = None,
    ):
        self.message = message
        self.config_path = config_path
        self.item_index = item_index

        parts = [message]
        if item_index is not None:
            parts.append(f"Item: {item_index}")
        if config_path is not None:
            parts.append(f"Config: {config_path}")

        super().__init__("\n".join(parts))
