"""
Composing Registries

Loads and caches the Jinja2 templates that produce report markup fragments.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from jinja2 import Environment, FileSystemLoader, StrictUndefined, Template, TemplateNotFound

from figreport.contexts.composing.exceptions import TemplateRenderError

load_dotenv()
TEMPLATES_PATH = Path(
    os.getenv("REPORT_TEMPLATES_PATH", str(Path(__file__).parent / "templates"))
)


class TemplateRegistry:
    """
    Registry for loading and caching Jinja2 templates for LaTeX fragments.

    Templates are stored as {fragment_name}.tex.jinja and use custom delimiters
    to avoid conflicts with LaTeX syntax:
    - Variable: <<< var >>>
    - Block: <%% block %%>
    - Comment: <# comment #>
    """

    def __init__(self, templates_path: Optional[Path] = None):
        """
        Initialize the template registry.

        Args:
            templates_path: Directory holding the fragment templates. Defaults to
                            REPORT_TEMPLATES_PATH from environment, then the
                            templates bundled with the package
        """
        if templates_path is None:
            templates_path = TEMPLATES_PATH

        self.templates_path = Path(templates_path)
        self._cache: Dict[str, Template] = {}

        self.env = Environment(
            loader=FileSystemLoader(str(self.templates_path)),
            # Catches silent failures
            undefined=StrictUndefined,
            # Custom delimiters to avoid LaTeX brace conflicts
            variable_start_string="<<<",
            variable_end_string=">>>",
            block_start_string="<%%",
            block_end_string="%%>",
            comment_start_string="<#",
            comment_end_string="#>",
            # Block tags sit on their own lines; drop the newline they leave behind
            trim_blocks=True,
            lstrip_blocks=False,
            keep_trailing_newline=True,
            autoescape=False,
        )

    def get_template(self, fragment_name: str) -> Template:
        """
        Get a template by fragment name, loading and caching it if necessary.

        Args:
            fragment_name: Name of the fragment (e.g., 'figure_grid')

        Returns:
            Jinja2 Template object

        Raises:
            TemplateNotFound: If template file doesn't exist
        """
        if fragment_name in self._cache:
            return self._cache[fragment_name]

        template_file = f"{fragment_name}.tex.jinja"
        try:
            template = self.env.get_template(template_file)
        except TemplateNotFound as e:
            raise TemplateNotFound(
                f"Template not found for fragment '{fragment_name}' at "
                f"{self.templates_path / template_file}"
            ) from e

        self._cache[fragment_name] = template
        return template

    def get_template_path(self, fragment_name: str) -> Path:
        """Get the file path for a fragment's template."""
        return self.templates_path / f"{fragment_name}.tex.jinja"

    def render(self, fragment_name: str, **context: Any) -> str:
        """
        Render a fragment template with the given context.

        Raises:
            TemplateRenderError: If the template references a missing variable
                                 or otherwise fails to render
        """
        template = self.get_template(fragment_name)
        try:
            return template.render(**context)
        except Exception as e:
            raise TemplateRenderError(
                f"Failed to render fragment '{fragment_name}'",
                fragment_name=fragment_name,
                template_path=self.get_template_path(fragment_name),
                original_error=e,
            ) from e

    def clear_cache(self):
        """Clear the template cache."""
        self._cache.clear()

    def is_cached(self, fragment_name: str) -> bool:
        """Check if a template is in the cache."""
        return fragment_name in self._cache
