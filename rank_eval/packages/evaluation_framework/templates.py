"""
Query template resolution.

Templates live in a base folder. A subfolder named after a version overrides
the base folder for that version, and the token ${version} inside a template
name is replaced with the version being evaluated.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

VERSION_PLACEHOLDER = "${version}"


class TemplateNotFoundError(FileNotFoundError):
    """No template name was supplied, or the template file cannot be read."""


class FileQueryTemplateManager:
    """Reads query templates from the templates folder on every call."""

    def __init__(self, templates_folder: str):
        """Initialize the manager with the templates folder."""
        self.templates_folder = Path(templates_folder)
        if not self.templates_folder.is_dir() or not os.access(self.templates_folder, os.R_OK):
            raise ValueError(
                f"Unable to read from query template directory {self.templates_folder.absolute()}")
        logger.info(f"Using query templates from {self.templates_folder}")

    def resolve(self, default_template: Optional[str], template: Optional[str], version: str) -> str:
        """Content of the template to use for a query and version."""
        return self._read_template_content(self.get_template_file(default_template, template, version))

    def get_template_file(self, default_template: Optional[str], template: Optional[str],
                          version: str) -> Path:
        """Path of the template, the query-level name taking precedence over the group default."""
        template_name = template if template is not None else default_template
        if template_name is None:
            raise TemplateNotFoundError("No template name supplied!")

        template_name = template_name.replace(VERSION_PLACEHOLDER, version)
        return self._versioned_template_folder(version) / template_name

    def _versioned_template_folder(self, version: str) -> Path:
        versioned_folder = self.templates_folder / version
        if versioned_folder.is_dir() and os.access(versioned_folder, os.R_OK):
            return versioned_folder
        return self.templates_folder

    def _read_template_content(self, path: Path) -> str:
        try:
            return path.read_text(encoding='utf-8')
        except OSError as e:
            logger.error(f"Unable to read query template {path}: {e}")
            raise TemplateNotFoundError(f"Unable to read query template {path}") from e


class CachingQueryTemplateManager(FileQueryTemplateManager):
    """Template manager that reads each resolved template file once."""

    def __init__(self, templates_folder: str):
        super().__init__(templates_folder)
        # Resolved absolute path -> content. Concurrent misses may read the same
        # file twice; both readers store identical content.
        self._templates: Dict[Path, str] = {}

    def resolve(self, default_template: Optional[str], template: Optional[str], version: str) -> str:
        path = self.get_template_file(default_template, template, version).resolve()
        content = self._templates.get(path)
        if content is None:
            logger.debug(f"Template cache miss for {path}")
            content = self._templates.setdefault(path, self._read_template_content(path))
        return content


def substitute_placeholders(template: str, placeholders: Dict[str, Any]) -> str:
    """Replace every placeholder name found in the template, in the given order."""
    query = template
    for name, value in placeholders.items():
        # Non-string values are rendered as JSON text (true, null, 1.5)
        text = value if isinstance(value, str) else json.dumps(value)
        query = query.replace(name, text)
    return query
