"""
Template Loader

Renders the small shell snippets the installer writes onto the host
(the MOTD banner script and the initramfs console message).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional

from jinja2 import ChoiceLoader, Environment, FileSystemLoader, TemplateNotFound

from mimo_common.exceptions import TemplateNotFoundError

logger = logging.getLogger(__name__)

PACKAGE_TEMPLATES = Path(__file__).parent
SYSTEM_TEMPLATES = Path("/usr/share/mimo/templates")


class TemplateLoader:
    """
    Jinja2 environment over an ordered list of template directories.

    Directories are tried in order and the first one holding a name wins,
    so shipped templates take precedence over /usr/share/mimo/templates
    and caller-supplied directories.
    """

    def __init__(self, extra_dirs: Optional[Iterable[Path]] = None):
        self.search_path: List[Path] = [PACKAGE_TEMPLATES, SYSTEM_TEMPLATES]
        self.search_path.extend(Path(p) for p in extra_dirs or ())

        present = [p for p in self.search_path if p.is_dir()]
        for path in present:
            logger.debug(f"Template directory: {path}")
        self._env = Environment(
            loader=ChoiceLoader([FileSystemLoader(str(p)) for p in present]),
            autoescape=False,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def render(self, name: str, **variables) -> str:
        """
        Render ``name`` with ``variables``.

        Raises:
            TemplateNotFoundError: no search directory holds ``name``.
        """
        try:
            template = self._env.get_template(name)
        except TemplateNotFound:
            raise TemplateNotFoundError(name)
        return template.render(**variables)

    def list_templates(self) -> List[str]:
        """Names of every ``*.j2`` file across the search path."""
        names = {
            f.name
            for path in self.search_path if path.is_dir()
            for f in path.glob("*.j2")
        }
        return sorted(names)
