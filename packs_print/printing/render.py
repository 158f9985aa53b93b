"""
Label template rendering.

Templates are Jinja2 files stored as ``<templates_dir>/<media>/<name>.epl``.
Rendering is a pure step: template name + field data -> printer payload bytes.
Compiled templates are cached by the Jinja2 environment.
"""

from __future__ import annotations

import logging
import os
from typing import Any, List, Mapping, Optional

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError, TemplateNotFound

from .errors import RenderError

logger = logging.getLogger(__name__)

TEMPLATE_EXT = ".epl"


class TemplateRenderer:
    def __init__(self, templates_dir: str, media: str = "2x1", encoding: str = "latin-1") -> None:
        self.templates_dir = str(templates_dir)
        self.media = media
        self.encoding = encoding
        self.env = Environment(
            loader=FileSystemLoader(os.path.join(self.templates_dir, media)),
            undefined=StrictUndefined,
            autoescape=False,
            # EPL commands are newline terminated, including the final P command.
            keep_trailing_newline=True,
        )

    def list_templates(self) -> List[str]:
        names = self.env.list_templates(extensions=[TEMPLATE_EXT.lstrip(".")])
        return sorted(n[: -len(TEMPLATE_EXT)] for n in names)

    def render(self, template: str, data: Optional[Mapping[str, Any]] = None) -> bytes:
        """
        Render ``template`` with ``data`` and encode it for the device.

        Raises:
            RenderError: unknown template, missing field, or empty output
        """
        name = f"{template}{TEMPLATE_EXT}"
        try:
            compiled = self.env.get_template(name)
            text = compiled.render(dict(data or {}))
        except TemplateNotFound as e:
            raise RenderError(template, f"template not found for media {self.media}") from e
        except TemplateError as e:
            raise RenderError(template, str(e)) from e
        except Exception as e:
            raise RenderError(template, f"{type(e).__name__}: {e}") from e

        try:
            payload = text.encode(self.encoding)
        except (UnicodeEncodeError, LookupError) as e:
            raise RenderError(template, f"cannot encode output as {self.encoding}: {e}") from e

        if not payload.strip():
            raise RenderError(template, "template rendered to empty data")
        logger.debug("Rendered %s (%d bytes)", template, len(payload))
        return payload

    def clear_cache(self) -> None:
        if self.env.cache is not None:
            self.env.cache.clear()
        logger.info("Template cache cleared")


__all__ = ["TEMPLATE_EXT", "TemplateRenderer"]
