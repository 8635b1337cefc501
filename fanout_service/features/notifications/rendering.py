"""Jinja2 rendering of notification messages."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from jinja2 import Template, TemplateError
from jinja2.sandbox import SandboxedEnvironment

from fanout_service.core.exceptions import RenderError
from fanout_service.infra.logging import get_lazy_logger


@dataclass(frozen=True, slots=True)
class RenderedMessage:
    """Channel-neutral text of one notification.

    Attributes:
        title: Short line (email subject, push title)
        body: Plain text body
        url: Link to the item, if the type has one
        data: Structured payload for machine channels (websocket)
    """

    title: str
    body: str = ""
    url: str | None = None
    data: dict[str, Any] = field(default_factory=dict)


class MessageRenderer:
    """Renders type templates in a sandboxed Jinja2 environment.

    Templates are plain text (no autoescape); HTML channels escape on their
    side. Compiled templates are cached by source string.
    """

    def __init__(self) -> None:
        self._env = SandboxedEnvironment(autoescape=False, trim_blocks=True, lstrip_blocks=True)
        self._env.filters["json"] = json.dumps
        self._compiled: dict[str, Template] = {}
        self._lazy = get_lazy_logger(__name__)

    def render(
        self,
        type_id: str,
        *,
        title: str,
        body: str,
        url: str | None,
        context: dict[str, Any],
        data: dict[str, Any] | None = None,
    ) -> RenderedMessage:
        """Render the title, body and url templates of a type.

        Raises:
            RenderError: A template failed to compile or evaluate.
        """
        try:
            message = RenderedMessage(
                title=self._render_string(title, context).strip(),
                body=self._render_string(body, context),
                url=self._render_string(url, context).strip() if url else None,
                data=data or {},
            )
        except TemplateError as exc:
            msg = f"Failed to render {type_id!r} notification: {exc}"
            raise RenderError(type_id, msg) from exc

        self._lazy.debug(lambda: f"Rendered {type_id} notification: {message.title!r}")
        return message

    def _render_string(self, source: str, context: dict[str, Any]) -> str:
        template = self._compiled.get(source)
        if template is None:
            template = self._compiled[source] = self._env.from_string(source)
        return template.render(**context)


_renderer: MessageRenderer | None = None


def get_message_renderer() -> MessageRenderer:
    """Get MessageRenderer singleton instance."""
    global _renderer
    if _renderer is None:
        _renderer = MessageRenderer()
    return _renderer
