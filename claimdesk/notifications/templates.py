"""
Telegram and inbox message templates.

messages.yaml maps a message type (status_changed, itinerary_stage, ...) to
its parts: the Telegram body plus the inbox title and text written into
Settings. Bodies are Telegram HTML, so user-supplied values are escaped
before substitution.
"""

import html
from pathlib import Path

import yaml


_templates: dict | None = None


def load_templates() -> dict:
    """Parse messages.yaml once and cache it for the life of the process."""
    global _templates
    if _templates is None:
        yaml_path = Path(__file__).parent / "messages.yaml"
        with open(yaml_path, encoding="utf-8") as f:
            _templates = yaml.safe_load(f)
    return _templates


def escape_context(context: dict) -> dict:
    return {
        key: html.escape(value, quote=False) if isinstance(value, str) else value
        for key, value in context.items()
    }


def render_message(template: str, context: dict) -> str:
    """
    Substitute {placeholders} in a template.

    Raises:
        KeyError: a placeholder has no value in context
    """
    return template.format(**context)


def get_message(
    message_type: str,
    part: str,
    context: dict | None = None,
    escape: bool = True,
) -> str:
    """
    Render one part of a message type.

    Args:
        message_type: Top-level key in messages.yaml, e.g. "status_changed"
        part: "telegram", "inbox_title", "inbox_message", "header", ...
        context: Placeholder values
        escape: HTML-escape string values; pass False for inbox text,
            which the client renders as plain text

    Returns:
        Rendered text
    """
    template = load_templates()[message_type][part]
    context = context or {}
    if escape:
        context = escape_context(context)
    return render_message(template, context)
