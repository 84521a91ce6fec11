"""``{{var}}`` substitution against the execution context."""

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from litestar_automations.core.context import ExecutionContext

__all__ = ["render", "render_value"]

_PLACEHOLDER = re.compile(r"\{\{\s*([\w.\-]+)\s*\}\}")


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def render(template: str, context: ExecutionContext) -> str:
    """Replace every ``{{key}}`` in ``template`` with the context value of ``key``.

    Dotted keys resolve through nested values. Unknown keys render as empty text.

    Example:
        >>> render("Hi {{contact.name}}!", ExecutionContext({"contact": {"name": "Ada"}}))
        'Hi Ada!'
    """
    return _PLACEHOLDER.sub(lambda match: _to_text(context.get(match.group(1))), template)


def render_value(value: Any, context: ExecutionContext) -> Any:
    """Render every string leaf of a nested value.

    A string made of a single placeholder keeps the type of the value it refers to.
    """
    if isinstance(value, str):
        whole = _PLACEHOLDER.fullmatch(value.strip())
        if whole is not None:
            return context.get(whole.group(1))
        return render(value, context)
    if isinstance(value, dict):
        return {key: render_value(item, context) for key, item in value.items()}
    if isinstance(value, list):
        return [render_value(item, context) for item in value]
    return value
