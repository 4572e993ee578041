"""Utility helpers shared across Quire modules."""

from quire.utils.decorators import accepts_undefined, pass_state
from quire.utils.html import Markup, html_escape

__all__ = ["Markup", "accepts_undefined", "html_escape", "pass_state"]
