"""Runtime objects: templates, template modules, macros and loop state."""

from quire.template.core import Template, TemplateModule
from quire.template.loop_context import LoopContext
from quire.template.macro import Macro

__all__ = ["LoopContext", "Macro", "Template", "TemplateModule"]
