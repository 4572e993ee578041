"""Block-statement parsing mixins."""

from quire.parser.blocks.control_flow import ControlFlowBlockParsingMixin
from quire.parser.blocks.core import BlockStackMixin
from quire.parser.blocks.functions import FunctionBlockParsingMixin
from quire.parser.blocks.special_blocks import SpecialBlockParsingMixin
from quire.parser.blocks.template_structure import TemplateStructureBlockParsingMixin

__all__ = [
    "BlockStackMixin",
    "ControlFlowBlockParsingMixin",
    "FunctionBlockParsingMixin",
    "SpecialBlockParsingMixin",
    "TemplateStructureBlockParsingMixin",
]
