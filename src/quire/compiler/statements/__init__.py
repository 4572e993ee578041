"""Statement compilation for Quire compiler.

Provides mixins for compiling Quire statement AST nodes to instructions.

The statements package is organized into logical modules:
- basic: Basic output (data, output, do)
- control_flow: Control flow (if, for, break, continue)
- variables: Variable assignments (set, set block, with)
- template_structure: Template structure (block, extends, include, import)
- functions: Macros and call blocks
- special_blocks: Filter blocks and autoescape

Uses inline TYPE_CHECKING declarations for host attributes.
"""

from __future__ import annotations

from quire.compiler.statements.basic import BasicStatementMixin
from quire.compiler.statements.control_flow import ControlFlowMixin
from quire.compiler.statements.functions import FunctionCompilationMixin
from quire.compiler.statements.special_blocks import SpecialBlockMixin
from quire.compiler.statements.template_structure import TemplateStructureMixin
from quire.compiler.statements.variables import VariableAssignmentMixin


class StatementCompilationMixin(
    BasicStatementMixin,
    ControlFlowMixin,
    VariableAssignmentMixin,
    TemplateStructureMixin,
    FunctionCompilationMixin,
    SpecialBlockMixin,
):
    """Combined mixin for compiling all statement types.

    This class combines all statement compilation mixins into a single
    interface that can be inherited by the Compiler class.

    Host attributes and cross-mixin dependencies are declared via inline
    TYPE_CHECKING blocks in each individual mixin.
    """
