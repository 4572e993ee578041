"""Quire bytecode compiler.

Lowers the AST from ``quire.parser`` into a ``Program`` for ``quire.vm``.
"""

from quire.compiler.core import Compiler
from quire.compiler.instructions import Code, Instruction, Op, Program

__all__ = ["Code", "Compiler", "Instruction", "Op", "Program"]
