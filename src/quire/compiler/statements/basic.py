"""Basic statement compilation for Quire compiler.

Provides mixin for compiling raw text, output and ``do`` statements.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from quire.compiler.instructions import Op

if TYPE_CHECKING:
    from quire.compiler.scopes import CodeBuilder
    from quire.nodes import Data, Do, Expr, Output


class BasicStatementMixin:
    """Mixin for compiling basic output statements."""

    if TYPE_CHECKING:
        _builder: CodeBuilder

        def _compile_expr(self, node: Expr) -> None: ...

    def _compile_data(self, node: Data) -> None:
        """Emit raw text verbatim."""
        if node.value:
            builder = self._builder
            builder.emit(Op.EMIT_RAW, builder.constants.add(node.value))

    def _compile_output(self, node: Output) -> None:
        """Emit {{ expr }}, escaped for the active autoescape mode."""
        self._compile_expr(node.expr)
        self._builder.emit(Op.EMIT)

    def _compile_do(self, node: Do) -> None:
        self._compile_expr(node.expr)
        self._builder.emit(Op.DISCARD)
