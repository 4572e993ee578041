"""Special block compilation for Quire compiler.

Provides mixin for compiling filter blocks and autoescape overrides.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from quire.compiler.instructions import Op

if TYPE_CHECKING:
    from collections.abc import Sequence

    from quire.compiler.scopes import CodeBuilder
    from quire.nodes import Autoescape, Expr, FilterBlock, FilterStep, Node


class SpecialBlockMixin:
    """Mixin for compiling output-shaping blocks."""

    if TYPE_CHECKING:
        _builder: CodeBuilder

        def _compile_expr(self, node: Expr) -> None: ...
        def _compile_body(self, nodes: Sequence[Node]) -> None: ...
        def _compile_captured(
            self, body: Sequence[Node], filters: Sequence[FilterStep]
        ) -> None: ...

    def _compile_filter_block(self, node: FilterBlock) -> None:
        """Compile {% filter upper %}...{% endfilter %}.

        The body is captured, run through the filter chain and emitted.
        """
        self._compile_captured(node.body, node.filters)
        self._builder.emit(Op.EMIT)

    def _compile_autoescape(self, node: Autoescape) -> None:
        """Compile {% autoescape mode %}...{% endautoescape %}."""
        builder = self._builder
        self._compile_expr(node.mode)
        builder.emit(Op.PUSH_AUTOESCAPE)
        builder.unwind.append(Op.PUSH_AUTOESCAPE)
        self._compile_body(node.body)
        builder.unwind.pop()
        builder.emit(Op.POP_AUTOESCAPE)
