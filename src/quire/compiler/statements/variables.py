"""Variable assignment compilation for Quire compiler.

Provides mixin for compiling ``set``, block ``set`` and ``with``.

Assignments bind in the innermost scope: a ``set`` inside a loop body is
gone after the iteration, which is why ``namespace()`` attribute
assignment exists.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from quire.compiler.instructions import Op

if TYPE_CHECKING:
    from collections.abc import Sequence

    from quire.compiler.scopes import CodeBuilder
    from quire.nodes import Expr, FilterStep, Node, Set, SetBlock, With


class VariableAssignmentMixin:
    """Mixin for compiling variable assignments."""

    if TYPE_CHECKING:
        _builder: CodeBuilder

        def _compile_expr(self, node: Expr) -> None: ...
        def _compile_store(self, target: Expr) -> None: ...
        def _compile_body(self, nodes: Sequence[Node]) -> None: ...
        def _compile_filter_step(self, step: FilterStep) -> None: ...

    def _compile_set(self, node: Set) -> None:
        """Compile {% set x = expr %} (also tuple and namespace targets)."""
        self._compile_expr(node.value)
        self._compile_store(node.target)

    def _compile_captured(self, body: Sequence[Node], filters: Sequence[FilterStep]) -> None:
        """Render ``body`` into a value on the stack, then apply ``filters``."""
        builder = self._builder
        builder.emit(Op.BEGIN_CAPTURE)
        builder.unwind.append(Op.BEGIN_CAPTURE)
        self._compile_body(body)
        builder.unwind.pop()
        builder.emit(Op.END_CAPTURE)
        for step in filters:
            self._compile_filter_step(step)

    def _compile_set_block(self, node: SetBlock) -> None:
        """Compile {% set x | filter %}...{% endset %}."""
        self._compile_captured(node.body, node.filters)
        self._compile_store(node.target)

    def _compile_with(self, node: With) -> None:
        """Compile {% with a = 1, b = x %}...{% endwith %}.

        Values are evaluated in the enclosing scope, then bound in a fresh
        one that ends with the block.
        """
        builder = self._builder
        for _, value in node.targets:
            self._compile_expr(value)

        scope = builder.new_scope()
        builder.emit(Op.PUSH_FRAME, scope.id)
        builder.unwind.append(Op.PUSH_FRAME)
        builder.enter(scope)
        for target, _ in reversed(node.targets):
            self._compile_store(target)
        self._compile_body(node.body)
        builder.leave()
        builder.unwind.pop()
        builder.emit(Op.POP_FRAME)
