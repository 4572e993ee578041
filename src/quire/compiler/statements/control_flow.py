"""Control flow statement compilation for Quire compiler.

Provides mixin for compiling control flow statements (if, for, break,
continue).

A ``for`` loop lowers to::

    <iterable>
    PUSH_LOOP scope, loop_slot, recursive_code
    head:
    ITERATE end
    <bind targets>
    <body>
    JUMP head
    end:
    DID_NOT_ITERATE          (only with an else branch)
    POP_FRAME
    POP_JUMP_IF_FALSE skip   (only with an else branch)
    <else body>
    skip:

A filter clause (``for x in xs if x.visible``) first collects the accepted
items into a list, so ``loop.length``, ``loop.last`` and friends only count
items that pass.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from quire.compiler.instructions import Op
from quire.compiler.scopes import Label, LoopTarget

if TYPE_CHECKING:
    from collections.abc import Sequence
    from contextlib import AbstractContextManager

    from quire.compiler.instructions import Code
    from quire.compiler.scopes import CodeBuilder
    from quire.environment.exceptions import TemplateCompileError
    from quire.nodes import Break, Continue, Expr, For, If, Node


class ControlFlowMixin:
    """Mixin for compiling control flow statements.

    Host attributes and cross-mixin dependencies are declared via inline
    TYPE_CHECKING blocks.
    """

    if TYPE_CHECKING:
        _builder: CodeBuilder
        _macros: list[Code | None]

        def _compile_expr(self, node: Expr) -> None: ...
        def _compile_store(self, target: Expr) -> None: ...
        def _compile_body(self, nodes: Sequence[Node]) -> None: ...
        def _compile_error(self, message: str, node: Node) -> TemplateCompileError: ...
        def _new_code(self, name: str) -> AbstractContextManager[CodeBuilder]: ...
        def _reserve_sub_program(self) -> int: ...

    def _compile_if(self, node: If) -> None:
        """Compile {% if %}...{% elif %}...{% else %}...{% endif %}."""
        builder = self._builder
        end = Label()
        branches = [(node.test, node.body), *node.elif_]
        for test, body in branches:
            next_branch = Label()
            builder.lineno = test.lineno
            self._compile_expr(test)
            builder.emit_jump(Op.POP_JUMP_IF_FALSE, next_branch)
            self._compile_body(body)
            builder.emit_jump(Op.JUMP, end)
            builder.place(next_branch)
        self._compile_body(node.else_)
        builder.place(end)

    def _compile_for(self, node: For) -> None:
        """Compile {% for %} loops.

        Recursive loops are compiled into their own sub-program so that
        ``loop(children)`` can re-enter the loop body with a new iterable.
        """
        builder = self._builder
        if not node.recursive:
            self._compile_expr(node.iter)
            self._emit_loop(node, None)
            return

        index = self._reserve_sub_program()
        with self._new_code("<loop>") as loop_code:
            self._emit_loop(node, index)
            self._macros[index] = loop_code.build()
        self._compile_expr(node.iter)
        builder.emit(Op.CALL_LOOP, index)

    def _emit_loop(self, node: For, recursive: int | None) -> None:
        """Emit the loop proper; the iterable is on top of the stack."""
        builder = self._builder
        if node.test is not None:
            self._emit_loop_filter(node.target, node.test)

        scope = builder.new_scope()
        loop_slot = scope.declare("loop")
        builder.emit(Op.PUSH_LOOP, scope.id, loop_slot, recursive)
        builder.enter(scope)

        head, end = Label(), Label()
        builder.place(head)
        builder.emit_jump(Op.ITERATE, end)
        self._compile_store(node.target)

        builder.loops.append(LoopTarget(head, end, len(builder.unwind)))
        self._compile_body(node.body)
        builder.loops.pop()
        builder.emit_jump(Op.JUMP, head)

        builder.place(end)
        builder.leave()
        if not node.else_:
            builder.emit(Op.POP_FRAME)
            return

        skip = Label()
        builder.emit(Op.DID_NOT_ITERATE)
        builder.emit(Op.POP_FRAME)
        builder.emit_jump(Op.POP_JUMP_IF_FALSE, skip)
        self._compile_body(node.else_)
        builder.place(skip)

    def _emit_loop_filter(self, target: Expr, test: Expr) -> None:
        """Replace the iterable on the stack by the list of items passing ``test``."""
        builder = self._builder
        scope = builder.new_scope()
        builder.emit(Op.PUSH_LOOP, scope.id, None, None)
        builder.enter(scope)
        builder.emit(Op.BUILD_LIST, 0)

        head, rejected, end = Label(), Label(), Label()
        builder.place(head)
        builder.emit_jump(Op.ITERATE, end)
        builder.emit(Op.DUP)
        self._compile_store(target)
        self._compile_expr(test)
        builder.emit_jump(Op.POP_JUMP_IF_FALSE, rejected)
        builder.emit(Op.LIST_APPEND)
        builder.emit_jump(Op.JUMP, head)
        builder.place(rejected)
        builder.emit(Op.DISCARD)
        builder.emit_jump(Op.JUMP, head)

        builder.place(end)
        builder.leave()
        builder.emit(Op.POP_FRAME)

    def _innermost_loop(self, node: Node, keyword: str) -> LoopTarget:
        if not self._builder.loops:
            raise self._compile_error(f"'{keyword}' outside of a loop", node)
        return self._builder.loops[-1]

    def _compile_break(self, node: Break) -> None:
        """Compile {% break %}: unwind scopes opened in the body, then exit."""
        loop = self._innermost_loop(node, "break")
        self._builder.emit_unwind(loop.unwind_base)
        self._builder.emit_jump(Op.JUMP, loop.end)

    def _compile_continue(self, node: Continue) -> None:
        """Compile {% continue %}: unwind, then jump back to the loop head."""
        loop = self._innermost_loop(node, "continue")
        self._builder.emit_unwind(loop.unwind_base)
        self._builder.emit_jump(Op.JUMP, loop.head)
