"""Macro compilation for Quire compiler.

Provides mixin for compiling macro definitions and call blocks.

Each macro body becomes an independent ``Code`` in ``Program.macros``.
Parameters occupy the first slots of the macro frame. Defaults are
evaluated in the macro prologue, only for parameters the caller left
unbound::

    IS_BOUND slot
    POP_JUMP_IF_TRUE skip
    <default expression>
    STORE_LOCAL slot
    skip:

The names ``varargs``, ``kwargs`` and ``caller`` get slots only when the
body refers to them; the VM then collects extra arguments into them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from quire.compiler.instructions import Op
from quire.compiler.scopes import Label, referenced_names
from quire.environment.exceptions import ErrorCode

if TYPE_CHECKING:
    from collections.abc import Sequence
    from contextlib import AbstractContextManager

    from quire.compiler.instructions import Code
    from quire.compiler.scopes import CodeBuilder
    from quire.environment.exceptions import TemplateCompileError
    from quire.nodes import CallBlock, Expr, FuncCall, Macro, Node


class FunctionCompilationMixin:
    """Mixin for compiling macros and call blocks."""

    if TYPE_CHECKING:
        _builder: CodeBuilder
        _macros: list[Code | None]

        def _compile_expr(self, node: Expr) -> None: ...
        def _compile_body(self, nodes: Sequence[Node]) -> None: ...
        def _compile_func_call(self, node: FuncCall, caller: int | None = None) -> None: ...
        def _compile_error(self, message: str, node: Node) -> TemplateCompileError: ...
        def _new_code(self, name: str) -> AbstractContextManager[CodeBuilder]: ...
        def _reserve_sub_program(self) -> int: ...

    def _compile_function(
        self,
        node: Node,
        name: str,
        params: Sequence[str],
        defaults: Sequence[Expr],
        kwarg: str | None,
        body: Sequence[Node],
    ) -> int:
        """Compile a macro-like body into a sub-program and return its index."""
        seen: set[str] = set()
        for param in (*params, *([kwarg] if kwarg else [])):
            if param in seen:
                error = self._compile_error(
                    f"Duplicate parameter '{param}' in macro '{name}'", node
                )
                error.code = ErrorCode.INVALID_SIGNATURE
                raise error
            seen.add(param)
        if len(defaults) > len(params):
            raise self._compile_error(f"Too many defaults for macro '{name}'", node)

        index = self._reserve_sub_program()
        used = referenced_names(body) | referenced_names(defaults)
        with self._new_code(f"macro {name}") as code:
            scope = code.scope
            for param in params:
                scope.declare(param)
            catch_all = kwarg or ("kwargs" if "kwargs" in used else None)
            if catch_all:
                scope.declare(catch_all)
            varargs = "varargs" in used and "varargs" not in seen
            if varargs:
                scope.declare("varargs")
            caller_reference = "caller" in used and "caller" not in seen
            if caller_reference:
                scope.declare("caller")

            first_default = len(params) - len(defaults)
            for offset, default in enumerate(defaults):
                skip = Label()
                slot = first_default + offset
                code.emit(Op.IS_BOUND, slot)
                code.emit_jump(Op.POP_JUMP_IF_TRUE, skip)
                self._compile_expr(default)
                code.emit(Op.STORE_LOCAL, slot)
                code.place(skip)

            self._compile_body(body)
            self._macros[index] = code.build(
                params=tuple(params),
                defaults=len(defaults),
                kwargs=catch_all,
                varargs=varargs,
                caller_reference=caller_reference,
            )
        return index

    def _compile_macro(self, node: Macro) -> None:
        """Compile {% macro name(params) %}: bind a callable in the current scope."""
        builder = self._builder
        index = self._compile_function(
            node, node.name, node.params, node.defaults, node.kwarg, node.body
        )
        builder.emit(Op.BUILD_MACRO, index)
        builder.emit(Op.STORE_LOCAL, builder.scope.declare(node.name))

    def _compile_call_block(self, node: CallBlock) -> None:
        """Compile {% call(args) target(...) %}body{% endcall %}.

        The body becomes an anonymous macro passed to the target as
        ``caller``; the target's return value is emitted.
        """
        caller = self._compile_function(node, "caller", node.params, node.defaults, None, node.body)
        self._compile_func_call(node.call, caller)
        self._builder.emit(Op.EMIT)
