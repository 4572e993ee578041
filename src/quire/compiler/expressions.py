"""Expression compilation for Quire compiler.

Provides mixin for lowering expression nodes to stack instructions. Every
expression leaves exactly one value on the operand stack.

Uses inline TYPE_CHECKING declarations for host attributes.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import TYPE_CHECKING, Any

from quire.compiler.instructions import Op
from quire.compiler.scopes import Label
from quire.nodes import Const, Getattr, Name, Slice, Tuple

if TYPE_CHECKING:
    from quire.compiler.scopes import CodeBuilder
    from quire.environment.exceptions import TemplateCompileError
    from quire.nodes import (
        BinOp,
        BoolOp,
        Compare,
        CondExpr,
        Dict,
        Expr,
        Filter,
        FilterStep,
        FuncCall,
        Getitem,
        List,
        Node,
        Test,
        UnaryOp,
    )


class ExpressionCompilationMixin:
    """Mixin for compiling expressions.

    Host attributes and cross-mixin dependencies are declared via inline
    TYPE_CHECKING blocks.
    """

    if TYPE_CHECKING:
        _builder: CodeBuilder

        def _compile_error(self, message: str, node: Node) -> TemplateCompileError: ...

    _EXPR_HANDLERS: dict[str, str] = {
        "Const": "_compile_const",
        "Name": "_compile_name",
        "Tuple": "_compile_tuple",
        "List": "_compile_list",
        "Dict": "_compile_dict",
        "Getattr": "_compile_getattr",
        "Getitem": "_compile_getitem",
        "FuncCall": "_compile_func_call",
        "Filter": "_compile_filter",
        "Test": "_compile_test",
        "BinOp": "_compile_binop",
        "UnaryOp": "_compile_unaryop",
        "Compare": "_compile_compare",
        "BoolOp": "_compile_boolop",
        "CondExpr": "_compile_condexpr",
    }

    def _compile_expr(self, node: Expr) -> None:
        """Emit code leaving the value of ``node`` on the stack."""
        handler_name = self._EXPR_HANDLERS.get(type(node).__name__)
        if handler_name is None:
            raise self._compile_error(f"Unexpected {type(node).__name__} in expression", node)
        builder = self._builder
        outer_line = builder.lineno
        builder.lineno = node.lineno
        handler: Callable[[Any], None] = getattr(self, handler_name)
        handler(node)
        builder.lineno = outer_line

    def _compile_optional(self, node: Expr | None) -> None:
        if node is None:
            self._builder.emit_const(None)
        else:
            self._compile_expr(node)

    def _compile_arguments(
        self, args: Sequence[Expr], kwargs: Mapping[str, Expr]
    ) -> tuple[int, tuple[str, ...]]:
        for arg in args:
            self._compile_expr(arg)
        for value in kwargs.values():
            self._compile_expr(value)
        return len(args), tuple(kwargs)

    # ─────────────────────────────────────────────────────────────────────
    # Atoms
    # ─────────────────────────────────────────────────────────────────────

    def _compile_const(self, node: Const) -> None:
        self._builder.emit_const(node.value)

    def _compile_name(self, node: Name) -> None:
        builder = self._builder
        location = builder.resolve(node.name)
        if location is None:
            builder.emit(Op.LOAD_NAME, node.name)
        else:
            depth, slot = location
            builder.emit(Op.LOAD_LOCAL, depth, slot, node.name)

    def _compile_tuple(self, node: Tuple) -> None:
        for item in node.items:
            self._compile_expr(item)
        self._builder.emit(Op.BUILD_LIST, len(node.items), True)

    def _compile_list(self, node: List) -> None:
        for item in node.items:
            self._compile_expr(item)
        self._builder.emit(Op.BUILD_LIST, len(node.items))

    def _compile_dict(self, node: Dict) -> None:
        for key, value in zip(node.keys, node.values, strict=True):
            self._compile_expr(key)
            self._compile_expr(value)
        self._builder.emit(Op.BUILD_MAP, len(node.keys))

    # ─────────────────────────────────────────────────────────────────────
    # Access
    # ─────────────────────────────────────────────────────────────────────

    def _compile_getattr(self, node: Getattr) -> None:
        self._compile_expr(node.obj)
        self._builder.emit(Op.GET_ATTR, node.attr, _dotted(node.obj))

    def _compile_getitem(self, node: Getitem) -> None:
        self._compile_expr(node.obj)
        key = node.key
        if isinstance(key, Slice):
            self._compile_optional(key.start)
            self._compile_optional(key.stop)
            self._compile_optional(key.step)
            self._builder.emit(Op.SLICE)
        else:
            self._compile_expr(key)
            self._builder.emit(Op.GET_ITEM, _dotted(node.obj))

    # ─────────────────────────────────────────────────────────────────────
    # Calls, filters and tests
    # ─────────────────────────────────────────────────────────────────────

    def _compile_func_call(self, node: FuncCall, caller: int | None = None) -> None:
        """Compile ``func(args)``; ``caller`` is a sub-program passed as ``caller=``."""
        builder = self._builder
        func = node.func
        by_name = isinstance(func, Name) and builder.resolve(func.name) is None
        if not by_name:
            self._compile_expr(func)
        argc, kwnames = self._compile_arguments(node.args, node.kwargs)
        if caller is not None:
            builder.emit(Op.BUILD_MACRO, caller)
            kwnames = (*kwnames, "caller")
        if by_name:
            assert isinstance(func, Name)
            builder.emit(Op.CALL_NAME, func.name, argc, kwnames)
        else:
            builder.emit(Op.CALL, argc, kwnames)

    def _compile_filter_step(self, step: FilterStep) -> None:
        """Apply one filter to the value on top of the stack."""
        name, args, kwargs = step
        argc, kwnames = self._compile_arguments(args, kwargs)
        self._builder.emit(Op.APPLY_FILTER, name, argc, kwnames)

    def _compile_filter(self, node: Filter) -> None:
        self._compile_expr(node.value)
        self._compile_filter_step((node.name, node.args, node.kwargs))

    def _compile_test(self, node: Test) -> None:
        self._compile_expr(node.value)
        argc, kwnames = self._compile_arguments(node.args, node.kwargs)
        self._builder.emit(Op.PERFORM_TEST, node.name, argc, kwnames)
        if node.negated:
            self._builder.emit(Op.UNARY_NOT)

    # ─────────────────────────────────────────────────────────────────────
    # Operators
    # ─────────────────────────────────────────────────────────────────────

    def _compile_binop(self, node: BinOp) -> None:
        self._compile_expr(node.left)
        self._compile_expr(node.right)
        if node.op == "~":
            self._builder.emit(Op.CONCAT)
        else:
            self._builder.emit(Op.BINARY_OP, node.op)

    def _compile_unaryop(self, node: UnaryOp) -> None:
        self._compile_expr(node.operand)
        if node.op == "not":
            self._builder.emit(Op.UNARY_NOT)
        else:
            self._builder.emit(Op.UNARY_OP, node.op)

    def _compile_compare(self, node: Compare) -> None:
        self._compile_expr(node.left)
        for operand in node.comparators:
            self._compile_expr(operand)
        self._builder.emit(Op.COMPARE, tuple(node.ops))

    def _compile_boolop(self, node: BoolOp) -> None:
        """``and``/``or`` short-circuit and yield the deciding operand."""
        builder = self._builder
        jump = Op.JUMP_IF_FALSE_OR_POP if node.op == "and" else Op.JUMP_IF_TRUE_OR_POP
        end = Label()
        *head, last = node.values
        for value in head:
            self._compile_expr(value)
            builder.emit_jump(jump, end)
        self._compile_expr(last)
        builder.place(end)

    def _compile_condexpr(self, node: CondExpr) -> None:
        builder = self._builder
        otherwise, end = Label(), Label()
        self._compile_expr(node.test)
        builder.emit_jump(Op.POP_JUMP_IF_FALSE, otherwise)
        self._compile_expr(node.if_true)
        builder.emit_jump(Op.JUMP, end)
        builder.place(otherwise)
        if node.if_false is None:
            builder.emit_const("")
        else:
            self._compile_expr(node.if_false)
        builder.place(end)

    # ─────────────────────────────────────────────────────────────────────
    # Assignment targets
    # ─────────────────────────────────────────────────────────────────────

    def _compile_store(self, target: Expr) -> None:
        """Pop the top of the stack into ``target`` in the current scope."""
        builder = self._builder
        if isinstance(target, Name):
            builder.emit(Op.STORE_LOCAL, builder.scope.declare(target.name))
        elif isinstance(target, Tuple):
            builder.emit(Op.UNPACK, len(target.items))
            for item in target.items:
                self._compile_store(item)
        elif isinstance(target, Getattr):
            self._compile_expr(target.obj)
            builder.emit(Op.SET_ATTR, target.attr)
        else:
            raise self._compile_error(
                f"Cannot assign to {type(target).__name__} expression", target
            )


def _dotted(node: Expr) -> str | None:
    """``user.address`` for plain attribute chains, used to name undefined values."""
    if isinstance(node, Name):
        return node.name
    if isinstance(node, Getattr):
        base = _dotted(node.obj)
        return None if base is None else f"{base}.{node.attr}"
    return None
