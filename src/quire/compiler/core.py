"""Quire compiler core: the main Compiler class.

The Compiler lowers a Quire AST into a ``Program``: flat instruction
streams with back-patched jumps, a deduplicated constant pool and a line
table, executed by ``quire.vm``. Uses a mixin-based design for
maintainability.

Design Principles:
1. **Flat code**: loops and conditionals become jumps, so AST depth never
   turns into host stack depth at render time
2. **Slots, not dicts**: statically bound names get ``(depth, slot)``
   addresses; everything else is a dynamic ``LOAD_NAME``
3. **Late binding**: filters, tests, parents and includes are resolved by
   name when the instruction runs
4. **O(1) dispatch**: dict-based node type → handler lookup

Block Inheritance:
Each ``{% block %}`` body becomes its own ``Code`` in ``Program.blocks``
and the place where it appears emits ``CALL_BLOCK name``. The VM decides
at render time which override in the extends chain actually runs.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from quire.compiler.expressions import ExpressionCompilationMixin
from quire.compiler.instructions import Code, Program
from quire.compiler.scopes import CodeBuilder, ConstantPool
from quire.compiler.statements import StatementCompilationMixin
from quire.environment.exceptions import TemplateCompileError
from quire.nodes import Const, Node

if TYPE_CHECKING:
    from quire.nodes import Template as TemplateNode

logger = logging.getLogger(__name__)


class Compiler(
    ExpressionCompilationMixin,
    StatementCompilationMixin,
):
    """Compile a Quire Template AST into a ``Program``.

    Attributes:
        _name: Template name for error messages
        _constants: Constant pool shared by every code object
        _builder: Builder for the code object currently being emitted
        _blocks: Compiled block bodies by name
        _macros: Sub-programs (macros, call bodies, recursive loops)

    Node Dispatch:
        Uses O(1) dict lookup for node type → handler:
            ```python
            handler = self._node_dispatch[type(node).__name__]
            ```

    Example:
            >>> from quire.compiler import Compiler
            >>> from quire.lexer import tokenize
            >>> from quire.parser import Parser
            >>>
            >>> ast = Parser(tokenize("Hello, {{ name }}!")).parse()
            >>> program = Compiler().compile(ast, name="greeting.html")
            >>> print(program.root.disassemble())
            <code greeting.html>
                1     0  EMIT_RAW(0)
                1     1  LOAD_NAME('name')
                1     2  EMIT()
                1     3  EMIT_RAW(1)
                1     4  RETURN()
    """

    __slots__ = (
        "_blocks",
        "_builder",
        "_constants",
        "_macros",
        "_name",
        "_node_dispatch",
    )

    def __init__(self) -> None:
        self._name = "<template>"
        self._constants = ConstantPool()
        self._builder = CodeBuilder(self._name, self._constants)
        self._blocks: dict[str, Code] = {}
        self._macros: list[Code | None] = []
        self._node_dispatch: dict[str, Callable[[Any], None]] = {
            "Data": self._compile_data,
            "Output": self._compile_output,
            "If": self._compile_if,
            "For": self._compile_for,
            "Break": self._compile_break,
            "Continue": self._compile_continue,
            "Set": self._compile_set,
            "SetBlock": self._compile_set_block,
            "With": self._compile_with,
            "Do": self._compile_do,
            "Block": self._compile_block,
            "Extends": self._compile_extends,
            "Include": self._compile_include,
            "Import": self._compile_import,
            "FromImport": self._compile_from_import,
            "Macro": self._compile_macro,
            "CallBlock": self._compile_call_block,
            "FilterBlock": self._compile_filter_block,
            "Autoescape": self._compile_autoescape,
        }

    def compile(self, node: TemplateNode, name: str | None = None) -> Program:
        """Compile template AST to a Program.

        Args:
            node: Root Template node
            name: Template name for error messages

        Returns:
            Immutable Program ready for ``quire.vm.Vm``

        Raises:
            TemplateCompileError: Invalid assignment target or macro signature
        """
        self._name = name or "<template>"
        self._constants = ConstantPool()
        self._builder = CodeBuilder(self._name, self._constants)
        self._blocks = {}
        self._macros = []

        self._compile_body(node.body)
        root = self._builder.build()

        parent: str | None = None
        if node.extends is not None and isinstance(node.extends.template, Const):
            value = node.extends.template.value
            parent = value if isinstance(value, str) else None

        macros = tuple(code for code in self._macros if code is not None)
        assert len(macros) == len(self._macros)
        program = Program(
            name=self._name,
            constants=tuple(self._constants.values),
            root=root,
            blocks=dict(self._blocks),
            macros=macros,
            parent=parent,
        )
        logger.debug(
            "compiled %s: %d instructions, %d blocks, %d sub-programs",
            self._name,
            len(root.instructions),
            len(program.blocks),
            len(macros),
        )
        return program

    def _compile_node(self, node: Node) -> None:
        handler = self._node_dispatch.get(type(node).__name__)
        if handler is None:
            raise TemplateCompileError(
                f"Cannot compile {type(node).__name__} node",
                template_name=self._name,
                lineno=node.lineno,
            )
        self._builder.lineno = node.lineno
        handler(node)

    def _compile_body(self, nodes: Sequence[Node]) -> None:
        for child in nodes:
            self._compile_node(child)

    @contextmanager
    def _new_code(self, name: str) -> Iterator[CodeBuilder]:
        """Emit into a fresh code object until the block exits."""
        outer = self._builder
        self._builder = CodeBuilder(name, self._constants)
        self._builder.lineno = outer.lineno
        try:
            yield self._builder
        finally:
            self._builder = outer

    def _reserve_sub_program(self) -> int:
        self._macros.append(None)
        return len(self._macros) - 1

    def _compile_error(self, message: str, node: Node) -> TemplateCompileError:
        return TemplateCompileError(message, template_name=self._name, lineno=node.lineno)
