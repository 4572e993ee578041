"""Template structure compilation for Quire compiler.

Provides mixin for compiling block, extends, include, import and
from-import statements. Everything that names another template is
resolved by the VM at render time.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from quire.compiler.instructions import Op

if TYPE_CHECKING:
    from collections.abc import Sequence
    from contextlib import AbstractContextManager

    from quire.compiler.instructions import Code
    from quire.compiler.scopes import CodeBuilder
    from quire.nodes import Block, Expr, Extends, FromImport, Import, Include, Node


class TemplateStructureMixin:
    """Mixin for compiling template structure statements."""

    if TYPE_CHECKING:
        _builder: CodeBuilder
        _blocks: dict[str, Code]

        def _compile_expr(self, node: Expr) -> None: ...
        def _compile_body(self, nodes: Sequence[Node]) -> None: ...
        def _new_code(self, name: str) -> AbstractContextManager[CodeBuilder]: ...

    def _compile_block(self, node: Block) -> None:
        """Compile {% block name %}: register the body and render it in place.

        ``CALL_BLOCK`` renders the most-derived override of the block, so a
        template without a child still renders its own body.
        """
        with self._new_code(f"block {node.name}") as block_code:
            self._compile_body(node.body)
            self._blocks[node.name] = block_code.build()
        self._builder.emit(Op.CALL_BLOCK, node.name, node.scoped)

    def _compile_extends(self, node: Extends) -> None:
        """Compile {% extends expr %}; the parent is loaded at render time."""
        self._compile_expr(node.template)
        self._builder.emit(Op.EXTENDS)

    def _compile_include(self, node: Include) -> None:
        """Compile {% include expr [ignore missing] [with|without context] %}."""
        self._compile_expr(node.template)
        self._builder.emit(Op.INCLUDE, node.ignore_missing, node.with_context)

    def _compile_import(self, node: Import) -> None:
        """Compile {% import expr as name %}."""
        builder = self._builder
        self._compile_expr(node.template)
        builder.emit(Op.IMPORT, node.with_context)
        builder.emit(Op.STORE_LOCAL, builder.scope.declare(node.target))

    def _compile_from_import(self, node: FromImport) -> None:
        """Compile {% from expr import a, b as c %}."""
        builder = self._builder
        self._compile_expr(node.template)
        builder.emit(Op.IMPORT, node.with_context)
        for name, alias in node.names:
            builder.emit(Op.DUP)
            builder.emit(Op.IMPORT_NAME, name)
            builder.emit(Op.STORE_LOCAL, builder.scope.declare(alias or name))
        builder.emit(Op.DISCARD)
