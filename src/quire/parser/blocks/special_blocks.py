"""Special block parsing for Quire parser.

Provides mixin for parsing set, with, filter, autoescape and do.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from quire._types import TokenType
from quire.nodes import Autoescape, Do, FilterBlock, Set, SetBlock, With
from quire.parser.blocks.core import BlockStackMixin

if TYPE_CHECKING:
    from quire.nodes import Expr, FilterStep, Node


class SpecialBlockParsingMixin(BlockStackMixin):
    """Mixin for parsing assignment and output-shaping blocks."""

    if TYPE_CHECKING:

        def _match(self, *types: TokenType) -> bool: ...
        def _parse_body(self) -> list[Node]: ...
        def _parse_expression(self, with_condexpr: bool = True) -> Expr: ...
        def _parse_filter_chain(self) -> list[FilterStep]: ...
        def _parse_assign_target(
            self, *, allow_attr: bool = False, allow_tuple: bool = True
        ) -> Expr: ...

    def _parse_set(self) -> Set | SetBlock:
        """Parse {% set x = expr %} or {% set x [| filters] %}...{% endset %}."""
        start = self._advance()  # consume 'set'
        target = self._parse_assign_target(allow_attr=True)

        if self._match(TokenType.ASSIGN):
            self._advance()
            value = self._parse_expression()
            self._expect(TokenType.BLOCK_END)
            return Set(lineno=start.lineno, col_offset=start.col_offset, target=target, value=value)

        filters: list[FilterStep] = []
        if self._match(TokenType.PIPE):
            self._advance()
            filters = self._parse_filter_chain()
        if not self._match(TokenType.BLOCK_END):
            raise self._error(
                "Expected '=' or end of block in 'set'",
                suggestion="Use {% set x = value %} or {% set x %}...{% endset %}",
            )
        self._push_block("set", start)
        self._advance()  # consume '%}'
        body = self._parse_body()
        self._consume_end_tag("set")
        return SetBlock(
            lineno=start.lineno,
            col_offset=start.col_offset,
            target=target,
            body=tuple(body),
            filters=tuple(filters),
        )

    def _parse_with(self) -> With:
        """Parse {% with a = 1, b = other %}...{% endwith %}."""
        start = self._advance()  # consume 'with'
        self._push_block("with", start)

        targets: list[tuple[Expr, Expr]] = []
        while not self._match(TokenType.BLOCK_END):
            if targets:
                self._expect(TokenType.COMMA)
            target = self._parse_assign_target(allow_tuple=False)
            self._expect(TokenType.ASSIGN)
            targets.append((target, self._parse_expression()))
        self._expect(TokenType.BLOCK_END)

        body = self._parse_body()
        self._consume_end_tag("with")
        return With(
            lineno=start.lineno, col_offset=start.col_offset, targets=tuple(targets), body=tuple(body)
        )

    def _parse_filter_block(self) -> FilterBlock:
        """Parse {% filter upper|replace("a", "b") %}...{% endfilter %}."""
        start = self._advance()  # consume 'filter'
        self._push_block("filter", start)
        filters = self._parse_filter_chain()
        self._expect(TokenType.BLOCK_END)
        body = self._parse_body()
        self._consume_end_tag("filter")
        return FilterBlock(
            lineno=start.lineno,
            col_offset=start.col_offset,
            filters=tuple(filters),
            body=tuple(body),
        )

    def _parse_autoescape(self) -> Autoescape:
        """Parse {% autoescape true|false|"html"|"json"|"none" %}...{% endautoescape %}."""
        start = self._advance()  # consume 'autoescape'
        self._push_block("autoescape", start)
        mode = self._parse_expression()
        self._expect(TokenType.BLOCK_END)
        body = self._parse_body()
        self._consume_end_tag("autoescape")
        return Autoescape(
            lineno=start.lineno, col_offset=start.col_offset, mode=mode, body=tuple(body)
        )

    def _parse_do(self) -> Do:
        """Parse {% do expr %}."""
        start = self._advance()  # consume 'do'
        expr = self._parse_expression()
        self._expect(TokenType.BLOCK_END)
        return Do(lineno=start.lineno, col_offset=start.col_offset, expr=expr)
