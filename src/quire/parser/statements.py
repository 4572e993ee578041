"""Statement parsing for Quire parser.

Provides the body loop and the ``{% ... %}`` dispatch table.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from quire._types import Token, TokenType
from quire.environment.exceptions import ErrorCode
from quire.nodes import Data, Extends, Node, Output

if TYPE_CHECKING:
    from quire.nodes import Expr
    from quire.parser.errors import ParseError


class StatementParsingMixin:
    """Mixin for the template body and statement dispatch."""

    if TYPE_CHECKING:
        _block_stack: list[tuple[str, int, int]]
        _seen_statement: bool
        _END_KEYWORDS: frozenset[str]
        _CONTINUATION_KEYWORDS: frozenset[str]

        @property
        def _current(self) -> Token: ...
        def _advance(self) -> Token: ...
        def _peek(self, offset: int = 0) -> Token: ...
        def _expect(self, token_type: TokenType) -> Token: ...
        def _error(
            self,
            message: str,
            token: Token | None = None,
            suggestion: str | None = None,
            code: ErrorCode = ErrorCode.UNEXPECTED_TOKEN,
        ) -> ParseError: ...
        def _parse_expression(self, with_condexpr: bool = True) -> Expr: ...

    _STATEMENT_HANDLERS: dict[str, str] = {
        "if": "_parse_if",
        "for": "_parse_for",
        "break": "_parse_break",
        "continue": "_parse_continue",
        "block": "_parse_block_tag",
        "extends": "_parse_extends",
        "include": "_parse_include",
        "import": "_parse_import",
        "from": "_parse_from_import",
        "macro": "_parse_macro",
        "call": "_parse_call",
        "set": "_parse_set",
        "with": "_parse_with",
        "filter": "_parse_filter_block",
        "autoescape": "_parse_autoescape",
        "do": "_parse_do",
    }

    def _at_body_end(self) -> bool:
        """True at EOF or at a tag that closes or continues the enclosing block."""
        tok = self._current
        if tok.type is TokenType.EOF:
            return True
        if tok.type is not TokenType.BLOCK_BEGIN:
            return False
        keyword = self._peek(1)
        return keyword.type is TokenType.NAME and (
            keyword.value in self._END_KEYWORDS or keyword.value in self._CONTINUATION_KEYWORDS
        )

    def _parse_body(self) -> list[Node]:
        """Parse nodes until EOF or a closing/continuation tag."""
        nodes: list[Node] = []
        top_level = not self._block_stack
        while not self._at_body_end():
            tok = self._current
            if tok.type is TokenType.DATA:
                nodes.append(self._parse_data())
                continue
            if tok.type is TokenType.VARIABLE_BEGIN:
                node: Node = self._parse_output()
            elif tok.type is TokenType.BLOCK_BEGIN:
                node = self._parse_block()
            else:
                raise self._error(f"Unexpected {tok.value!r}", tok)
            if top_level and not isinstance(node, Extends):
                self._seen_statement = True
            nodes.append(node)
        return nodes

    def _parse_data(self) -> Data:
        tok = self._advance()
        return Data(lineno=tok.lineno, col_offset=tok.col_offset, value=str(tok.value))

    def _parse_output(self) -> Output:
        """Parse {{ expr }}."""
        start = self._advance()  # consume '{{'
        if self._current.type is TokenType.VARIABLE_END:
            raise self._error("Expected an expression", suggestion="Use {{ value }}")
        expr = self._parse_expression()
        self._expect(TokenType.VARIABLE_END)
        return Output(lineno=start.lineno, col_offset=start.col_offset, expr=expr)

    def _parse_block(self) -> Node:
        """Parse a ``{% ... %}`` statement by dispatching on its keyword."""
        self._advance()  # consume '{%'
        keyword = self._current
        if keyword.type is not TokenType.NAME:
            raise self._error("Expected a statement keyword", keyword)

        handler_name = self._STATEMENT_HANDLERS.get(str(keyword.value))
        if handler_name is None:
            if keyword.value in self._END_KEYWORDS or keyword.value in self._CONTINUATION_KEYWORDS:
                raise self._error(
                    f"Unexpected '{keyword.value}'", keyword, code=ErrorCode.UNCLOSED_BLOCK
                )
            raise self._error(
                f"Unknown tag '{keyword.value}'",
                keyword,
                code=ErrorCode.INVALID_STRUCTURE,
            )
        handler: Callable[[], Node] = getattr(self, handler_name)
        return handler()
