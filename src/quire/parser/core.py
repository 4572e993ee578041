"""Quire parser core.

Recursive-descent parser turning the lexer's token stream into an immutable
AST. The grammar is split across mixins (statements, expressions and the
block families); this module holds token navigation and the ``Parser``
class that composes them.

Example:
    >>> from quire.lexer import tokenize
    >>> tree = Parser(tokenize("{{ 1 + 2 }}"), name="t").parse()
    >>> type(tree.body[0]).__name__
    'Output'
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from quire._types import Token, TokenType
from quire.environment.exceptions import ErrorCode
from quire.nodes import Extends, Template
from quire.parser.blocks import (
    ControlFlowBlockParsingMixin,
    FunctionBlockParsingMixin,
    SpecialBlockParsingMixin,
    TemplateStructureBlockParsingMixin,
)
from quire.parser.errors import ParseError
from quire.parser.expressions import ExpressionParsingMixin
from quire.parser.statements import StatementParsingMixin


class TokenNavigationMixin:
    """Buffered navigation over a lazy token stream."""

    _tokens: Iterator[Token]
    _buffer: list[Token]
    _source: str | None
    _name: str | None

    def _fill(self, count: int) -> None:
        while len(self._buffer) < count:
            tok = next(self._tokens, None)
            if tok is None:
                # Repeat EOF for lookahead past the end
                tok = self._buffer[-1] if self._buffer else Token(TokenType.EOF, "", 1, 0)
            self._buffer.append(tok)

    @property
    def _current(self) -> Token:
        self._fill(1)
        return self._buffer[0]

    def _peek(self, offset: int = 0) -> Token:
        self._fill(offset + 1)
        return self._buffer[offset]

    def _advance(self) -> Token:
        tok = self._current
        if tok.type is not TokenType.EOF:
            self._buffer.pop(0)
        return tok

    def _match(self, *types: TokenType) -> bool:
        return self._current.type in types

    def _match_name(self, *names: str) -> bool:
        tok = self._current
        return tok.type is TokenType.NAME and tok.value in names

    def _expect(self, token_type: TokenType) -> Token:
        tok = self._current
        if tok.type is not token_type:
            found = "end of template" if tok.type is TokenType.EOF else repr(tok.value)
            raise self._error(f"Expected {_describe(token_type)}, got {found}", tok)
        return self._advance()

    def _expect_name(self, value: str) -> Token:
        if not self._match_name(value):
            tok = self._current
            raise self._error(f"Expected '{value}', got {tok.value!r}", tok)
        return self._advance()

    def _error(
        self,
        message: str,
        token: Token | None = None,
        suggestion: str | None = None,
        code: ErrorCode = ErrorCode.UNEXPECTED_TOKEN,
    ) -> ParseError:
        return ParseError(
            message,
            token or self._current,
            source=self._source,
            filename=self._name,
            suggestion=suggestion,
            code=code,
        )


def _describe(token_type: TokenType) -> str:
    if token_type is TokenType.BLOCK_END:
        return "end of statement block"
    if token_type is TokenType.VARIABLE_END:
        return "end of print statement"
    if token_type is TokenType.NAME:
        return "a name"
    return repr(token_type.value)


class Parser(
    TokenNavigationMixin,
    StatementParsingMixin,
    ExpressionParsingMixin,
    ControlFlowBlockParsingMixin,
    TemplateStructureBlockParsingMixin,
    FunctionBlockParsingMixin,
    SpecialBlockParsingMixin,
):
    """Parser for one template.

    Args:
        tokens: Token stream from ``quire.lexer.tokenize``.
        name: Template name used in error messages.
        source: Template source, used for error snippets.
    """

    def __init__(
        self,
        tokens: Iterable[Token],
        name: str | None = None,
        source: str | None = None,
    ):
        self._tokens = iter(tokens)
        self._buffer: list[Token] = []
        self._name = name
        self._source = source
        self._block_stack: list[tuple[str, int, int]] = []
        self._block_names: dict[str, int] = {}
        self._extends_seen = False
        self._seen_statement = False

    def parse(self) -> Template:
        """Parse the whole token stream into a ``Template`` root node."""
        body = self._parse_body()

        if not self._match(TokenType.EOF):
            tok = self._peek(1)
            if tok.type is TokenType.NAME and tok.value in self._CONTINUATION_KEYWORDS:
                raise self._error(f"Unexpected '{tok.value}' outside of a block", tok)
            raise self._error(
                f"Unexpected '{tok.value}', no block is open",
                tok,
                code=ErrorCode.UNCLOSED_BLOCK,
            )

        extends = next((node for node in body if isinstance(node, Extends)), None)
        return Template(lineno=1, col_offset=0, body=tuple(body), extends=extends)

