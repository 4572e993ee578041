"""Property-based tests for the Quire lexer.

Uses hypothesis to verify structural invariants that must hold for
*all* inputs, not just hand-picked examples:

- Plain text round-trips through tokenization unchanged
- Variable expressions produce balanced delimiter tokens
- Arbitrary input never causes an unhandled crash
- Token positions never move backwards
"""

from __future__ import annotations

from hypothesis import given, settings

from quire._types import TokenType
from quire.environment.exceptions import TemplateSyntaxError
from quire.lexer import LexerError, tokenize

from .strategies import (
    arbitrary_template_source,
    plain_text,
    quire_variable,
    template_fragment,
)


class TestLexerProperties:
    """Property-based lexer invariants."""

    @given(source=plain_text)
    @settings(max_examples=200)
    def test_plain_text_roundtrip(self, source: str) -> None:
        """Text without delimiters produces a single DATA token with the original content."""
        tokens = list(tokenize(source))
        assert [t.type for t in tokens] == [TokenType.DATA, TokenType.EOF]
        assert tokens[0].value == source

    @given(source=quire_variable)
    @settings(max_examples=200)
    def test_variable_has_balanced_delimiters(self, source: str) -> None:
        """A {{ var }} expression produces VARIABLE_BEGIN, NAME, VARIABLE_END."""
        types = [t.type for t in tokenize(source)]
        assert types == [
            TokenType.VARIABLE_BEGIN,
            TokenType.NAME,
            TokenType.VARIABLE_END,
            TokenType.EOF,
        ]

    @given(source=arbitrary_template_source)
    @settings(max_examples=300)
    def test_no_unhandled_crash(self, source: str) -> None:
        """The lexer never raises an unexpected exception.

        It may raise LexerError for invalid input, but must not raise
        TypeError, ValueError, IndexError, etc.
        """
        try:
            list(tokenize(source))
        except (TemplateSyntaxError, LexerError):
            pass

    @given(source=template_fragment)
    @settings(max_examples=200)
    def test_fragment_delimiter_balance(self, source: str) -> None:
        """Well-formed fragments produce balanced BEGIN/END delimiter pairs."""
        types = [t.type for t in tokenize(source)]
        assert types.count(TokenType.VARIABLE_BEGIN) == types.count(TokenType.VARIABLE_END)
        assert types[-1] is TokenType.EOF

    @given(source=template_fragment)
    @settings(max_examples=200)
    def test_positions_are_monotonic(self, source: str) -> None:
        """Token start offsets never decrease and stay inside the source."""
        tokens = list(tokenize(source))
        offsets = [t.offset for t in tokens]
        assert offsets == sorted(offsets)
        assert all(0 <= offset <= len(source) for offset in offsets)
