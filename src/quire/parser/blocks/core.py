"""Block stack management shared by the block-parsing mixins.

Every opening tag pushes ``(kind, lineno, col_offset)``; the matching closer
pops it. Closers may be the specific ``end<kind>`` keyword or the unified
``end``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from quire._types import Token, TokenType
from quire.environment.exceptions import ErrorCode

if TYPE_CHECKING:
    from quire.parser.errors import ParseError


class BlockStackMixin:
    """Tracks open block tags and validates their closers."""

    _END_KEYWORDS = frozenset(
        {
            "end",
            "endif",
            "endfor",
            "endblock",
            "endmacro",
            "endcall",
            "endfilter",
            "endset",
            "endwith",
            "endautoescape",
        }
    )
    _CONTINUATION_KEYWORDS = frozenset({"elif", "else"})

    # Constructs that compile to their own code object; loop control cannot
    # cross them.
    _LOOP_BOUNDARIES = frozenset({"macro", "call", "block"})

    if TYPE_CHECKING:
        _block_stack: list[tuple[str, int, int]]

        @property
        def _current(self) -> Token: ...
        def _advance(self) -> Token: ...
        def _expect(self, token_type: TokenType) -> Token: ...
        def _peek(self, offset: int = 0) -> Token: ...
        def _error(
            self,
            message: str,
            token: Token | None = None,
            suggestion: str | None = None,
            code: ErrorCode = ErrorCode.UNEXPECTED_TOKEN,
        ) -> ParseError: ...

    def _push_block(self, kind: str, token: Token) -> None:
        self._block_stack.append((kind, token.lineno, token.col_offset))

    def _pop_block(self) -> tuple[str, int, int]:
        return self._block_stack.pop()

    def _in_loop(self) -> bool:
        """True if loop control is valid at this point."""
        for kind, _, _ in reversed(self._block_stack):
            if kind == "for":
                return True
            if kind in self._LOOP_BOUNDARIES:
                return False
        return False

    def _unclosed_error(self, kind: str, lineno: int) -> ParseError:
        return self._error(
            f"Unclosed '{kind}' block started at line {lineno}",
            suggestion=f"Add {{% end{kind} %}} or {{% end %}} to close the block",
            code=ErrorCode.UNCLOSED_BLOCK,
        )

    def _consume_end_tag(self, kind: str, name: str | None = None) -> None:
        """Consume ``{% end %}`` or ``{% end<kind> %}`` closing the innermost block."""
        open_kind, lineno, _ = self._block_stack[-1]
        if self._current.type is TokenType.EOF:
            raise self._unclosed_error(open_kind, lineno)

        self._expect(TokenType.BLOCK_BEGIN)
        tok = self._current
        if tok.type is not TokenType.NAME or tok.value not in ("end", f"end{kind}"):
            found = tok.value if tok.type is TokenType.NAME else tok.type.value
            raise self._error(
                f"Mismatched closing tag: expected 'end{kind}' to close '{kind}' "
                f"from line {lineno}, found '{found}'",
                tok,
                code=ErrorCode.UNCLOSED_BLOCK,
            )
        self._advance()

        # {% endblock name %} may repeat the block name
        if kind == "block" and self._current.type is TokenType.NAME:
            closing = self._advance()
            if name is not None and closing.value != name:
                raise self._error(
                    f"Mismatched block name: expected '{name}', found '{closing.value}'",
                    closing,
                    code=ErrorCode.UNCLOSED_BLOCK,
                )

        self._expect(TokenType.BLOCK_END)
        self._pop_block()
