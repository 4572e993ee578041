"""Control flow block parsing for Quire parser.

Provides mixin for parsing if/elif/else, for/else and loop control.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from quire._types import TokenType
from quire.environment.exceptions import ErrorCode
from quire.nodes import Break, Continue, For, If
from quire.parser.blocks.core import BlockStackMixin

if TYPE_CHECKING:
    from quire.nodes import Expr, Node


class ControlFlowBlockParsingMixin(BlockStackMixin):
    """Mixin for parsing control flow blocks.

    Required Host Attributes:
        - All from BlockStackMixin
        - _parse_body, _parse_expression, _parse_assign_target
    """

    if TYPE_CHECKING:

        def _parse_body(self) -> list[Node]: ...
        def _parse_expression(self, with_condexpr: bool = True) -> Expr: ...
        def _parse_assign_target(
            self, *, allow_attr: bool = False, allow_tuple: bool = True
        ) -> Expr: ...
        def _match_name(self, *names: str) -> bool: ...

    def _at_continuation(self, *keywords: str) -> bool:
        if self._current.type is not TokenType.BLOCK_BEGIN:
            return False
        keyword = self._peek(1)
        return keyword.type is TokenType.NAME and keyword.value in keywords

    def _parse_if(self) -> If:
        """Parse {% if %}...{% elif %}...{% else %}...{% endif %}."""
        start = self._advance()  # consume 'if'
        self._push_block("if", start)
        test = self._parse_expression()
        self._expect(TokenType.BLOCK_END)
        body = self._parse_body()

        elif_: list[tuple[Expr, tuple[Node, ...]]] = []
        else_: list[Node] = []
        seen_else = False
        while self._at_continuation("elif", "else"):
            self._advance()  # consume '{%'
            keyword = self._advance()
            if keyword.value == "elif":
                if seen_else:
                    raise self._error("'elif' after 'else'", keyword)
                cond = self._parse_expression()
                self._expect(TokenType.BLOCK_END)
                elif_.append((cond, tuple(self._parse_body())))
            else:
                if seen_else:
                    raise self._error("Duplicate 'else' in 'if' block", keyword)
                self._expect(TokenType.BLOCK_END)
                seen_else = True
                else_ = self._parse_body()

        self._consume_end_tag("if")
        return If(
            lineno=start.lineno,
            col_offset=start.col_offset,
            test=test,
            body=tuple(body),
            elif_=tuple(elif_),
            else_=tuple(else_),
        )

    def _parse_for(self) -> For:
        """Parse {% for target in iter [if cond] [recursive] %}...{% else %}...{% endfor %}."""
        start = self._advance()  # consume 'for'
        self._push_block("for", start)

        target = self._parse_assign_target()
        if not self._match_name("in"):
            raise self._error(
                "Expected 'in' after loop target",
                suggestion="Loop syntax: {% for item in items %}",
            )
        self._advance()  # consume 'in'
        iterable = self._parse_expression(with_condexpr=False)

        test: Expr | None = None
        if self._match_name("if"):
            self._advance()
            test = self._parse_expression(with_condexpr=False)

        recursive = False
        if self._match_name("recursive"):
            self._advance()
            recursive = True

        self._expect(TokenType.BLOCK_END)
        body = self._parse_body()

        else_: list[Node] = []
        if self._at_continuation("else"):
            self._advance()  # consume '{%'
            self._advance()  # consume 'else'
            self._expect(TokenType.BLOCK_END)
            # Loop control in the else branch targets the enclosing loop
            self._block_stack[-1] = ("for-else", start.lineno, start.col_offset)
            else_ = self._parse_body()
            self._block_stack[-1] = ("for", start.lineno, start.col_offset)

        if self._at_continuation("elif", "else"):
            raise self._error(f"Unexpected '{self._peek(1).value}' in 'for' block", self._peek(1))

        self._consume_end_tag("for")
        return For(
            lineno=start.lineno,
            col_offset=start.col_offset,
            target=target,
            iter=iterable,
            body=tuple(body),
            else_=tuple(else_),
            recursive=recursive,
            test=test,
        )

    def _parse_loop_control(self, kind: str) -> Break | Continue:
        tok = self._advance()  # consume keyword
        if not self._in_loop():
            raise self._error(
                f"'{kind}' outside of a loop",
                tok,
                code=ErrorCode.INVALID_STRUCTURE,
            )
        self._expect(TokenType.BLOCK_END)
        node_type = Break if kind == "break" else Continue
        return node_type(lineno=tok.lineno, col_offset=tok.col_offset)

    def _parse_break(self) -> Break | Continue:
        return self._parse_loop_control("break")

    def _parse_continue(self) -> Break | Continue:
        return self._parse_loop_control("continue")
