"""Macro block parsing for Quire parser.

Provides mixin for parsing macro definitions and call blocks.

Uses inline TYPE_CHECKING declarations for host attributes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from quire._types import Token, TokenType
from quire.environment.exceptions import ErrorCode
from quire.nodes import CallBlock, FuncCall, Macro

if TYPE_CHECKING:
    from quire.nodes import Expr, Node, Name

from quire.parser.blocks.core import BlockStackMixin


class FunctionBlockParsingMixin(BlockStackMixin):
    """Mixin for parsing macro and call blocks.

    Host attributes and cross-mixin dependencies are declared via inline
    TYPE_CHECKING blocks. Inherits block stack management from BlockStackMixin.

    """

    # ─────────────────────────────────────────────────────────────────────────
    # Host attributes and cross-mixin dependencies (type-check only)
    # ─────────────────────────────────────────────────────────────────────────
    if TYPE_CHECKING:

        def _match(self, *types: TokenType) -> bool: ...

        # From StatementParsingMixin
        def _parse_body(self) -> list[Node]: ...

        # From ExpressionParsingMixin
        def _parse_expression(self, with_condexpr: bool = True) -> Expr: ...
        def _parse_target_name(self) -> Name: ...

    def _parse_signature(self, *, allow_kwarg: bool = True) -> tuple[list[str], list[Expr], str | None]:
        """Parse ``(a, b=1, **rest)`` into names, trailing defaults and catch-all."""
        params: list[str] = []
        defaults: list[Expr] = []
        kwarg: str | None = None

        self._expect(TokenType.LPAREN)
        while not self._match(TokenType.RPAREN):
            if params or kwarg:
                self._expect(TokenType.COMMA)
                if self._match(TokenType.RPAREN):
                    break

            # Catch-all for extra keyword arguments
            if self._match(TokenType.POW):
                star = self._advance()  # consume **
                if not allow_kwarg:
                    raise self._error("'**' parameters are not allowed here", star)
                kwarg = self._parse_target_name().name
                if not self._match(TokenType.RPAREN):
                    raise self._error(
                        "**kwargs must be the last parameter",
                        suggestion="Move **kwargs to the end of the parameter list",
                        code=ErrorCode.INVALID_SIGNATURE,
                    )
                continue

            param_token = self._current
            name = self._parse_target_name().name
            if self._match(TokenType.ASSIGN):
                self._advance()
                defaults.append(self._parse_expression())
            elif defaults:
                raise self._error(
                    f"Non-default parameter '{name}' follows default parameter",
                    param_token,
                    code=ErrorCode.INVALID_SIGNATURE,
                )
            params.append(name)

        self._expect(TokenType.RPAREN)
        return params, defaults, kwarg

    def _parse_macro(self) -> Macro:
        """Parse {% macro name(args) %}...{% endmacro %}.

        Example:
            {% macro input(name, value="", type="text") %}
                <input type="{{ type }}" name="{{ name }}" value="{{ value }}">
            {% endmacro %}

            {{ input("user") }}
        """
        start = self._advance()  # consume 'macro'
        self._push_block("macro", start)

        # Get macro name
        if self._current.type != TokenType.NAME:
            raise self._error(
                "Expected macro name",
                suggestion="Macro syntax: {% macro name(args) %}...{% endmacro %}",
            )
        name = str(self._advance().value)

        params, defaults, kwarg = self._parse_signature()
        self._expect(TokenType.BLOCK_END)

        body = self._parse_body()
        self._consume_end_tag("macro")

        return Macro(
            lineno=start.lineno,
            col_offset=start.col_offset,
            name=name,
            params=tuple(params),
            body=tuple(body),
            defaults=tuple(defaults),
            kwarg=kwarg,
        )

    def _parse_call(self) -> CallBlock:
        """Parse {% call[(params)] macro(args) %}body{% endcall %}.

        The body is passed to the macro as ``caller``; ``{{ caller(x) }}``
        renders it with the call block parameters bound.

        Example:
            {% call(user) list_users(users) %}
                <li>{{ user.name }}</li>
            {% endcall %}
        """
        start: Token = self._advance()  # consume 'call'
        self._push_block("call", start)

        params: list[str] = []
        defaults: list[Expr] = []
        if self._match(TokenType.LPAREN):
            params, defaults, _ = self._parse_signature(allow_kwarg=False)

        call_expr = self._parse_expression()
        if not isinstance(call_expr, FuncCall):
            raise self._error(
                "Expected a macro call after 'call'",
                suggestion="Call block syntax: {% call my_macro(args) %}...{% endcall %}",
            )
        self._expect(TokenType.BLOCK_END)

        body = self._parse_body()
        self._consume_end_tag("call")

        return CallBlock(
            lineno=start.lineno,
            col_offset=start.col_offset,
            call=call_expr,
            params=tuple(params),
            body=tuple(body),
            defaults=tuple(defaults),
        )
