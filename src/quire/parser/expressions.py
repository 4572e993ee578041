"""Expression parsing for Quire parser.

Precedence climbing, lowest to highest:

    conditional  a if c else b
    or
    and
    not
    comparison   == != < <= > >= in, not in
    additive     + - ~
    multiplicative * / // %
    power        ** (right-associative)
    unary        - +
    filter/test  x | f(...), x is [not] t(...)
    postfix      .attr [item] [a:b:c] (call)
    primary      literals, names, ( ), [ ], { }
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from quire._types import Token, TokenType
from quire.environment.exceptions import ErrorCode
from quire.nodes import (
    BinOp,
    BoolOp,
    Compare,
    CondExpr,
    Const,
    Dict,
    Expr,
    Filter,
    FuncCall,
    Getattr,
    Getitem,
    List,
    Name,
    Slice,
    Test,
    Tuple,
    UnaryOp,
)

if TYPE_CHECKING:
    from quire.nodes import FilterStep
    from quire.parser.errors import ParseError

_COMPARE_TOKENS = {
    TokenType.EQ: "==",
    TokenType.NE: "!=",
    TokenType.LT: "<",
    TokenType.LE: "<=",
    TokenType.GT: ">",
    TokenType.GE: ">=",
}
_ADDITIVE_TOKENS = {TokenType.ADD: "+", TokenType.SUB: "-", TokenType.TILDE: "~"}
_MULTIPLICATIVE_TOKENS = {
    TokenType.MUL: "*",
    TokenType.DIV: "/",
    TokenType.FLOORDIV: "//",
    TokenType.MOD: "%",
}
_CONSTANT_NAMES = {"true": True, "false": False, "none": None}

# Names that end a bare test argument: {{ x is divisibleby 3 and y }}
_TEST_ARG_STOP = frozenset({"and", "or", "else", "if", "is", "in", "not", "recursive"})

# Names that cannot be assigned to.
_RESERVED_TARGETS = frozenset({"true", "false", "none", "True", "False", "None"})


class ExpressionParsingMixin:
    """Mixin for parsing expressions."""

    if TYPE_CHECKING:

        @property
        def _current(self) -> Token: ...
        def _advance(self) -> Token: ...
        def _peek(self, offset: int = 0) -> Token: ...
        def _expect(self, token_type: TokenType) -> Token: ...
        def _match(self, *types: TokenType) -> bool: ...
        def _match_name(self, *names: str) -> bool: ...
        def _error(
            self,
            message: str,
            token: Token | None = None,
            suggestion: str | None = None,
            code: ErrorCode = ErrorCode.UNEXPECTED_TOKEN,
        ) -> ParseError: ...

    def _parse_expression(self, with_condexpr: bool = True) -> Expr:
        if with_condexpr:
            return self._parse_condexpr()
        return self._parse_or()

    def _parse_condexpr(self) -> Expr:
        expr = self._parse_or()
        while self._match_name("if"):
            start = self._advance()
            test = self._parse_or()
            if_false: Expr | None = None
            if self._match_name("else"):
                self._advance()
                if_false = self._parse_condexpr()
            expr = CondExpr(
                lineno=start.lineno,
                col_offset=start.col_offset,
                test=test,
                if_true=expr,
                if_false=if_false,
            )
        return expr

    def _parse_or(self) -> Expr:
        left = self._parse_and()
        if not self._match_name("or"):
            return left
        values = [left]
        while self._match_name("or"):
            self._advance()
            values.append(self._parse_and())
        return BoolOp(lineno=left.lineno, col_offset=left.col_offset, op="or", values=tuple(values))

    def _parse_and(self) -> Expr:
        left = self._parse_not()
        if not self._match_name("and"):
            return left
        values = [left]
        while self._match_name("and"):
            self._advance()
            values.append(self._parse_not())
        return BoolOp(
            lineno=left.lineno, col_offset=left.col_offset, op="and", values=tuple(values)
        )

    def _parse_not(self) -> Expr:
        if self._match_name("not"):
            start = self._advance()
            operand = self._parse_not()
            return UnaryOp(lineno=start.lineno, col_offset=start.col_offset, op="not", operand=operand)
        return self._parse_compare()

    def _parse_compare(self) -> Expr:
        left = self._parse_additive()
        ops: list[str] = []
        comparators: list[Expr] = []
        while True:
            tok = self._current
            if tok.type in _COMPARE_TOKENS:
                self._advance()
                ops.append(_COMPARE_TOKENS[tok.type])
            elif self._match_name("in"):
                self._advance()
                ops.append("in")
            elif self._match_name("not") and self._peek(1).test(TokenType.NAME, "in"):
                self._advance()
                self._advance()
                ops.append("not in")
            else:
                break
            comparators.append(self._parse_additive())
        if not ops:
            return left
        return Compare(
            lineno=left.lineno,
            col_offset=left.col_offset,
            left=left,
            ops=tuple(ops),
            comparators=tuple(comparators),
        )

    def _parse_additive(self) -> Expr:
        left = self._parse_multiplicative()
        while self._current.type in _ADDITIVE_TOKENS:
            op = _ADDITIVE_TOKENS[self._advance().type]
            right = self._parse_multiplicative()
            left = BinOp(lineno=left.lineno, col_offset=left.col_offset, op=op, left=left, right=right)
        return left

    def _parse_multiplicative(self) -> Expr:
        left = self._parse_power()
        while self._current.type in _MULTIPLICATIVE_TOKENS:
            op = _MULTIPLICATIVE_TOKENS[self._advance().type]
            right = self._parse_power()
            left = BinOp(lineno=left.lineno, col_offset=left.col_offset, op=op, left=left, right=right)
        return left

    def _parse_power(self) -> Expr:
        left = self._parse_unary()
        if self._match(TokenType.POW):
            self._advance()
            right = self._parse_power()
            return BinOp(lineno=left.lineno, col_offset=left.col_offset, op="**", left=left, right=right)
        return left

    def _parse_unary(self) -> Expr:
        tok = self._current
        if tok.type in (TokenType.SUB, TokenType.ADD):
            self._advance()
            operand = self._parse_unary()
            return UnaryOp(
                lineno=tok.lineno, col_offset=tok.col_offset, op=str(tok.value), operand=operand
            )
        return self._parse_filter_test(self._parse_postfix(self._parse_primary()))

    # ─────────────────────────────────────────────────────────────────────
    # Filters and tests
    # ─────────────────────────────────────────────────────────────────────

    def _parse_filter_test(self, expr: Expr) -> Expr:
        while True:
            if self._match(TokenType.PIPE):
                self._advance()
                name, args, kwargs = self._parse_filter_step()
                expr = Filter(
                    lineno=expr.lineno,
                    col_offset=expr.col_offset,
                    value=expr,
                    name=name,
                    args=args,
                    kwargs=kwargs,
                )
            elif self._match_name("is"):
                expr = self._parse_test(expr)
            else:
                return expr

    def _parse_filter_step(self) -> FilterStep:
        """Parse ``name`` or ``name(args)`` after a ``|``."""
        tok = self._current
        if tok.type is not TokenType.NAME:
            raise self._error("Expected filter name after '|'", tok)
        self._advance()
        args: tuple[Expr, ...] = ()
        kwargs: dict[str, Expr] = {}
        if self._match(TokenType.LPAREN):
            args, kwargs = self._parse_call_args()
        return str(tok.value), args, kwargs

    def _parse_filter_chain(self) -> list[FilterStep]:
        """Parse ``f(x)|g|h`` as used by filter blocks."""
        steps = [self._parse_filter_step()]
        while self._match(TokenType.PIPE):
            self._advance()
            steps.append(self._parse_filter_step())
        return steps

    def _parse_test(self, expr: Expr) -> Test:
        self._advance()  # consume 'is'
        negated = False
        if self._match_name("not"):
            self._advance()
            negated = True

        tok = self._current
        if tok.type is not TokenType.NAME:
            raise self._error("Expected test name after 'is'", tok)
        self._advance()

        args: tuple[Expr, ...] = ()
        kwargs: dict[str, Expr] = {}
        if self._match(TokenType.LPAREN):
            args, kwargs = self._parse_call_args()
        elif self._starts_test_argument():
            arg = self._parse_postfix(self._parse_primary())
            args = (arg,)

        return Test(
            lineno=expr.lineno,
            col_offset=expr.col_offset,
            value=expr,
            name=str(tok.value),
            args=args,
            kwargs=kwargs,
            negated=negated,
        )

    def _starts_test_argument(self) -> bool:
        tok = self._current
        if tok.type in (
            TokenType.STRING,
            TokenType.INTEGER,
            TokenType.FLOAT,
            TokenType.LBRACKET,
            TokenType.LBRACE,
        ):
            return True
        return tok.type is TokenType.NAME and tok.value not in _TEST_ARG_STOP

    # ─────────────────────────────────────────────────────────────────────
    # Postfix and primary
    # ─────────────────────────────────────────────────────────────────────

    def _parse_postfix(self, expr: Expr) -> Expr:
        while True:
            tok = self._current
            if tok.type is TokenType.DOT:
                self._advance()
                attr = self._current
                if attr.type is TokenType.NAME:
                    self._advance()
                    expr = Getattr(
                        lineno=expr.lineno, col_offset=expr.col_offset, obj=expr, attr=str(attr.value)
                    )
                elif attr.type is TokenType.INTEGER:
                    self._advance()
                    key = Const(lineno=attr.lineno, col_offset=attr.col_offset, value=attr.value)
                    expr = Getitem(lineno=expr.lineno, col_offset=expr.col_offset, obj=expr, key=key)
                else:
                    raise self._error("Expected attribute name after '.'", attr)
            elif tok.type is TokenType.LBRACKET:
                expr = self._parse_subscript(expr)
            elif tok.type is TokenType.LPAREN:
                args, kwargs = self._parse_call_args()
                expr = FuncCall(
                    lineno=expr.lineno,
                    col_offset=expr.col_offset,
                    func=expr,
                    args=args,
                    kwargs=kwargs,
                )
            else:
                return expr

    def _parse_subscript(self, obj: Expr) -> Expr:
        start_tok = self._advance()  # consume '['
        start: Expr | None = None
        if not self._match(TokenType.COLON):
            start = self._parse_expression()
            if self._match(TokenType.RBRACKET):
                self._advance()
                return Getitem(lineno=obj.lineno, col_offset=obj.col_offset, obj=obj, key=start)

        self._expect(TokenType.COLON)
        stop: Expr | None = None
        step: Expr | None = None
        if not self._match(TokenType.RBRACKET, TokenType.COLON):
            stop = self._parse_expression()
        if self._match(TokenType.COLON):
            self._advance()
            if not self._match(TokenType.RBRACKET):
                step = self._parse_expression()
        self._expect(TokenType.RBRACKET)
        key = Slice(
            lineno=start_tok.lineno, col_offset=start_tok.col_offset, start=start, stop=stop, step=step
        )
        return Getitem(lineno=obj.lineno, col_offset=obj.col_offset, obj=obj, key=key)

    def _parse_call_args(self) -> tuple[tuple[Expr, ...], dict[str, Expr]]:
        """Parse ``(a, b, key=value)``; keyword arguments come last."""
        self._expect(TokenType.LPAREN)
        args: list[Expr] = []
        kwargs: dict[str, Expr] = {}
        while not self._match(TokenType.RPAREN):
            if args or kwargs:
                self._expect(TokenType.COMMA)
                if self._match(TokenType.RPAREN):
                    break
            tok = self._current
            if tok.type is TokenType.NAME and self._peek(1).type is TokenType.ASSIGN:
                self._advance()
                self._advance()
                name = str(tok.value)
                if name in kwargs:
                    raise self._error(f"Duplicate keyword argument '{name}'", tok)
                kwargs[name] = self._parse_expression()
            else:
                if kwargs:
                    raise self._error("Positional argument follows keyword argument", tok)
                args.append(self._parse_expression())
        self._expect(TokenType.RPAREN)
        return tuple(args), kwargs

    def _parse_primary(self) -> Expr:
        tok = self._current
        if tok.type is TokenType.NAME:
            self._advance()
            lowered = str(tok.value).lower()
            if lowered in _CONSTANT_NAMES:
                return Const(lineno=tok.lineno, col_offset=tok.col_offset, value=_CONSTANT_NAMES[lowered])
            return Name(lineno=tok.lineno, col_offset=tok.col_offset, name=str(tok.value))

        if tok.type is TokenType.STRING:
            self._advance()
            value = str(tok.value)
            # Adjacent string literals concatenate: "a" "b"
            while self._match(TokenType.STRING):
                value += str(self._advance().value)
            return Const(lineno=tok.lineno, col_offset=tok.col_offset, value=value)

        if tok.type in (TokenType.INTEGER, TokenType.FLOAT):
            self._advance()
            return Const(lineno=tok.lineno, col_offset=tok.col_offset, value=tok.value)

        if tok.type is TokenType.LPAREN:
            return self._parse_paren()
        if tok.type is TokenType.LBRACKET:
            return self._parse_list()
        if tok.type is TokenType.LBRACE:
            return self._parse_dict()

        if tok.type is TokenType.EOF:
            raise self._error("Unexpected end of template, expected an expression", tok)
        raise self._error(f"Unexpected {tok.value!r}, expected an expression", tok)

    def _parse_paren(self) -> Expr:
        start = self._advance()  # consume '('
        if self._match(TokenType.RPAREN):
            self._advance()
            return Tuple(lineno=start.lineno, col_offset=start.col_offset, items=())
        first = self._parse_expression()
        if not self._match(TokenType.COMMA):
            self._expect(TokenType.RPAREN)
            return first
        items = [first]
        while self._match(TokenType.COMMA):
            self._advance()
            if self._match(TokenType.RPAREN):
                break
            items.append(self._parse_expression())
        self._expect(TokenType.RPAREN)
        return Tuple(lineno=start.lineno, col_offset=start.col_offset, items=tuple(items))

    def _parse_list(self) -> List:
        start = self._advance()  # consume '['
        items: list[Expr] = []
        while not self._match(TokenType.RBRACKET):
            if items:
                self._expect(TokenType.COMMA)
                if self._match(TokenType.RBRACKET):
                    break
            items.append(self._parse_expression())
        self._expect(TokenType.RBRACKET)
        return List(lineno=start.lineno, col_offset=start.col_offset, items=tuple(items))

    def _parse_dict(self) -> Dict:
        start = self._advance()  # consume '{'
        keys: list[Expr] = []
        values: list[Expr] = []
        while not self._match(TokenType.RBRACE):
            if keys:
                self._expect(TokenType.COMMA)
                if self._match(TokenType.RBRACE):
                    break
            keys.append(self._parse_expression())
            self._expect(TokenType.COLON)
            values.append(self._parse_expression())
        self._expect(TokenType.RBRACE)
        return Dict(
            lineno=start.lineno, col_offset=start.col_offset, keys=tuple(keys), values=tuple(values)
        )

    # ─────────────────────────────────────────────────────────────────────
    # Assignment targets
    # ─────────────────────────────────────────────────────────────────────

    def _parse_target_name(self) -> Name:
        tok = self._current
        if tok.type is not TokenType.NAME:
            raise self._error("Expected a variable name", tok)
        if tok.value in _RESERVED_TARGETS:
            raise self._error(f"Cannot assign to '{tok.value}'", tok)
        self._advance()
        return Name(lineno=tok.lineno, col_offset=tok.col_offset, name=str(tok.value), ctx="store")

    def _parse_assign_target(self, *, allow_attr: bool = False, allow_tuple: bool = True) -> Expr:
        """Parse ``x``, ``a, b``, ``(a, b)`` or (for set) ``ns.attr``."""
        start = self._current
        if self._match(TokenType.LPAREN) and allow_tuple:
            self._advance()
            target = self._parse_assign_target(allow_tuple=True)
            self._expect(TokenType.RPAREN)
            return target

        name = self._parse_target_name()
        if allow_attr and self._match(TokenType.DOT):
            self._advance()
            attr = self._current
            if attr.type is not TokenType.NAME:
                raise self._error("Expected attribute name after '.'", attr)
            self._advance()
            load = Name(lineno=name.lineno, col_offset=name.col_offset, name=name.name)
            return Getattr(
                lineno=name.lineno,
                col_offset=name.col_offset,
                obj=load,
                attr=str(attr.value),
                ctx="store",
            )

        if not allow_tuple or not self._match(TokenType.COMMA):
            return name

        items: list[Expr] = [name]
        while self._match(TokenType.COMMA):
            self._advance()
            if not self._match(TokenType.NAME, TokenType.LPAREN):
                break
            if self._match(TokenType.LPAREN):
                items.append(self._parse_assign_target(allow_tuple=True))
            else:
                items.append(self._parse_target_name())
        return Tuple(lineno=start.lineno, col_offset=start.col_offset, items=tuple(items), ctx="store")
