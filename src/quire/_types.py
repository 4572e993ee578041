"""Token types shared by the lexer and parser."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class TokenType(Enum):
    """Lexical token types.

    Keywords (``if``, ``for``, ``and``, ``true``...) are emitted as ``NAME``
    tokens; the parser decides what they mean by position.
    """

    # Template structure
    DATA = "data"
    VARIABLE_BEGIN = "variable_begin"
    VARIABLE_END = "variable_end"
    BLOCK_BEGIN = "block_begin"
    BLOCK_END = "block_end"
    EOF = "eof"

    # Literals and names
    NAME = "name"
    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"

    # Arithmetic
    ADD = "+"
    SUB = "-"
    MUL = "*"
    DIV = "/"
    FLOORDIV = "//"
    MOD = "%"
    POW = "**"
    TILDE = "~"

    # Comparison
    EQ = "=="
    NE = "!="
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="

    # Punctuation
    ASSIGN = "="
    PIPE = "|"
    DOT = "."
    COMMA = ","
    COLON = ":"
    LPAREN = "("
    RPAREN = ")"
    LBRACKET = "["
    RBRACKET = "]"
    LBRACE = "{"
    RBRACE = "}"


# Operator text → token type, longest operators first so that the lexer's
# alternation prefers "//" over "/" and "**" over "*".
OPERATORS: dict[str, TokenType] = {
    "//": TokenType.FLOORDIV,
    "**": TokenType.POW,
    "==": TokenType.EQ,
    "!=": TokenType.NE,
    "<=": TokenType.LE,
    ">=": TokenType.GE,
    "+": TokenType.ADD,
    "-": TokenType.SUB,
    "*": TokenType.MUL,
    "/": TokenType.DIV,
    "%": TokenType.MOD,
    "~": TokenType.TILDE,
    "<": TokenType.LT,
    ">": TokenType.GT,
    "=": TokenType.ASSIGN,
    "|": TokenType.PIPE,
    ".": TokenType.DOT,
    ",": TokenType.COMMA,
    ":": TokenType.COLON,
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    "[": TokenType.LBRACKET,
    "]": TokenType.RBRACKET,
    "{": TokenType.LBRACE,
    "}": TokenType.RBRACE,
}


@dataclass(frozen=True, slots=True)
class Token:
    """A lexical token with its source position.

    Attributes:
        type: Token type.
        value: Token text; decoded text for STRING, ``int`` for INTEGER,
            ``float`` for FLOAT.
        lineno: 1-based line of the first character.
        col_offset: 0-based column of the first character.
        offset: 0-based character offset into the source.
    """

    type: TokenType
    value: str | int | float
    lineno: int
    col_offset: int
    offset: int = 0

    def test(self, token_type: TokenType, value: str | None = None) -> bool:
        """True if the token has ``token_type`` and, if given, ``value``."""
        if self.type is not token_type:
            return False
        return value is None or self.value == value

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {self.value!r}, {self.lineno}:{self.col_offset})"
