"""Quire template parser.

Turns the lexer's token stream into an immutable AST (``quire.nodes``).
"""

from quire.parser.core import Parser
from quire.parser.errors import ParseError

__all__ = ["ParseError", "Parser"]
