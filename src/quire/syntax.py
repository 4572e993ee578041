"""Delimiter and whitespace configuration for the lexer."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class SyntaxConfig:
    """Template delimiters.

    All start delimiters must be distinct and non-empty. The optional line
    prefixes enable line statements (``# for x in items``) and line comments
    (``## note``).

    Example:
        >>> env = Environment(syntax=SyntaxConfig(
        ...     block_start="<%", block_end="%>",
        ...     variable_start="${", variable_end="}",
        ... ))
    """

    block_start: str = "{%"
    block_end: str = "%}"
    variable_start: str = "{{"
    variable_end: str = "}}"
    comment_start: str = "{#"
    comment_end: str = "#}"
    line_statement_prefix: str | None = None
    line_comment_prefix: str | None = None

    def __post_init__(self) -> None:
        delimiters = {
            "block_start": self.block_start,
            "block_end": self.block_end,
            "variable_start": self.variable_start,
            "variable_end": self.variable_end,
            "comment_start": self.comment_start,
            "comment_end": self.comment_end,
        }
        for field_name, value in delimiters.items():
            if not value:
                raise ValueError(f"SyntaxConfig.{field_name} must not be empty")

        starts = [self.block_start, self.variable_start, self.comment_start]
        if len(set(starts)) != len(starts):
            raise ValueError("block, variable and comment start delimiters must differ")

        for prefix in (self.line_statement_prefix, self.line_comment_prefix):
            if prefix is not None and not prefix:
                raise ValueError("line prefixes must be None or non-empty")
        if (
            self.line_statement_prefix is not None
            and self.line_statement_prefix == self.line_comment_prefix
        ):
            raise ValueError("line statement and line comment prefixes must differ")


@dataclass(frozen=True, slots=True)
class WhitespaceConfig:
    """Automatic whitespace handling around tags.

    Attributes:
        trim_blocks: Remove the first newline after a block or comment tag.
        lstrip_blocks: Strip spaces and tabs from the start of a line up to a
            block or comment tag.
        keep_trailing_newline: Preserve a single trailing newline of the
            template source (removed by default).
    """

    trim_blocks: bool = False
    lstrip_blocks: bool = False
    keep_trailing_newline: bool = False


DEFAULT_SYNTAX = SyntaxConfig()
DEFAULT_WHITESPACE = WhitespaceConfig()
