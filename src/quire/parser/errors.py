"""Parser error handling for Quire.

Provides ParseError class with rich source context and suggestions.
"""

from __future__ import annotations

from quire._types import Token
from quire.environment.exceptions import ErrorCode, TemplateSyntaxError


class ParseError(TemplateSyntaxError):
    """Parser error with rich source context.

    Displays errors with source code snippets and visual pointers,
    matching the format used by the lexer for consistency.
    """

    def __init__(
        self,
        message: str,
        token: Token,
        source: str | None = None,
        filename: str | None = None,
        suggestion: str | None = None,
        code: ErrorCode = ErrorCode.UNEXPECTED_TOKEN,
    ):
        self.token = token
        self.suggestion = suggestion
        offset = len(source[: token.offset].encode("utf-8")) if source else token.offset
        super().__init__(
            message,
            lineno=token.lineno,
            name=filename,
            source=source,
            col_offset=token.col_offset,
            offset=offset,
        )
        self.code = code

    @property
    def filename(self) -> str | None:
        return self.template_name

    def _format_message(self) -> str:
        msg = super()._format_message()
        if self.suggestion:
            msg += f"\n\nSuggestion: {self.suggestion}"
        return msg
