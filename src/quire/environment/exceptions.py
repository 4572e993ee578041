"""Exceptions for the Quire template system.

Exception Hierarchy:
TemplateError (base)
├── TemplateSyntaxError           # Lexer/parser error, carries byte offset
│   ├── LexerError                # (quire.lexer)
│   └── ParseError                # (quire.parser.errors)
├── TemplateCompileError          # Invalid target, invalid macro signature
├── TemplateNotFoundError         # No registered template and no loader hit
├── UndefinedError                # Strict-mode use of an undefined value
└── TemplateRuntimeError          # Render-time failure (InvalidOperation)
    ├── FilterNotFoundError
    ├── TestNotFoundError
    ├── FunctionNotFoundError
    ├── TooComplexError           # Recursion or fuel ceiling exceeded
    ├── BadIncludeError           # Included template missing
    └── BadExtendsError           # Parent template missing or cyclic

Every error exposes ``kind`` (an ``ErrorKind``), ``code`` (an ``ErrorCode``),
``message``, ``template_name``, ``lineno`` and ``template_stack``. The
``template_stack`` lists the ``(template, line)`` locations of every include,
extends and macro-call boundary crossed on the way to the failure, outermost
first. Errors raised while rendering an included template keep their own
kind; the boundary only adds a stack entry. When one error wraps another
(for instance a missing include), the original is the ``__cause__``.

Example:
    ```
    Q-RUN-001: Undefined variable 'titl' in article.html:5
       |
    >  5 | <h1>{{ titl }}</h1>
       |
      Hint: Use {{ titl | default('') }} for optional variables
    ```

"""

from __future__ import annotations

from dataclasses import dataclass
from difflib import get_close_matches
from enum import Enum
from typing import Any

from quire.environment import terminal


class ErrorKind(Enum):
    """Enumerated error taxonomy shared by every ``TemplateError``."""

    SYNTAX_ERROR = "syntax_error"
    COMPILE_ERROR = "compile_error"
    TEMPLATE_NOT_FOUND = "template_not_found"
    FILTER_NOT_FOUND = "filter_not_found"
    TEST_NOT_FOUND = "test_not_found"
    FUNCTION_NOT_FOUND = "function_not_found"
    UNDEFINED_ERROR = "undefined_error"
    INVALID_OPERATION = "invalid_operation"
    TOO_COMPLEX = "too_complex"
    BAD_INCLUDE = "bad_include"
    BAD_EXTENDS = "bad_extends"


class ErrorCode(Enum):
    """Searchable error codes.

    Format: Q-{CATEGORY}-{NUMBER}
    Categories: LEX (lexer), PAR (parser), CMP (compiler), RUN (runtime),
    TPL (template loading)
    """

    # Lexer errors (Q-LEX-xxx)
    UNCLOSED_TAG = "Q-LEX-001"
    UNCLOSED_COMMENT = "Q-LEX-002"
    INVALID_LITERAL = "Q-LEX-003"
    UNEXPECTED_CHARACTER = "Q-LEX-004"

    # Parser errors (Q-PAR-xxx)
    UNEXPECTED_TOKEN = "Q-PAR-001"
    UNCLOSED_BLOCK = "Q-PAR-002"
    INVALID_STRUCTURE = "Q-PAR-003"

    # Compiler errors (Q-CMP-xxx)
    INVALID_TARGET = "Q-CMP-001"
    INVALID_SIGNATURE = "Q-CMP-002"

    # Runtime errors (Q-RUN-xxx)
    UNDEFINED_VARIABLE = "Q-RUN-001"
    UNKNOWN_FILTER = "Q-RUN-002"
    UNKNOWN_TEST = "Q-RUN-003"
    UNKNOWN_FUNCTION = "Q-RUN-004"
    INVALID_OPERATION = "Q-RUN-005"
    TOO_COMPLEX = "Q-RUN-006"
    BAD_INCLUDE = "Q-RUN-007"
    BAD_EXTENDS = "Q-RUN-008"

    # Template loading errors (Q-TPL-xxx)
    TEMPLATE_NOT_FOUND = "Q-TPL-001"
    SYNTAX_ERROR = "Q-TPL-002"

    @property
    def category(self) -> str:
        """Error category (e.g., 'runtime', 'lexer', 'parser', 'template')."""
        prefix = self.value.split("-")[1]
        return {
            "LEX": "lexer",
            "PAR": "parser",
            "CMP": "compiler",
            "RUN": "runtime",
            "TPL": "template",
        }.get(prefix, "unknown")


# ---------------------------------------------------------------------------
# Source snippets
# ---------------------------------------------------------------------------


def format_template_stack(stack: list[tuple[str, int]] | None) -> str:
    """Format the include/extends/macro chain for error messages.

    Example:
        >>> print(format_template_stack([("base.html", 42), ("nav.html", 12)]))
        Template stack:
          • base.html:42
          • nav.html:12
    """
    if not stack:
        return ""

    lines = [terminal.dim_text("Template stack:")]
    for template_name, line_num in stack:
        lines.append(f"  • {terminal.location(f'{template_name}:{line_num}')}")
    return "\n".join(lines)


@dataclass(frozen=True, slots=True)
class SourceSnippet:
    """Template source context around an error line.

    Attributes:
        lines: Tuple of (line_number, line_content) pairs around the error.
        error_line: The 1-based line number where the error occurred.
        column: Optional column offset for caret pointer.
    """

    lines: tuple[tuple[int, str], ...]
    error_line: int
    column: int | None = None

    def format(self) -> str:
        parts: list[str] = [terminal.dim_text("   |")]
        for lineno, content in self.lines:
            is_error = lineno == self.error_line
            parts.append(terminal.format_source_line(lineno, content, is_error=is_error))
        if self.column is not None:
            caret = " " * self.column + "^"
            parts.append(f"{terminal.dim_text('   |')} {terminal.colorize(caret, 'bright_red')}")
        parts.append(terminal.dim_text("   |"))
        return "\n".join(parts)


def build_source_snippet(
    source: str,
    error_line: int,
    *,
    context_lines: int = 2,
    column: int | None = None,
) -> SourceSnippet:
    """Build a SourceSnippet from template source.

    Args:
        source: Full template source text.
        error_line: 1-based line number of the error.
        context_lines: Number of lines to show before/after the error line.
        column: Optional column offset for caret pointer.
    """
    all_lines = source.splitlines()
    start = max(0, error_line - 1 - context_lines)
    end = min(len(all_lines), error_line + context_lines)
    lines = tuple((i + 1, all_lines[i]) for i in range(start, end))
    return SourceSnippet(lines=lines, error_line=error_line, column=column)


def _did_you_mean(name: str, candidates: frozenset[str] | None) -> str | None:
    if not candidates:
        return None
    matches = get_close_matches(name, sorted(candidates), n=1, cutoff=0.6)
    return matches[0] if matches else None


class TemplateError(Exception):
    """Base exception for all Quire template errors.

    The message is formatted lazily so that the VM can attach the template
    name, line and stack while the error propagates.

    Attributes:
        kind: Enumerated error kind.
        code: Searchable error code.
        message: Short description without location.
        template_name: Template in which the error occurred.
        lineno: 1-based line in ``template_name``.
        template_stack: ``(template, line)`` boundaries, outermost first.
        source_snippet: Optional source context for display.
    """

    kind: ErrorKind = ErrorKind.INVALID_OPERATION
    code: ErrorCode | None = None

    def __init__(
        self,
        message: str,
        *,
        template_name: str | None = None,
        lineno: int | None = None,
        source_snippet: SourceSnippet | None = None,
        template_stack: list[tuple[str, int]] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.template_name = template_name
        self.lineno = lineno
        self.source_snippet = source_snippet
        self.template_stack: list[tuple[str, int]] = list(template_stack or [])

    def __str__(self) -> str:
        return self._format_message()

    @property
    def location(self) -> str:
        loc = self.template_name or "<template>"
        if self.lineno:
            loc += f":{self.lineno}"
        return loc

    @property
    def cause(self) -> BaseException | None:
        """The "caused by" entry of the error chain, if any."""
        return self.__cause__

    def set_location(self, template_name: str | None, lineno: int | None) -> None:
        """Attach a location unless one is already known."""
        if self.lineno is None and lineno is not None:
            self.template_name = template_name
            self.lineno = lineno
        elif self.template_name is None:
            self.template_name = template_name

    def push_frame(self, template_name: str, lineno: int) -> None:
        """Record a boundary crossed while the error propagated outward."""
        self.template_stack.insert(0, (template_name, lineno))

    def _format_message(self) -> str:
        parts = [self.message]
        if self.template_name or self.lineno:
            parts.append(f"  Location: {terminal.location(self.location)}")
        if self.source_snippet:
            parts.append(self.source_snippet.format())
        if self.template_stack:
            parts.append("")
            parts.append(format_template_stack(self.template_stack))
        if self.__cause__ is not None:
            parts.append(f"  Caused by: {type(self.__cause__).__name__}: {self.__cause__}")
        return "\n".join(parts)

    def format_compact(self) -> str:
        """Format error as a structured, human-readable summary.

        Produces a clean diagnostic string suitable for terminal display,
        without Python traceback noise.
        """
        parts: list[str] = [
            terminal.format_error_header(self.code.value if self.code else None, self.message),
            f"  --> {terminal.location(self.location)}",
        ]
        if self.source_snippet:
            parts.append(self.source_snippet.format())
        if self.template_stack:
            parts.append(format_template_stack(self.template_stack))
        return "\n".join(parts)


class TemplateSyntaxError(TemplateError):
    """Parse-time syntax error in template source.

    Raised by the lexer and parser. ``offset`` is the UTF-8 byte offset of
    the offending token in the source; ``col_offset`` the 0-based column.
    When ``source`` is known, the message includes the offending line with a
    caret.
    """

    kind = ErrorKind.SYNTAX_ERROR
    code: ErrorCode | None = ErrorCode.SYNTAX_ERROR

    def __init__(
        self,
        message: str,
        lineno: int | None = None,
        name: str | None = None,
        source: str | None = None,
        col_offset: int | None = None,
        offset: int | None = None,
    ):
        self.source = source
        self.col_offset = col_offset
        self.offset = offset
        super().__init__(message, template_name=name, lineno=lineno)

    def _format_message(self) -> str:
        location = self.location
        if self.lineno and self.col_offset is not None:
            location += f":{self.col_offset}"
        header = f"Syntax Error: {self.message}\n  --> {location}"

        if self.source and self.lineno:
            lines = self.source.splitlines()
            if 0 < self.lineno <= len(lines):
                snippet = f"\n   |\n{self.lineno:>3} | {lines[self.lineno - 1]}"
                if self.col_offset is not None:
                    snippet += f"\n   | {' ' * self.col_offset}^"
                return header + snippet
        return header

    def format_compact(self) -> str:
        parts: list[str] = [
            terminal.format_error_header(self.code.value if self.code else None, self.message),
            f"  --> {terminal.location(self.location)}",
        ]
        if self.source and self.lineno:
            snippet = build_source_snippet(
                self.source, self.lineno, context_lines=0, column=self.col_offset
            )
            parts.append(snippet.format())
        return "\n".join(parts)


class TemplateCompileError(TemplateError):
    """The AST is well-formed but cannot be lowered to bytecode."""

    kind = ErrorKind.COMPILE_ERROR
    code: ErrorCode | None = ErrorCode.INVALID_TARGET


class TemplateNotFoundError(TemplateError):
    """Template not registered and not found by the configured loader.

    Example:
        >>> env.get_template("nonexistent.html")
        TemplateNotFoundError: Template 'nonexistent.html' not found
    """

    kind = ErrorKind.TEMPLATE_NOT_FOUND
    code: ErrorCode | None = ErrorCode.TEMPLATE_NOT_FOUND


class TemplateRuntimeError(TemplateError):
    """Render-time error with rich debugging context.

    The general-purpose "invalid operation" error: type mismatches in
    operators, filters and tests, bad arguments, failing host callables.

    Output Format:
        ```
        Runtime Error: unsupported operand types for +: 'list' and 'str'
          Location: article.html:15
          Expression: items + title
          Suggestion: Use ~ to concatenate strings
        ```

    Attributes:
        expression: Template expression that failed
        values: Dict of names → values for context
        suggestion: Actionable fix suggestion
    """

    kind = ErrorKind.INVALID_OPERATION
    code: ErrorCode | None = ErrorCode.INVALID_OPERATION

    def __init__(
        self,
        message: str,
        *,
        expression: str | None = None,
        values: dict[str, Any] | None = None,
        template_name: str | None = None,
        lineno: int | None = None,
        suggestion: str | None = None,
        source_snippet: SourceSnippet | None = None,
        template_stack: list[tuple[str, int]] | None = None,
    ):
        self.expression = expression
        self.values = values or {}
        self.suggestion = suggestion
        super().__init__(
            message,
            template_name=template_name,
            lineno=lineno,
            source_snippet=source_snippet,
            template_stack=template_stack,
        )

    def _format_message(self) -> str:
        parts = [f"Runtime Error: {self.message}"]
        if self.template_name or self.lineno:
            parts.append(f"  Location: {terminal.location(self.location)}")
        if self.source_snippet:
            parts.append(self.source_snippet.format())
        if self.template_stack:
            parts.append("")
            parts.append(format_template_stack(self.template_stack))
        if self.expression:
            parts.append(f"  Expression: {self.expression}")
        if self.values:
            parts.append("  Values:")
            for name, value in self.values.items():
                value_repr = repr(value)
                if len(value_repr) > 80:
                    value_repr = value_repr[:77] + "..."
                parts.append(f"    {name} = {value_repr} ({type(value).__name__})")
        if self.suggestion:
            parts.append(f"\n  {terminal.hint('Suggestion:')} {self.suggestion}")
        if self.__cause__ is not None:
            parts.append(f"  Caused by: {type(self.__cause__).__name__}: {self.__cause__}")
        return "\n".join(parts)

    def format_compact(self) -> str:
        parts = [super().format_compact()]
        if self.suggestion:
            parts.append(f"  {terminal.hint('Hint:')} {self.suggestion}")
        return "\n".join(parts)


class _UnknownNameError(TemplateRuntimeError):
    """A filter, test or function name that is not registered."""

    what = "name"

    def __init__(self, name: str, available_names: frozenset[str] | None = None, **kwargs: Any):
        self.name = name
        match = _did_you_mean(name, available_names)
        suggestion = f"Did you mean '{terminal.suggestion(match)}'?" if match else None
        super().__init__(f"Unknown {self.what} '{name}'", suggestion=suggestion, **kwargs)


class FilterNotFoundError(_UnknownNameError):
    """Filter name not present in the Environment's filter registry."""

    kind = ErrorKind.FILTER_NOT_FOUND
    code: ErrorCode | None = ErrorCode.UNKNOWN_FILTER
    what = "filter"


class TestNotFoundError(_UnknownNameError):
    """Test name not present in the Environment's test registry."""

    __test__ = False  # not a pytest test class

    kind = ErrorKind.TEST_NOT_FOUND
    code: ErrorCode | None = ErrorCode.UNKNOWN_TEST
    what = "test"


class FunctionNotFoundError(_UnknownNameError):
    """Called a bare name that resolves to nothing."""

    kind = ErrorKind.FUNCTION_NOT_FOUND
    code: ErrorCode | None = ErrorCode.UNKNOWN_FUNCTION
    what = "function"


class TooComplexError(TemplateRuntimeError):
    """Recursion-depth or fuel ceiling exceeded.

    Raised instead of overflowing the host stack or looping forever, so that
    templates from less-trusted authors abort deterministically.
    """

    kind = ErrorKind.TOO_COMPLEX
    code: ErrorCode | None = ErrorCode.TOO_COMPLEX


class BadIncludeError(TemplateRuntimeError):
    """``{% include %}`` target missing and not marked ``ignore missing``."""

    kind = ErrorKind.BAD_INCLUDE
    code: ErrorCode | None = ErrorCode.BAD_INCLUDE


class BadExtendsError(TemplateRuntimeError):
    """``{% extends %}`` target missing, or the extends chain is cyclic."""

    kind = ErrorKind.BAD_EXTENDS
    code: ErrorCode | None = ErrorCode.BAD_EXTENDS


class UndefinedError(TemplateError):
    """Raised when an undefined value is used in strict mode.

    ``name`` is the variable or attribute chain that produced the undefined
    value (``user``, ``user.email``, ``items[3]``). If ``available_names`` is
    provided, a "Did you mean?" suggestion is included when a close match is
    found.

    Example:
        >>> env = Environment(undefined=UndefinedBehavior.STRICT)
        >>> env.render_str("{{ undefined_var }}")
        UndefinedError: Undefined variable 'undefined_var' in <string>:1

    To fix:
        - Pass the variable in render(): template.render(undefined_var="value")
        - Use the default filter: {{ undefined_var | default("fallback") }}
    """

    kind = ErrorKind.UNDEFINED_ERROR
    code: ErrorCode | None = ErrorCode.UNDEFINED_VARIABLE

    def __init__(
        self,
        name: str,
        template: str | None = None,
        lineno: int | None = None,
        available_names: frozenset[str] | None = None,
        source_snippet: SourceSnippet | None = None,
        template_stack: list[tuple[str, int]] | None = None,
    ):
        self.name = name
        self._available_names = available_names
        super().__init__(
            f"Undefined variable '{name}'",
            template_name=template,
            lineno=lineno,
            source_snippet=source_snippet,
            template_stack=template_stack,
        )

    @property
    def template(self) -> str:
        return self.template_name or "<template>"

    def _headline(self) -> str:
        msg = f"Undefined variable '{self.name}' in {terminal.location(self.location)}"
        match = _did_you_mean(self.name, self._available_names)
        if match:
            msg += f". Did you mean '{terminal.suggestion(match)}'?"
        return msg

    def _format_message(self) -> str:
        msg = self._headline()
        if self.source_snippet:
            msg += "\n" + self.source_snippet.format()
        if self.template_stack:
            msg += "\n\n" + format_template_stack(self.template_stack)
        hint_text = f"Use {{{{ {self.name} | default('') }}}} for optional variables"
        msg += f"\n  {terminal.hint('Hint:')} {hint_text}"
        return msg

    def format_compact(self) -> str:
        parts: list[str] = [
            terminal.format_error_header(self.code.value if self.code else None, self._headline())
        ]
        if self.source_snippet:
            parts.append(self.source_snippet.format())
        if self.template_stack:
            parts.append(format_template_stack(self.template_stack))
        hint_text = f"Use {{{{ {self.name} | default('') }}}} for optional variables"
        parts.append(f"  {terminal.hint('Hint:')} {hint_text}")
        return "\n".join(parts)
