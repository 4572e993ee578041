"""Template lexer.

Splits template source into a lazy stream of tokens. Text outside tags is
emitted as ``DATA``; ``{{ }}`` and ``{% %}`` regions are tokenized into
names, literals and operators framed by ``VARIABLE_BEGIN``/``VARIABLE_END``
and ``BLOCK_BEGIN``/``BLOCK_END``; comments produce no tokens.

Whitespace control:
    - ``{%-`` / ``{{-`` / ``{#-`` strip all whitespace before the tag.
    - ``-%}`` / ``-}}`` / ``-#}`` strip all whitespace after the tag.
    - ``trim_blocks`` removes the first newline after a block or comment tag;
      ``+%}`` disables it for one tag.
    - ``lstrip_blocks`` removes the indentation before a block or comment tag
      when only spaces and tabs precede it on its line; ``{%+`` disables it
      for one tag.

Trimming only touches the data run adjacent to the tag. A data run that is
trimmed away entirely does not pass the trim on to the next run, so two
consecutive trimming tags never eat into text beyond their neighbour.

Example:
    >>> [t.type.name for t in tokenize("Hi {{ name }}")]
    ['DATA', 'VARIABLE_BEGIN', 'NAME', 'VARIABLE_END', 'EOF']
"""

from __future__ import annotations

import re
from bisect import bisect_right
from collections.abc import Iterator
from enum import Enum
from functools import lru_cache

from quire._types import OPERATORS, Token, TokenType
from quire.environment.exceptions import ErrorCode, TemplateSyntaxError
from quire.syntax import DEFAULT_SYNTAX, DEFAULT_WHITESPACE, SyntaxConfig, WhitespaceConfig

_WHITESPACE_RE = re.compile(r"[ \t\r\n]+")
_INLINE_WHITESPACE_RE = re.compile(r"[ \t\r]+")
_NAME_RE = re.compile(r"[^\W\d]\w*")
_STRING_RE = re.compile(r"'(?:[^'\\]|\\.)*'|\"(?:[^\"\\]|\\.)*\"", re.DOTALL)
_PREFIXED_INT_RE = re.compile(r"0[xXoObB][0-9a-zA-Z_]*")
_NUMBER_RE = re.compile(r"\d[\d_]*(?:\.\d[\d_]*)?(?:[eE][+-]?\d[\d_]*)?", re.ASCII)
_DIGITS_RE = re.compile(r"\d+", re.ASCII)
_OPERATOR_RE = re.compile("|".join(re.escape(op) for op in OPERATORS))
_ESCAPE_RE = re.compile(r"\\(u[0-9a-fA-F]{4}|.)", re.DOTALL)

_SIMPLE_ESCAPES = {
    "\\": "\\",
    "'": "'",
    '"': '"',
    "/": "/",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "b": "\b",
    "f": "\f",
    "0": "\0",
}

_CLOSERS = {")": "(", "]": "[", "}": "{"}


class LexerError(TemplateSyntaxError):
    """Lexer error carrying the character position and UTF-8 byte offset."""

    def __init__(
        self,
        message: str,
        source: str,
        position: int,
        *,
        name: str | None = None,
        code: ErrorCode = ErrorCode.UNEXPECTED_CHARACTER,
    ):
        line_start = source.rfind("\n", 0, position) + 1
        lineno = source.count("\n", 0, position) + 1
        self.position = position
        super().__init__(
            message,
            lineno=lineno,
            name=name,
            source=source,
            col_offset=position - line_start,
            offset=len(source[:position].encode("utf-8")),
        )
        self.code = code


class _Trim(Enum):
    """Pending trim for the start of the next data run."""

    NONE = 0
    NEWLINE = 1
    ALL = 2


@lru_cache(maxsize=32)
def _root_pattern(syntax: SyntaxConfig) -> re.Pattern[str]:
    """Regex finding the next tag start (plus optional modifier) in data."""
    tags = [
        (syntax.variable_start, "variable"),
        (syntax.block_start, "block"),
        (syntax.comment_start, "comment"),
    ]
    # Longer delimiters first so that one delimiter being a prefix of
    # another cannot shadow it.
    tags.sort(key=lambda tag: len(tag[0]), reverse=True)
    parts = [rf"(?P<{kind}>{re.escape(delim)})(?P<{kind}_mod>[-+]?)" for delim, kind in tags]

    line_tags: list[tuple[str, str]] = []
    if syntax.line_comment_prefix:
        line_tags.append((syntax.line_comment_prefix, "line_comment"))
    if syntax.line_statement_prefix:
        line_tags.append((syntax.line_statement_prefix, "line_statement"))
    line_tags.sort(key=lambda tag: len(tag[0]), reverse=True)
    line_parts = [rf"(?P<{kind}>^[ \t]*{re.escape(prefix)})" for prefix, kind in line_tags]

    return re.compile("|".join(line_parts + parts), re.MULTILINE)


@lru_cache(maxsize=32)
def _raw_patterns(syntax: SyntaxConfig) -> tuple[re.Pattern[str], re.Pattern[str]]:
    """Regexes for the body of a ``raw`` opening tag and for ``endraw``."""
    start = re.compile(rf"\s*raw\s*(?P<mod>[-+]?){re.escape(syntax.block_end)}")
    end = re.compile(
        rf"{re.escape(syntax.block_start)}(?P<open_mod>[-+]?)\s*endraw\s*"
        rf"(?P<close_mod>[-+]?){re.escape(syntax.block_end)}"
    )
    return start, end


def _decode_string(literal: str, source: str, position: int, name: str | None) -> str:
    """Decode the escapes of a quoted string literal (quotes included)."""
    body = literal[1:-1]
    if "\\" not in body:
        return body

    out: list[str] = []
    pos = 0
    pending_high: int | None = None
    for m in _ESCAPE_RE.finditer(body):
        out.append(body[pos : m.start()])
        pos = m.end()
        esc = m.group(1)
        if esc[0] == "u" and len(esc) == 5:
            code = int(esc[1:], 16)
            if 0xD800 <= code <= 0xDBFF:
                pending_high = code
                continue
            if 0xDC00 <= code <= 0xDFFF and pending_high is not None:
                code = 0x10000 + ((pending_high - 0xD800) << 10) + (code - 0xDC00)
                pending_high = None
            out.append(chr(code))
        elif esc in _SIMPLE_ESCAPES:
            out.append(_SIMPLE_ESCAPES[esc])
        else:
            raise LexerError(
                f"invalid escape sequence '\\{esc}' in string literal",
                source,
                position + 1 + m.start(),
                name=name,
                code=ErrorCode.INVALID_LITERAL,
            )
        if pending_high is not None:
            out.append(chr(pending_high))
            pending_high = None
    out.append(body[pos:])
    return "".join(out)


class Lexer:
    """Single-use tokenizer for one template source.

    Args:
        source: Template source text.
        syntax: Delimiter configuration.
        whitespace: Whitespace handling policy.
        name: Template name used in error messages.
    """

    __slots__ = ("_line_starts", "_name", "_source", "_syntax", "_whitespace")

    def __init__(
        self,
        source: str,
        syntax: SyntaxConfig | None = None,
        whitespace: WhitespaceConfig | None = None,
        name: str | None = None,
    ):
        self._syntax = syntax or DEFAULT_SYNTAX
        self._whitespace = whitespace or DEFAULT_WHITESPACE
        self._name = name
        if not self._whitespace.keep_trailing_newline and source.endswith("\n"):
            source = source[:-2] if source.endswith("\r\n") else source[:-1]
        self._source = source
        self._line_starts = [0] + [m.end() for m in re.finditer("\n", source)]

    def _position(self, offset: int) -> tuple[int, int]:
        index = bisect_right(self._line_starts, offset) - 1
        return index + 1, offset - self._line_starts[index]

    def _token(self, token_type: TokenType, value: str | int | float, offset: int) -> Token:
        lineno, col = self._position(offset)
        return Token(token_type, value, lineno, col, offset)

    def _error(
        self, message: str, offset: int, code: ErrorCode = ErrorCode.UNEXPECTED_CHARACTER
    ) -> LexerError:
        return LexerError(message, self._source, offset, name=self._name, code=code)

    # ─────────────────────────────────────────────────────────────────────
    # Root (data) state
    # ─────────────────────────────────────────────────────────────────────

    def tokenize(self) -> Iterator[Token]:
        """Yield tokens lazily, ending with ``EOF``."""
        src = self._source
        root_re = _root_pattern(self._syntax)
        pos = 0
        pending = _Trim.NONE

        while True:
            m = root_re.search(src, pos)
            end = m.start() if m else len(src)
            data_start = pos
            data = src[pos:end]

            if pending is _Trim.ALL:
                stripped = data.lstrip()
                data_start += len(data) - len(stripped)
                data = stripped
            elif pending is _Trim.NEWLINE:
                for newline in ("\r\n", "\n"):
                    if data.startswith(newline):
                        data = data[len(newline) :]
                        data_start += len(newline)
                        break

            if m is not None:
                kind = self._kind_of(m)
                modifier = m.group(f"{kind}_mod") if kind in ("variable", "block", "comment") else ""
                if modifier == "-":
                    data = data.rstrip()
                elif (
                    kind in ("block", "comment")
                    and modifier != "+"
                    and self._whitespace.lstrip_blocks
                ):
                    data = self._lstrip_line(data, pos, end)

            if data:
                yield self._token(TokenType.DATA, data, data_start)

            if m is None:
                break

            if kind == "variable":
                pos, pending = yield from self._lex_variable(m)
            elif kind == "block":
                pos, pending = yield from self._lex_block(m)
            elif kind == "comment":
                pos, pending = self._skip_comment(m)
            elif kind == "line_statement":
                pos, pending = yield from self._lex_line_statement(m)
            else:
                newline = src.find("\n", m.end())
                pos, pending = (len(src) if newline == -1 else newline), _Trim.NONE

        yield self._token(TokenType.EOF, "", len(src))

    @staticmethod
    def _kind_of(m: re.Match[str]) -> str:
        for kind in ("line_comment", "line_statement", "variable", "block", "comment"):
            if m.groupdict().get(kind) is not None:
                return kind
        raise AssertionError("unreachable")

    def _lstrip_line(self, data: str, data_pos: int, tag_start: int) -> str:
        """Drop spaces/tabs between the start of the line and a tag."""
        line_start = self._source.rfind("\n", 0, tag_start) + 1
        if line_start < data_pos:
            return data
        indent = self._source[line_start:tag_start]
        if indent.strip(" \t"):
            return data
        return data[: max(0, len(data) - len(indent))]

    def _closing_trim(self, modifier: str, *, block: bool) -> _Trim:
        if modifier == "-":
            return _Trim.ALL
        if block and modifier != "+" and self._whitespace.trim_blocks:
            return _Trim.NEWLINE
        return _Trim.NONE

    # ─────────────────────────────────────────────────────────────────────
    # Tags
    # ─────────────────────────────────────────────────────────────────────

    def _lex_variable(self, m: re.Match[str]) -> Iterator[Token]:
        yield self._token(TokenType.VARIABLE_BEGIN, m.group("variable"), m.start())
        end_pos, modifier = yield from self._lex_expression(
            m.end(), self._syntax.variable_end, m.start()
        )
        yield self._token(TokenType.VARIABLE_END, self._syntax.variable_end, end_pos)
        return end_pos + len(modifier) + len(self._syntax.variable_end), self._closing_trim(
            modifier, block=False
        )

    def _lex_block(self, m: re.Match[str]) -> Iterator[Token]:
        raw_start, raw_end = _raw_patterns(self._syntax)
        raw = raw_start.match(self._source, m.end())
        if raw is not None:
            return (yield from self._lex_raw(m, raw, raw_end))

        yield self._token(TokenType.BLOCK_BEGIN, m.group("block"), m.start())
        end_pos, modifier = yield from self._lex_expression(
            m.end(), self._syntax.block_end, m.start()
        )
        yield self._token(TokenType.BLOCK_END, self._syntax.block_end, end_pos)
        return end_pos + len(modifier) + len(self._syntax.block_end), self._closing_trim(
            modifier, block=True
        )

    def _lex_raw(
        self, m: re.Match[str], raw: re.Match[str], raw_end: re.Pattern[str]
    ) -> Iterator[Token]:
        src = self._source
        end = raw_end.search(src, raw.end())
        if end is None:
            raise self._error(
                "unexpected end of template, 'raw' block was never closed",
                m.start(),
                ErrorCode.UNCLOSED_TAG,
            )

        body_start = raw.end()
        body = src[body_start : end.start()]
        lead = self._closing_trim(raw.group("mod"), block=True)
        if lead is _Trim.ALL:
            stripped = body.lstrip()
            body_start += len(body) - len(stripped)
            body = stripped
        elif lead is _Trim.NEWLINE and body.startswith(("\r\n", "\n")):
            cut = 2 if body.startswith("\r\n") else 1
            body_start += cut
            body = body[cut:]

        open_mod = end.group("open_mod")
        if open_mod == "-":
            body = body.rstrip()
        elif open_mod != "+" and self._whitespace.lstrip_blocks:
            body = self._lstrip_line(body, raw.end(), end.start())

        if body:
            yield self._token(TokenType.DATA, body, body_start)
        return end.end(), self._closing_trim(end.group("close_mod"), block=True)

    def _skip_comment(self, m: re.Match[str]) -> tuple[int, _Trim]:
        end_delim = self._syntax.comment_end
        idx = self._source.find(end_delim, m.end())
        if idx == -1:
            raise self._error(
                "unexpected end of template, comment was never closed",
                m.start(),
                ErrorCode.UNCLOSED_COMMENT,
            )
        modifier = ""
        if idx > m.end() and self._source[idx - 1] in "-+":
            modifier = self._source[idx - 1]
        return idx + len(end_delim), self._closing_trim(modifier, block=True)

    def _lex_line_statement(self, m: re.Match[str]) -> Iterator[Token]:
        yield self._token(TokenType.BLOCK_BEGIN, self._syntax.line_statement_prefix or "", m.start())
        end_pos, _ = yield from self._lex_expression(m.end(), None, m.start())
        yield self._token(TokenType.BLOCK_END, "\n", end_pos)
        if end_pos < len(self._source) and self._source[end_pos] == "\n":
            end_pos += 1
        return end_pos, _Trim.NONE

    # ─────────────────────────────────────────────────────────────────────
    # Expression state
    # ─────────────────────────────────────────────────────────────────────

    def _lex_expression(self, pos: int, end_delim: str | None, tag_start: int) -> Iterator[Token]:
        """Tokenize until ``end_delim`` (or end of line when None).

        Returns ``(position of the closing delimiter, modifier)``.
        """
        src = self._source
        length = len(src)
        brackets: list[tuple[str, int]] = []
        whitespace_re = _WHITESPACE_RE if end_delim is not None else _INLINE_WHITESPACE_RE
        previous: TokenType | None = None

        while True:
            ws = whitespace_re.match(src, pos)
            if ws is not None:
                pos = ws.end()

            if pos >= length:
                if end_delim is None and not brackets:
                    return pos, ""
                expected = repr(end_delim) if end_delim is not None else "end of line statement"
                raise self._error(
                    f"unexpected end of template, expected {expected}",
                    tag_start,
                    ErrorCode.UNCLOSED_TAG,
                )

            if end_delim is None and src[pos] == "\n":
                if not brackets:
                    return pos, ""
                pos += 1
                continue

            if end_delim is not None and not brackets:
                if src.startswith(end_delim, pos):
                    return pos, ""
                if src[pos] in "-+" and src.startswith(end_delim, pos + 1):
                    return pos, src[pos]

            char = src[pos]

            if char in "'\"":
                sm = _STRING_RE.match(src, pos)
                if sm is None:
                    raise self._error(
                        "unterminated string literal", pos, ErrorCode.INVALID_LITERAL
                    )
                value = _decode_string(sm.group(), src, pos, self._name)
                yield self._token(TokenType.STRING, value, pos)
                pos = sm.end()
                previous = TokenType.STRING
                continue

            if char.isdigit():
                pos = yield from self._lex_number(pos, after_dot=previous is TokenType.DOT)
                previous = TokenType.INTEGER
                continue

            nm = _NAME_RE.match(src, pos)
            if nm is not None:
                yield self._token(TokenType.NAME, nm.group(), pos)
                pos = nm.end()
                previous = TokenType.NAME
                continue

            om = _OPERATOR_RE.match(src, pos)
            if om is None:
                raise self._error(f"unexpected character {char!r}", pos)
            op = om.group()
            if op in "([{":
                brackets.append((op, pos))
            elif op in ")]}" and brackets:
                opener, _ = brackets.pop()
                if opener != _CLOSERS[op]:
                    raise self._error(f"unexpected {op!r}, expected closing for {opener!r}", pos)
            token_type = OPERATORS[op]
            yield self._token(token_type, op, pos)
            pos = om.end()
            previous = token_type

    def _lex_number(self, pos: int, *, after_dot: bool) -> Iterator[Token]:
        src = self._source
        if after_dot:
            dm = _DIGITS_RE.match(src, pos)
            if dm is None:
                raise self._error(
                    f"invalid numeric literal {src[pos]!r}", pos, ErrorCode.INVALID_LITERAL
                )
            yield self._token(TokenType.INTEGER, int(dm.group()), pos)
            return dm.end()

        pm = _PREFIXED_INT_RE.match(src, pos)
        if pm is not None:
            text = pm.group()
            try:
                value: int | float = int(text, 0)
            except ValueError:
                raise self._error(
                    f"invalid integer literal {text!r}", pos, ErrorCode.INVALID_LITERAL
                ) from None
            yield self._token(TokenType.INTEGER, value, pos)
            return pm.end()

        nm = _NUMBER_RE.match(src, pos)
        if nm is None:
            raise self._error(
                f"invalid numeric literal {src[pos]!r}", pos, ErrorCode.INVALID_LITERAL
            )
        text = nm.group()
        end = nm.end()
        if end < len(src) and (src[end].isalnum() or src[end] == "_"):
            raise self._error(
                f"invalid numeric literal {src[pos : end + 1]!r}", pos, ErrorCode.INVALID_LITERAL
            )
        is_float = "." in text or "e" in text or "E" in text
        try:
            value = float(text) if is_float else int(text)
        except ValueError:
            raise self._error(
                f"invalid numeric literal {text!r}", pos, ErrorCode.INVALID_LITERAL
            ) from None
        yield self._token(TokenType.FLOAT if is_float else TokenType.INTEGER, value, pos)
        return end


def tokenize(
    source: str,
    syntax: SyntaxConfig | None = None,
    whitespace: WhitespaceConfig | None = None,
    name: str | None = None,
) -> Iterator[Token]:
    """Tokenize template source.

    The returned iterator is lazy, finite and single-use; errors surface as
    ``LexerError`` when the offending position is reached.
    """
    return Lexer(source, syntax, whitespace, name).tokenize()
