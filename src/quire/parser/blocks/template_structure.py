"""Template structure block parsing for Quire parser.

Provides mixin for parsing template structure statements (block, extends,
include, import, from_import).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from quire._types import TokenType
from quire.environment.exceptions import ErrorCode
from quire.nodes import Block, Extends, FromImport, Import, Include
from quire.parser.blocks.core import BlockStackMixin

if TYPE_CHECKING:
    from quire._types import Token
    from quire.nodes import Expr, Node


class TemplateStructureBlockParsingMixin(BlockStackMixin):
    """Mixin for parsing template structure blocks.

    Required Host Attributes:
        - All from BlockStackMixin
        - All from TokenNavigationMixin
        - _parse_body: method
        - _parse_expression: method
        - _block_names, _extends_seen, _seen_statement: parser state
    """

    if TYPE_CHECKING:
        _block_names: dict[str, int]
        _extends_seen: bool
        _seen_statement: bool

        def _parse_body(self) -> list[Node]: ...
        def _parse_expression(self, with_condexpr: bool = True) -> Expr: ...
        def _match(self, *types: TokenType) -> bool: ...
        def _match_name(self, *names: str) -> bool: ...
        def _expect_name(self, value: str) -> Token: ...

    def _parse_block_tag(self) -> Block:
        """Parse {% block name [scoped] %}...{% endblock [name] %}."""
        start = self._advance()  # consume 'block'

        if self._current.type != TokenType.NAME:
            raise self._error("Expected block name")
        name_tok = self._advance()
        name = str(name_tok.value)

        if name in self._block_names:
            raise self._error(
                f"Block '{name}' defined twice (first definition at line "
                f"{self._block_names[name]})",
                name_tok,
                code=ErrorCode.INVALID_STRUCTURE,
            )
        self._block_names[name] = start.lineno

        scoped = False
        if self._match_name("scoped"):
            self._advance()  # consume 'scoped'
            scoped = True

        self._push_block("block", start)
        self._expect(TokenType.BLOCK_END)
        body = self._parse_body()

        # Consume end tag
        self._consume_end_tag("block", name)

        return Block(
            lineno=start.lineno,
            col_offset=start.col_offset,
            name=name,
            body=tuple(body),
            scoped=scoped,
        )

    def _parse_extends(self) -> Extends:
        """Parse {% extends "base.html" %}."""
        start = self._advance()  # consume 'extends'
        if self._block_stack:
            raise self._error(
                "'extends' is only allowed at the top level of a template",
                start,
                code=ErrorCode.INVALID_STRUCTURE,
            )
        if self._extends_seen:
            raise self._error(
                "Template extends more than one parent",
                start,
                code=ErrorCode.INVALID_STRUCTURE,
            )
        if self._seen_statement:
            raise self._error(
                "'extends' must be the first statement in the template",
                start,
                suggestion="Move {% extends %} to the top of the template",
                code=ErrorCode.INVALID_STRUCTURE,
            )
        self._extends_seen = True

        template = self._parse_expression()
        self._expect(TokenType.BLOCK_END)

        return Extends(
            lineno=start.lineno,
            col_offset=start.col_offset,
            template=template,
        )

    def _parse_context_modifier(self) -> bool | None:
        """Parse an optional ``with context`` / ``without context``."""
        if not self._match_name("with", "without"):
            return None
        keyword = self._advance()
        if not self._match_name("context"):
            raise self._error(
                f"Expected 'context' after '{keyword.value}'",
                suggestion=f"Use '{keyword.value} context'",
            )
        self._advance()  # consume 'context'
        return keyword.value == "with"

    def _parse_include(self) -> Include:
        """Parse {% include "partial.html" [ignore missing] [with|without context] %}.

        The template expression may evaluate to a list of names; the first
        existing template is included.
        """
        start = self._advance()  # consume 'include'
        template = self._parse_expression()

        with_context = True
        ignore_missing = False

        # Parse optional modifiers
        while self._current.type == TokenType.NAME:
            if self._match_name("ignore"):
                self._advance()  # consume 'ignore'
                if not self._match_name("missing"):
                    raise self._error(
                        "Expected 'missing' after 'ignore'",
                        suggestion="Use '{% include \"template.html\" ignore missing %}'",
                    )
                self._advance()  # consume 'missing'
                ignore_missing = True
                continue
            modifier = self._parse_context_modifier()
            if modifier is None:
                break
            with_context = modifier

        self._expect(TokenType.BLOCK_END)

        return Include(
            lineno=start.lineno,
            col_offset=start.col_offset,
            template=template,
            with_context=with_context,
            ignore_missing=ignore_missing,
        )

    def _parse_import(self) -> Import:
        """Parse {% import "template.html" as f [with context] %}."""
        start = self._advance()  # consume 'import'

        template = self._parse_expression()

        # Expect 'as'
        if not self._match_name("as"):
            raise self._error("Expected 'as' after template name in import")
        self._advance()  # consume 'as'

        if self._current.type != TokenType.NAME:
            raise self._error("Expected alias name for import")
        target = str(self._advance().value)

        with_context = bool(self._parse_context_modifier())
        self._expect(TokenType.BLOCK_END)

        return Import(
            lineno=start.lineno,
            col_offset=start.col_offset,
            template=template,
            target=target,
            with_context=with_context,
        )

    def _parse_from_import(self) -> FromImport:
        """Parse {% from "template.html" import name1, name2 as alias %}."""
        start = self._advance()  # consume 'from'

        template = self._parse_expression()
        self._expect_name("import")

        # Parse imported names
        names: list[tuple[str, str | None]] = []
        with_context = False

        while True:
            if self._match_name("with", "without") and names:
                with_context = bool(self._parse_context_modifier())
                break
            if self._current.type != TokenType.NAME:
                raise self._error("Expected name to import")
            name_tok = self._advance()
            name = str(name_tok.value)
            if name.startswith("_"):
                raise self._error(
                    f"Cannot import private name '{name}'",
                    name_tok,
                    suggestion="Names starting with an underscore are not exported",
                )

            # Check for alias
            alias: str | None = None
            if self._match_name("as"):
                self._advance()  # consume 'as'
                if self._current.type != TokenType.NAME:
                    raise self._error("Expected alias name")
                alias = str(self._advance().value)

            names.append((name, alias))

            # Check for comma or end
            if self._match(TokenType.COMMA):
                self._advance()
                continue
            with_context = bool(self._parse_context_modifier())
            break

        self._expect(TokenType.BLOCK_END)

        return FromImport(
            lineno=start.lineno,
            col_offset=start.col_offset,
            template=template,
            names=tuple(names),
            with_context=with_context,
        )
