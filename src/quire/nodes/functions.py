"""Macro definition and call nodes for the Quire AST."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from quire.nodes.base import Node
from quire.nodes.expressions import Expr, FuncCall


@dataclass(frozen=True, slots=True)
class Macro(Node):
    """Macro definition: {% macro name(a, b=1, **extra) %}...{% endmacro %}

    ``defaults`` align with the last ``len(defaults)`` params.
    """

    name: str
    params: Sequence[str]
    body: Sequence[Node]
    defaults: Sequence[Expr] = ()
    kwarg: str | None = None


@dataclass(frozen=True, slots=True)
class CallBlock(Node):
    """Call a macro with a body: {% call(user) list(users) %}...{% endcall %}

    The body becomes an anonymous macro passed as ``caller``.
    """

    call: FuncCall
    params: Sequence[str]
    body: Sequence[Node]
    defaults: Sequence[Expr] = ()
