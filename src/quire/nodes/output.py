"""Output and formatting nodes for the Quire AST."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from quire.nodes.base import Node
from quire.nodes.expressions import Expr

# (filter name, positional args, keyword args)
FilterStep = tuple[str, Sequence[Expr], dict[str, Expr]]


@dataclass(frozen=True, slots=True)
class Output(Node):
    """Output expression: {{ expr }}"""

    expr: Expr


@dataclass(frozen=True, slots=True)
class Data(Node):
    """Raw text data between template constructs."""

    value: str


@dataclass(frozen=True, slots=True)
class FilterBlock(Node):
    """Apply filters to block output: {% filter upper|trim %}...{% endfilter %}"""

    filters: Sequence[FilterStep]
    body: Sequence[Node]


@dataclass(frozen=True, slots=True)
class Autoescape(Node):
    """Control autoescaping: {% autoescape true %}...{% endautoescape %}

    ``mode`` is evaluated at render time: a bool or "html", "json", "none".
    """

    mode: Expr
    body: Sequence[Node]
