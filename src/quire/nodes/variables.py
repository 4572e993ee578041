"""Variable and scoping nodes for the Quire AST."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from quire.nodes.base import Node
from quire.nodes.expressions import Expr
from quire.nodes.output import FilterStep


@dataclass(frozen=True, slots=True)
class Set(Node):
    """Assignment: {% set x = expr %}, {% set a, b = pair %}, {% set ns.x = 1 %}"""

    target: Expr
    value: Expr


@dataclass(frozen=True, slots=True)
class SetBlock(Node):
    """Block assignment: {% set x | upper %}...{% endset %}"""

    target: Expr
    body: Sequence[Node]
    filters: Sequence[FilterStep] = ()


@dataclass(frozen=True, slots=True)
class With(Node):
    """Scoped assignments: {% with a = 1, b = 2 %}...{% endwith %}"""

    targets: Sequence[tuple[Expr, Expr]]
    body: Sequence[Node]


@dataclass(frozen=True, slots=True)
class Do(Node):
    """Evaluate and discard: {% do items.append(x) %}"""

    expr: Expr
