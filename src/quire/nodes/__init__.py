"""Quire AST node definitions.

Immutable, frozen dataclasses representing template structure. Every node
carries ``lineno`` and ``col_offset`` for error reporting.
"""

from quire.nodes.base import Node
from quire.nodes.control_flow import Break, Continue, For, If
from quire.nodes.expressions import (
    AnyExpr,
    BinOp,
    BoolOp,
    Compare,
    CondExpr,
    Const,
    Dict,
    Expr,
    Filter,
    FuncCall,
    Getattr,
    Getitem,
    List,
    Name,
    Slice,
    Test,
    Tuple,
    UnaryOp,
)
from quire.nodes.functions import CallBlock, Macro
from quire.nodes.output import Autoescape, Data, FilterBlock, FilterStep, Output
from quire.nodes.structure import Block, Extends, FromImport, Import, Include, Template
from quire.nodes.variables import Do, Set, SetBlock, With

__all__ = [
    "AnyExpr",
    "Autoescape",
    "BinOp",
    "Block",
    "BoolOp",
    "Break",
    "CallBlock",
    "Compare",
    "CondExpr",
    "Const",
    "Continue",
    "Data",
    "Dict",
    "Do",
    "Expr",
    "Extends",
    "Filter",
    "FilterBlock",
    "FilterStep",
    "For",
    "FromImport",
    "FuncCall",
    "Getattr",
    "Getitem",
    "If",
    "Import",
    "Include",
    "List",
    "Macro",
    "Name",
    "Node",
    "Output",
    "Set",
    "SetBlock",
    "Slice",
    "Template",
    "Test",
    "Tuple",
    "UnaryOp",
    "With",
]
