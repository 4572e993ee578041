"""Bytecode for the Quire VM.

A compiled template is a ``Program``: a constant pool shared by every
``Code`` object in it, the root code, one code object per ``{% block %}``
and an indexed table of sub-programs (macros, ``call`` bodies and
recursive loops).

Instructions are ``(op, arg, arg2, arg3)`` tuples. Operand meaning per op:

    LOAD_CONST      arg=constant index
    LOAD_LOCAL      arg=depth, arg2=slot, arg3=name (dynamic fallback if unbound)
    LOAD_NAME       arg=name
    STORE_LOCAL     arg=slot
    IS_BOUND        arg=slot
    GET_ATTR        arg=attribute name, arg2=dotted path of the object or None
    GET_ITEM        arg=dotted path of the object or None
    SET_ATTR        arg=attribute name (stack: value, obj)
    BUILD_LIST      arg=count, arg2=True to build a tuple
    BUILD_MAP       arg=pair count
    UNPACK          arg=count
    BINARY_OP       arg=operator
    UNARY_OP        arg="-" or "+"
    COMPARE         arg=tuple of operators (chained comparison)
    PUSH_LOOP       arg=scope id, arg2=slot of ``loop`` or None, arg3=recursive code index
    ITERATE         arg=jump target when exhausted
    PUSH_FRAME      arg=scope id
    JUMP*           arg=target instruction index
    EMIT_RAW        arg=constant index
    APPLY_FILTER    arg=name, arg2=positional count, arg3=keyword names
    PERFORM_TEST    arg=name, arg2=positional count, arg3=keyword names
    CALL            arg=positional count, arg2=keyword names
    CALL_NAME       arg=name, arg2=positional count, arg3=keyword names
    CALL_LOOP       arg=code index
    BUILD_MACRO     arg=code index
    CALL_BLOCK      arg=block name
    INCLUDE         arg=ignore missing, arg2=with context
    IMPORT          arg=with context
    IMPORT_NAME     arg=exported name
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import IntEnum, auto
from typing import Any, NamedTuple


class Op(IntEnum):
    """VM opcodes."""

    # Stack and names
    LOAD_CONST = auto()
    LOAD_LOCAL = auto()
    LOAD_NAME = auto()
    STORE_LOCAL = auto()
    IS_BOUND = auto()
    DUP = auto()
    DISCARD = auto()

    # Values
    GET_ATTR = auto()
    GET_ITEM = auto()
    SET_ATTR = auto()
    SLICE = auto()
    BUILD_LIST = auto()
    BUILD_MAP = auto()
    LIST_APPEND = auto()
    UNPACK = auto()
    BINARY_OP = auto()
    UNARY_OP = auto()
    UNARY_NOT = auto()
    CONCAT = auto()
    COMPARE = auto()

    # Scopes and loops
    PUSH_FRAME = auto()
    POP_FRAME = auto()
    PUSH_LOOP = auto()
    ITERATE = auto()
    DID_NOT_ITERATE = auto()

    # Control flow
    JUMP = auto()
    POP_JUMP_IF_FALSE = auto()
    POP_JUMP_IF_TRUE = auto()
    JUMP_IF_FALSE_OR_POP = auto()
    JUMP_IF_TRUE_OR_POP = auto()

    # Output
    EMIT = auto()
    EMIT_RAW = auto()
    BEGIN_CAPTURE = auto()
    END_CAPTURE = auto()
    PUSH_AUTOESCAPE = auto()
    POP_AUTOESCAPE = auto()

    # Calls
    APPLY_FILTER = auto()
    PERFORM_TEST = auto()
    CALL = auto()
    CALL_NAME = auto()
    CALL_LOOP = auto()
    BUILD_MACRO = auto()
    RETURN = auto()

    # Templates
    CALL_BLOCK = auto()
    EXTENDS = auto()
    INCLUDE = auto()
    IMPORT = auto()
    IMPORT_NAME = auto()


class Instruction(NamedTuple):
    op: Op
    arg: Any = None
    arg2: Any = None
    arg3: Any = None

    def __repr__(self) -> str:
        args = [repr(a) for a in (self.arg, self.arg2, self.arg3)]
        while args and args[-1] == "None":
            args.pop()
        return f"{self.op.name}({', '.join(args)})"


JUMP_OPS = frozenset(
    {
        Op.JUMP,
        Op.POP_JUMP_IF_FALSE,
        Op.POP_JUMP_IF_TRUE,
        Op.JUMP_IF_FALSE_OR_POP,
        Op.JUMP_IF_TRUE_OR_POP,
        Op.ITERATE,
    }
)


@dataclass(frozen=True, slots=True)
class Code:
    """One linear instruction stream.

    ``scopes[0]`` is the layout of the frame created on entry; nested
    ``for``/``with`` scopes are pushed by ``PUSH_LOOP``/``PUSH_FRAME``.
    Macro code additionally carries its signature: parameter names (slots
    ``0..len(params)-1``), how many trailing parameters have defaults, and
    the names of the catch-all slots it uses.
    """

    name: str
    instructions: tuple[Instruction, ...]
    lines: tuple[int, ...]
    scopes: tuple[Mapping[str, int], ...]
    params: tuple[str, ...] = ()
    defaults: int = 0
    kwargs: str | None = None
    varargs: bool = False
    caller_reference: bool = False

    def line_at(self, index: int) -> int | None:
        if not self.lines:
            return None
        return self.lines[min(max(index, 0), len(self.lines) - 1)]

    def disassemble(self) -> str:
        """Human-readable listing, one instruction per line."""
        rows = [f"<code {self.name}>"]
        for i, (instr, line) in enumerate(zip(self.instructions, self.lines, strict=True)):
            rows.append(f"{line:>5} {i:>5}  {instr!r}")
        return "\n".join(rows)


@dataclass(frozen=True, slots=True)
class Program:
    """Immutable compiled form of one template.

    ``parent`` is the ``extends`` target when it is a string literal; the
    actual parent is resolved at render time.
    """

    name: str
    constants: tuple[Any, ...]
    root: Code
    blocks: Mapping[str, Code] = field(default_factory=dict)
    macros: tuple[Code, ...] = ()
    parent: str | None = None

    def disassemble(self) -> str:
        parts = [self.root.disassemble()]
        parts.extend(code.disassemble() for code in self.blocks.values())
        parts.extend(code.disassemble() for code in self.macros)
        return "\n\n".join(parts)
