"""Code builders: slot allocation, labels and the constant pool.

Every ``Code`` object is assembled by a ``CodeBuilder``. Lexical scopes
inside one code object get frame-relative slots; a name bound in an
enclosing scope of the same code is addressed by ``(depth, slot)``. Names
bound nowhere in the current code compile to dynamic lookups.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import fields
from typing import Any

from quire.compiler.instructions import JUMP_OPS, Code, Instruction, Op
from quire.nodes import Macro, Name, Node


class ConstantPool:
    """Deduplicated constants shared by all code objects of a program."""

    __slots__ = ("_index", "values")

    def __init__(self) -> None:
        self.values: list[Any] = []
        self._index: dict[tuple[type, Any], int] = {}

    def add(self, value: Any) -> int:
        # Keyed by type so that 1, 1.0 and True stay distinct.
        key = (type(value), value)
        index = self._index.get(key)
        if index is None:
            index = len(self.values)
            self.values.append(value)
            self._index[key] = index
        return index


class Scope:
    """Names bound in one lexical scope, mapped to frame slots."""

    __slots__ = ("id", "names", "parent")

    def __init__(self, scope_id: int, names: dict[str, int], parent: Scope | None):
        self.id = scope_id
        self.names = names
        self.parent = parent

    def declare(self, name: str) -> int:
        slot = self.names.get(name)
        if slot is None:
            slot = self.names[name] = len(self.names)
        return slot


class Label:
    """Jump target whose position may not be known yet."""

    __slots__ = ("position", "refs")

    def __init__(self) -> None:
        self.position: int | None = None
        self.refs: list[int] = []


class LoopTarget:
    __slots__ = ("end", "head", "unwind_base")

    def __init__(self, head: Label, end: Label, unwind_base: int):
        self.head = head
        self.end = end
        self.unwind_base = unwind_base


class CodeBuilder:
    """Accumulates instructions, line numbers and scope layouts for one ``Code``."""

    def __init__(self, name: str, constants: ConstantPool):
        self.name = name
        self.constants = constants
        self.instructions: list[Instruction] = []
        self.lines: list[int] = []
        self.layouts: list[dict[str, int]] = []
        self.lineno = 1
        # Runtime state pushed since entry, for unwinding on break/continue
        self.unwind: list[Op] = []
        self.loops: list[LoopTarget] = []
        self.layouts.append({})
        self.scope = Scope(0, self.layouts[0], None)

    # ── emission ──────────────────────────────────────────────────────────

    def emit(self, op: Op, arg: Any = None, arg2: Any = None, arg3: Any = None) -> int:
        self.instructions.append(Instruction(op, arg, arg2, arg3))
        self.lines.append(self.lineno)
        return len(self.instructions) - 1

    def emit_const(self, value: Any) -> int:
        return self.emit(Op.LOAD_CONST, self.constants.add(value))

    def emit_jump(self, op: Op, label: Label, arg2: Any = None) -> int:
        assert op in JUMP_OPS
        index = self.emit(op, label.position, arg2)
        if label.position is None:
            label.refs.append(index)
        return index

    def place(self, label: Label) -> None:
        """Bind ``label`` to the next instruction and back-patch its jumps."""
        label.position = len(self.instructions)
        for ref in label.refs:
            self.instructions[ref] = self.instructions[ref]._replace(arg=label.position)
        label.refs.clear()

    # ── scopes ────────────────────────────────────────────────────────────

    def new_scope(self) -> Scope:
        """Create a scope nested in the current one (not yet entered)."""
        layout: dict[str, int] = {}
        self.layouts.append(layout)
        return Scope(len(self.layouts) - 1, layout, self.scope)

    def enter(self, scope: Scope) -> None:
        self.scope = scope

    def leave(self) -> None:
        assert self.scope.parent is not None
        self.scope = self.scope.parent

    def resolve(self, name: str) -> tuple[int, int] | None:
        """``(depth, slot)`` of ``name`` in this code's scopes, if bound."""
        depth = 0
        scope: Scope | None = self.scope
        while scope is not None:
            slot = scope.names.get(name)
            if slot is not None:
                return depth, slot
            scope = scope.parent
            depth += 1
        return None

    # ── loop control ──────────────────────────────────────────────────────

    def emit_unwind(self, base: int) -> None:
        """Undo runtime state pushed after ``base`` without forgetting it."""
        for pushed in reversed(self.unwind[base:]):
            if pushed is Op.PUSH_FRAME:
                self.emit(Op.POP_FRAME)
            elif pushed is Op.BEGIN_CAPTURE:
                self.emit(Op.END_CAPTURE)
                self.emit(Op.DISCARD)
            elif pushed is Op.PUSH_AUTOESCAPE:
                self.emit(Op.POP_AUTOESCAPE)

    def build(self, **signature: Any) -> Code:
        if not self.instructions or self.instructions[-1].op is not Op.RETURN:
            self.emit(Op.RETURN)
        return Code(
            name=self.name,
            instructions=tuple(self.instructions),
            lines=tuple(self.lines),
            scopes=tuple(self.layouts),
            **signature,
        )


def iter_child_nodes(node: Node) -> Iterator[Node]:
    """Yield the direct child nodes of ``node``, in field order."""
    for f in fields(node):
        yield from _nodes_in(getattr(node, f.name))


def _nodes_in(value: Any) -> Iterator[Node]:
    if isinstance(value, Node):
        yield value
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from _nodes_in(item)
    elif isinstance(value, dict):
        for item in value.values():
            yield from _nodes_in(item)


def referenced_names(nodes: Sequence[Node]) -> set[str]:
    """Names loaded anywhere in ``nodes``, not looking into nested macros."""
    found: set[str] = set()
    stack = list(nodes)
    while stack:
        node = stack.pop()
        if isinstance(node, Macro):
            continue
        if isinstance(node, Name) and node.ctx == "load":
            found.add(node.name)
        stack.extend(iter_child_nodes(node))
    return found
