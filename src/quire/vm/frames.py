"""Scope frames and activations.

A ``Frame`` holds the local slots of one lexical scope. Frames link to
their lexical parent, which is how a bare name falls through from a loop
body to the enclosing block, macro closure or including template.

An ``Activation`` is one running ``Code``: a macro call, a block, an
included template or the root of the render. Activations live on the VM's
own stack, never on the host call stack.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Final

if TYPE_CHECKING:
    from quire.compiler.instructions import Code, Program
    from quire.template.loop_context import LoopContext
    from quire.vm.state import TemplateState


class _Unbound:
    __slots__ = ()

    def __repr__(self) -> str:
        return "UNBOUND"


UNBOUND: Final = _Unbound()


class Frame:
    """Local slots of one scope."""

    __slots__ = ("layout", "loop", "loop_slot", "parent", "slots")

    def __init__(self, layout: Mapping[str, int], parent: Frame | None):
        self.layout = layout
        self.slots: list[Any] = [UNBOUND] * len(layout)
        self.parent = parent
        self.loop: LoopContext | None = None
        self.loop_slot: int | None = None

    def lookup(self, name: str) -> Any:
        """Value of ``name`` in this frame or a lexical parent, else ``UNBOUND``."""
        frame: Frame | None = self
        while frame is not None:
            slot = frame.layout.get(name)
            if slot is not None:
                value = frame.slots[slot]
                if value is not UNBOUND:
                    return value
            frame = frame.parent
        return UNBOUND

    def bound_names(self) -> dict[str, Any]:
        """Names bound directly in this frame."""
        return {
            name: self.slots[slot]
            for name, slot in self.layout.items()
            if self.slots[slot] is not UNBOUND
        }

    def __repr__(self) -> str:
        return f"<Frame {self.bound_names()!r}>"


class Activation:
    """One running code object.

    Attributes:
        code: Instructions being executed
        program: Program owning ``code`` (constants, template name)
        ip: Index of the next instruction
        tstate: Per-template render state (block chains, extends)
        context: Context mapping for dynamic name lookup
        frame_base: Frame stack height on entry
        stack_base: Operand stack height on entry
        escape_base: Autoescape stack height on entry
        capture_base: Output capture depth on entry
        cost: Depth charged against the recursion limit
        returns_value: Captured output is pushed to the caller's stack
        discard: Output is swallowed (imported templates)
        block: ``(name, chain, index)`` when running a block body
        loop_depth: Recursion level for recursive loop code
        on_return: Hook run with the activation's result before it is pushed
    """

    __slots__ = (
        "block",
        "capture_base",
        "code",
        "context",
        "cost",
        "discard",
        "escape_base",
        "frame_base",
        "ip",
        "loop_depth",
        "on_return",
        "pending_parent",
        "program",
        "returns_value",
        "stack_base",
        "tstate",
    )

    def __init__(
        self,
        code: Code,
        program: Program,
        tstate: TemplateState,
        context: Mapping[str, Any],
        *,
        cost: int = 0,
        returns_value: bool = False,
        discard: bool = False,
    ):
        self.code = code
        self.program = program
        self.tstate = tstate
        self.context = context
        self.ip = 0
        self.cost = cost
        self.returns_value = returns_value
        self.discard = discard
        self.frame_base = 0
        self.stack_base = 0
        self.escape_base = 0
        self.capture_base = 0
        self.block: tuple[str, list[tuple[Program, Code]], int] | None = None
        self.loop_depth = 0
        self.on_return: Any = None
        self.pending_parent: Program | None = None

    @property
    def lineno(self) -> int | None:
        """Source line of the instruction currently executing."""
        return self.code.line_at(self.ip - 1)

    def __repr__(self) -> str:
        return f"<Activation {self.program.name}:{self.code.name} ip={self.ip}>"
