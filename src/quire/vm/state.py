"""Per-render state shared by the VM and ``pass_state`` callables."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from quire.environment.exceptions import TooComplexError, UndefinedError
from quire.value.display import AutoEscape
from quire.value.undefined import Undefined, UndefinedBehavior

if TYPE_CHECKING:
    from quire.compiler.instructions import Code, Program
    from quire.environment import Environment
    from quire.vm.frames import Frame
    from quire.vm.machine import Vm


class TemplateState:
    """Inheritance bookkeeping for one template being rendered.

    A root render, each ``include`` and each ``import`` get their own
    ``TemplateState``; macros remember the one they were defined under so
    that ``{% block %}`` inside a macro still resolves overrides.

    Attributes:
        blocks: Block name to its override chain, child-most first
        chain: Template names along the ``extends`` chain, child first
        root_frame: Root frame of the template currently laying out the page
    """

    __slots__ = ("blocks", "chain", "root_frame")

    def __init__(self, program: Program):
        self.blocks: dict[str, list[tuple[Program, Code]]] = {
            name: [(program, code)] for name, code in program.blocks.items()
        }
        self.chain: list[str] = [program.name]
        self.root_frame: Frame | None = None

    def add_parent(self, program: Program) -> None:
        self.chain.append(program.name)
        for name, code in program.blocks.items():
            self.blocks.setdefault(name, []).append((program, code))


class State:
    """Render-wide settings and counters.

    Passed as the first argument to filters, tests and globals decorated
    with ``@pass_state``.

    Attributes:
        env: Environment driving the render
        strict: True when undefined values raise on use
        recursion_limit: Maximum activation depth
        fuel: Instruction budget, or None for unlimited
        steps: Instructions executed so far
        depth: Current activation depth
        escapes: Autoescape mode stack; the top applies to ``{{ }}``
    """

    __slots__ = ("depth", "env", "escapes", "fuel", "recursion_limit", "steps", "strict", "vm")

    def __init__(self, env: Environment, vm: Vm):
        self.env = env
        self.vm = vm
        self.strict = env.undefined is UndefinedBehavior.STRICT
        self.recursion_limit: int = env.recursion_limit
        self.fuel: int | None = env.fuel
        self.steps = 0
        self.depth = 0
        self.escapes: list[AutoEscape] = []

    @property
    def autoescape(self) -> AutoEscape:
        return self.escapes[-1] if self.escapes else AutoEscape.NONE

    @property
    def context(self) -> Mapping[str, Any]:
        """Context of the innermost running template."""
        activations = self.vm.activations
        return activations[-1].context if activations else {}

    def autoescape_for(self, program: Program) -> AutoEscape:
        return self.env.autoescape_for(program.name)

    def charge(self, cost: int) -> None:
        """Add ``cost`` to the activation depth, enforcing the recursion limit."""
        if self.depth + cost > self.recursion_limit:
            raise TooComplexError(
                f"recursion limit of {self.recursion_limit} exceeded",
                suggestion="Check for macros, includes or recursive loops that never terminate",
            )
        self.depth += cost

    def burn(self) -> None:
        self.steps += 1
        if self.fuel is not None and self.steps > self.fuel:
            raise TooComplexError(
                f"template ran out of fuel after {self.fuel} instructions",
                suggestion="Raise Environment(fuel=...) or simplify the template",
            )

    def check(self, value: Any) -> Any:
        """Raise ``UndefinedError`` for undefined ``value`` in strict mode."""
        if self.strict and isinstance(value, Undefined):
            raise UndefinedError(value.name, available_names=self.vm.known_names())
        return value
