"""Runtime macro objects."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from quire.compiler.instructions import Code, Program
    from quire.vm.frames import Frame
    from quire.vm.machine import Vm
    from quire.vm.state import TemplateState


class Macro:
    """A ``{% macro %}`` or ``{% call %}`` body bound to its defining scope.

    Inside a template, calling a macro pushes an activation on the VM that
    created it. From Python, calling it runs the body to completion and
    returns the rendered text (``Markup`` when autoescaping is on).

    Example:
        >>> forms = env.get_template("forms.html").module()
        >>> forms.field("email", type="email")
        Markup('<input name="email" type="email">')
    """

    __slots__ = ("closure", "code", "context", "name", "program", "tstate", "vm")

    def __init__(
        self,
        name: str,
        code: Code,
        program: Program,
        closure: Frame | None,
        context: Any,
        tstate: TemplateState,
        vm: Vm,
    ):
        self.name = name
        self.code = code
        self.program = program
        self.closure = closure
        self.context = context
        self.tstate = tstate
        self.vm = vm

    @property
    def arguments(self) -> tuple[str, ...]:
        return self.code.params

    @property
    def catch_kwargs(self) -> bool:
        return self.code.kwargs is not None

    @property
    def catch_varargs(self) -> bool:
        return self.code.varargs

    @property
    def caller(self) -> bool:
        """True if the body references ``caller``."""
        return self.code.caller_reference

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return self.vm.invoke(self, args, kwargs)

    def __repr__(self) -> str:
        return f"<Macro {self.name!r} from {self.program.name!r}>"
