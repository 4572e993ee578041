"""Quire Template: a compiled program ready for rendering.

Architecture:
    ```
    Template
    ├── _env_ref: WeakRef[Environment]  # Prevents circular refs
    ├── _program: Program               # Compiled bytecode
    └── _name, _source                  # For error messages
    ```

Memory Safety:
Uses ``weakref.ref(env)`` to break the cycle
``Template → (weak) → Environment → cache → Template``.

Thread-Safety:
- Templates are immutable after construction
- ``render()`` creates a fresh ``Vm`` per call, so all render state is local
- Multiple threads can call ``render()`` concurrently
"""

from __future__ import annotations

import weakref
from collections.abc import Callable, Iterable, Mapping
from typing import TYPE_CHECKING, Any

from quire.value.objects import MISSING, Object

if TYPE_CHECKING:
    from quire.compiler.instructions import Program
    from quire.environment import Environment


class Template:
    """Compiled template ready for rendering.

    Example:
        >>> t = env.from_string("Hello, {{ name }}!")
        >>> t.render(name="World")
        'Hello, World!'
        >>> t.render({"name": "World"})
        'Hello, World!'
    """

    __slots__ = ("_env_ref", "_name", "_program", "_source")

    def __init__(self, env: Environment, program: Program, source: str):
        self._env_ref: weakref.ref[Environment] = weakref.ref(env)
        self._program = program
        self._name = program.name
        self._source = source

    @property
    def _env(self) -> Environment:
        """Get the Environment (dereferences weak reference)."""
        env = self._env_ref()
        if env is None:
            raise RuntimeError(f"Environment has been garbage collected (template: {self._name})")
        return env

    @property
    def name(self) -> str:
        """Template name."""
        return self._name

    @property
    def source(self) -> str:
        return self._source

    @property
    def program(self) -> Program:
        return self._program

    def render(self, *args: Any, **kwargs: Any) -> str:
        """Render template with given context.

        Args:
            *args: Single dict of context variables
            **kwargs: Context variables as keyword arguments

        Returns:
            Rendered template as string
        """
        from quire.vm.machine import Vm

        return Vm(self._env).render(self._program, _context(args, kwargs), source=self._source)

    def render_to(self, writer: Callable[[str], object], *args: Any, **kwargs: Any) -> None:
        """Render, passing output chunks to ``writer`` as they are produced.

        If rendering fails, ``writer`` may already have received a prefix
        of the output.
        """
        from quire.vm.machine import Vm

        Vm(self._env).render_to(
            self._program, _context(args, kwargs), writer, source=self._source
        )

    def module(self, *args: Any, **kwargs: Any) -> TemplateModule:
        """Execute the template and return its exported macros and variables.

        Example:
            >>> helpers = env.get_template("helpers.html").module()
            >>> helpers.greet("Ada")
            'Hello, Ada!'
        """
        from quire.vm.machine import Vm

        return Vm(self._env).module(self._program, _context(args, kwargs), source=self._source)

    def disassemble(self) -> str:
        """Bytecode listing of every code object in the template."""
        return self._program.disassemble()

    def __repr__(self) -> str:
        return f"<Template {self._name}>"


class TemplateModule(Object):
    """Exports of an imported template: its top-level macros and variables.

    Names starting with an underscore are private and not exported.
    Templates read exports as attributes (``{{ forms.input("q") }}``), and
    so can host code.
    """

    __slots__ = ("_exports", "name")

    def __init__(self, name: str, exports: Mapping[str, Any]):
        self.name = name
        self._exports = dict(exports)

    @property
    def exports(self) -> dict[str, Any]:
        return dict(self._exports)

    def get_attr(self, name: str) -> Any:
        return self._exports.get(name, MISSING)

    def iterate(self) -> Iterable[Any]:
        return list(self._exports)

    def length(self) -> int:
        return len(self._exports)

    def contains(self, item: Any) -> bool:
        return item in self._exports

    def render(self) -> str:
        return f"<TemplateModule {self.name!r}>"

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._exports[name]
        except KeyError:
            raise AttributeError(f"template {self.name!r} does not export {name!r}") from None

    def __repr__(self) -> str:
        return f"<TemplateModule {self.name!r} exports={sorted(self._exports)}>"


def _context(args: tuple[Any, ...], kwargs: dict[str, Any]) -> dict[str, Any]:
    ctx: dict[str, Any] = {}
    if args:
        if len(args) == 1 and isinstance(args[0], Mapping):
            ctx.update(args[0])
        else:
            raise TypeError(
                f"render() takes at most 1 positional argument (a dict), got {len(args)}"
            )
    ctx.update(kwargs)
    return ctx
