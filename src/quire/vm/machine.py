"""The Quire virtual machine.

Executes a compiled ``Program`` against a context. One ``Vm`` serves one
render at a time and owns all mutable render state:

    stack        operand stack
    frames       scope frames (slots + loop state + lexical parent)
    activations  running code objects: root, blocks, macros, includes
    output       text sink with a capture stack
    state        depth and fuel counters, autoescape stack, undefined policy

Macro calls, ``super()``, includes, imports and recursive loops push an
``Activation`` instead of recursing on the host stack, so template
recursion is bounded by the recursion limit alone. The only host-level
re-entry is a Python callable invoking a macro (``Macro.__call__``), which
runs a nested dispatch loop over the same stacks. A macro called from
another render runs on that render's VM, and one called by host code after
its render finished runs on a fresh VM.

Errors raised while executing are annotated with the template name and
line of the failing instruction and the ``(template, line)`` of every
activation boundary crossed, then the stacks are unwound to where the
failed dispatch loop started.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any, Final

from quire.compiler.instructions import Instruction, Op
from quire.environment.exceptions import (
    BadExtendsError,
    BadIncludeError,
    FilterNotFoundError,
    FunctionNotFoundError,
    TemplateError,
    TemplateNotFoundError,
    TemplateRuntimeError,
    TemplateSyntaxError,
    TestNotFoundError,
    UndefinedError,
    build_source_snippet,
)
from quire.template.core import Template, TemplateModule
from quire.template.loop_context import LoopContext
from quire.template.macro import Macro
from quire.utils.decorators import allows_undefined, wants_state
from quire.utils.html import Markup
from quire.value.display import AutoEscape, coerce_autoescape, escape_for
from quire.value.objects import MISSING, Namespace, Object, get_attr, get_item, iterate
from quire.value.ops import (
    BINARY_OPS,
    COMPARE_OPS,
    concat,
    contains,
    is_true,
    neg,
    pos,
    slice_value,
    type_name,
)
from quire.value.undefined import Undefined
from quire.vm.frames import UNBOUND, Activation, Frame
from quire.vm.output import Output
from quire.vm.state import State, TemplateState

if TYPE_CHECKING:
    from quire.compiler.instructions import Code, Program
    from quire.environment import Environment

logger = logging.getLogger(__name__)

# Depth charged against the recursion limit per boundary kind.
MACRO_COST: Final = 4
INCLUDE_COST: Final = 10
BLOCK_COST: Final = 1

_UNARY_OPS: Final[dict[str, Callable[[Any], Any]]] = {"-": neg, "+": pos}

Handler = Callable[[Activation, Instruction], None]


class _LoopEntry:
    """Re-entry point of a ``recursive`` loop, called as ``loop(children)``."""

    __slots__ = ("block", "code", "context", "depth0", "parent", "program", "tstate", "vm")

    def __init__(self, vm: Vm, act: Activation, parent: Frame | None):
        self.vm = vm
        self.code = act.code
        self.program = act.program
        self.tstate = act.tstate
        self.context = act.context
        self.block = act.block
        self.parent = parent
        self.depth0 = act.loop_depth + 1

    def enter(self, iterable: Any) -> None:
        act = Activation(
            self.code,
            self.program,
            self.tstate,
            self.context,
            cost=BLOCK_COST,
            returns_value=True,
        )
        act.loop_depth = self.depth0
        act.block = self.block
        self.vm._enter(act, Frame(self.code.scopes[0], self.parent))
        self.vm.stack.append(iterable)

    def __call__(self, iterable: Any) -> Any:
        vm = self.vm
        stop = len(vm.activations)
        self.enter(iterable)
        vm._run(stop)
        return vm.stack.pop()


class Vm:
    """Stack machine executing compiled templates.

    Example:
        >>> vm = Vm(env)
        >>> vm.render(env.get_template("page.html").program, {"title": "Hi"})
        '<h1>Hi</h1>'

    A ``Vm`` is not thread-safe; ``Template.render`` creates one per call.
    """

    def __init__(self, env: Environment):
        self.env = env
        self.stack: list[Any] = []
        self.frames: list[Frame] = []
        self.activations: list[Activation] = []
        self.output = Output()
        self.state = State(env, self)
        self._sources: dict[str, str] = {}
        self._dispatch: dict[Op, Handler] = {
            op: getattr(self, f"_op_{op.name.lower()}") for op in Op
        }

    # ─────────────────────────────────────────────────────────────────────
    # Entry points
    # ─────────────────────────────────────────────────────────────────────

    def render(
        self, program: Program, context: Mapping[str, Any] | None = None, *, source: str | None = None
    ) -> str:
        """Render ``program`` and return the output."""
        self.output = Output()
        self.execute(program, context or {}, source=source)
        return self.output.getvalue()

    def render_to(
        self,
        program: Program,
        context: Mapping[str, Any] | None,
        writer: Callable[[str], object],
        *,
        source: str | None = None,
    ) -> None:
        """Render ``program``, passing chunks to ``writer`` as they are produced."""
        self.output = Output(writer)
        self.execute(program, context or {}, source=source)

    def execute(
        self, program: Program, context: Mapping[str, Any], *, source: str | None = None
    ) -> None:
        if source is not None:
            self._sources[program.name] = source
        self._enter_template(program, context, None)
        self._run(len(self.activations) - 1)

    def module(
        self, program: Program, context: Mapping[str, Any] | None = None, *, source: str | None = None
    ) -> TemplateModule:
        """Run ``program`` with output discarded and collect its exports."""
        if source is not None:
            self._sources[program.name] = source
        act = self._enter_template(program, context or {}, None, discard=True)
        act.on_return = lambda root: _module_from(program.name, root)
        self._run(len(self.activations) - 1)
        module: TemplateModule = self.stack.pop()
        return module

    def invoke(self, macro: Macro, args: tuple[Any, ...], kwargs: dict[str, Any]) -> Any:
        """Call ``macro`` from host code and return its rendered output.

        A call made while this VM is idle (its render has finished, as for
        macros exported through ``Template.module()``) runs on a fresh
        ``Vm`` with its own stacks and counters.
        """
        vm = self
        if not self.activations:
            vm = Vm(self.env)
            vm._sources.update(self._sources)
        stop = len(vm.activations)
        vm._enter_macro(macro, args, kwargs)
        vm._run(stop)
        return vm.stack.pop()

    def known_names(self) -> frozenset[str]:
        """Names visible from the current position, for "did you mean" hints."""
        names = set(self.env.globals)
        if self.activations:
            names.update(self.activations[-1].context)
        frame = self.frames[-1] if self.frames else None
        while frame is not None:
            names.update(frame.bound_names())
            frame = frame.parent
        return frozenset(names)

    # ─────────────────────────────────────────────────────────────────────
    # Dispatch loop
    # ─────────────────────────────────────────────────────────────────────

    def _run(self, stop: int) -> None:
        """Execute until the activation stack shrinks back to ``stop`` entries."""
        activations = self.activations
        dispatch = self._dispatch
        state = self.state
        metered = state.fuel is not None
        try:
            while len(activations) > stop:
                act = activations[-1]
                instr = act.code.instructions[act.ip]
                act.ip += 1
                if metered:
                    state.burn()
                dispatch[instr.op](act, instr)
        except TemplateError as exc:
            self._annotate(exc, stop)
            self._unwind(stop)
            raise
        except Exception as exc:
            error = TemplateRuntimeError(f"{type(exc).__name__}: {exc}")
            self._annotate(error, stop)
            self._unwind(stop)
            raise error from exc

    def _annotate(self, exc: TemplateError, stop: int) -> None:
        acts = self.activations[stop:]
        if not acts:
            return
        *outer, top = acts
        if exc.lineno is None:
            exc.set_location(top.program.name, top.lineno)
            if exc.source_snippet is None and not isinstance(exc, TemplateSyntaxError):
                source = self._sources.get(top.program.name)
                if source is not None and exc.lineno:
                    exc.source_snippet = build_source_snippet(source, exc.lineno)
        else:
            exc.push_frame(top.program.name, top.lineno or 0)
        for act in reversed(outer):
            exc.push_frame(act.program.name, act.lineno or 0)

    def _unwind(self, stop: int) -> None:
        if len(self.activations) <= stop:
            return
        base = self.activations[stop]
        del self.frames[base.frame_base :]
        del self.stack[base.stack_base :]
        del self.state.escapes[base.escape_base :]
        self.output.truncate(base.capture_base)
        self.state.depth -= sum(act.cost for act in self.activations[stop:])
        del self.activations[stop:]

    # ─────────────────────────────────────────────────────────────────────
    # Activations
    # ─────────────────────────────────────────────────────────────────────

    def _enter(self, act: Activation, frame: Frame) -> None:
        state = self.state
        state.charge(act.cost)
        caller = self.activations[-1] if self.activations else None
        act.frame_base = len(self.frames)
        act.stack_base = len(self.stack)
        act.escape_base = len(state.escapes)
        act.capture_base = self.output.depth
        # Code from the same template keeps the caller's mode.
        if caller is not None and caller.program is act.program:
            state.escapes.append(state.autoescape)
        else:
            state.escapes.append(state.autoescape_for(act.program))
        if act.returns_value or act.discard:
            self.output.begin_capture(discard=act.discard)
        self.frames.append(frame)
        self.activations.append(act)

    def _leave(self, act: Activation) -> None:
        del self.frames[act.frame_base :]
        del self.stack[act.stack_base :]
        del self.state.escapes[act.escape_base :]
        self.output.truncate(act.capture_base)
        self.state.depth -= act.cost
        self.activations.pop()

    def _enter_template(
        self,
        program: Program,
        context: Mapping[str, Any],
        parent: Frame | None,
        *,
        cost: int = 0,
        discard: bool = False,
    ) -> Activation:
        tstate = TemplateState(program)
        act = Activation(program.root, program, tstate, context, cost=cost, discard=discard)
        frame = Frame(program.root.scopes[0], parent)
        tstate.root_frame = frame
        self._enter(act, frame)
        return act

    def _enter_parent(self, act: Activation) -> None:
        """Continue a child template with the root code of its parent."""
        parent = act.pending_parent
        assert parent is not None
        state = self.state
        act.pending_parent = None
        self.output.end_capture()
        child_root = self.frames[act.frame_base]
        del self.frames[act.frame_base :]
        del self.stack[act.stack_base :]
        del state.escapes[act.escape_base :]
        state.charge(BLOCK_COST)
        act.cost += BLOCK_COST
        state.escapes.append(state.autoescape_for(parent))
        act.code = parent.root
        act.program = parent
        act.ip = 0
        frame = Frame(parent.root.scopes[0], child_root)
        act.tstate.root_frame = frame
        self.frames.append(frame)

    def _enter_macro(self, macro: Macro, args: tuple[Any, ...], kwargs: dict[str, Any]) -> None:
        code = macro.code
        frame = Frame(code.scopes[0], macro.closure)
        self._bind_arguments(macro, frame, args, kwargs)
        act = Activation(
            code,
            macro.program,
            macro.tstate,
            macro.context,
            cost=MACRO_COST,
            returns_value=True,
        )
        self._enter(act, frame)

    def _bind_arguments(
        self, macro: Macro, frame: Frame, args: tuple[Any, ...], kwargs: dict[str, Any]
    ) -> None:
        code = macro.code
        params = code.params
        layout = frame.layout
        slots = frame.slots
        count = len(params)

        if len(args) > count:
            if not code.varargs:
                raise TemplateRuntimeError(
                    f"macro '{macro.name}' takes {count} positional argument"
                    f"{'' if count == 1 else 's'} but {len(args)} were given"
                )
            slots[layout["varargs"]] = tuple(args[count:])
        elif code.varargs:
            slots[layout["varargs"]] = ()
        for i, value in enumerate(args[:count]):
            slots[i] = value

        extra: dict[str, Any] = {}
        for key, value in kwargs.items():
            if key in params:
                i = params.index(key)
                if i < len(args):
                    raise TemplateRuntimeError(
                        f"macro '{macro.name}' got multiple values for argument '{key}'"
                    )
                slots[i] = value
            elif key == "caller" and code.caller_reference:
                slots[layout["caller"]] = value
            elif code.kwargs is not None:
                extra[key] = value
            elif key != "caller":
                raise TemplateRuntimeError(
                    f"macro '{macro.name}' got an unexpected keyword argument '{key}'",
                    suggestion=f"Accepted arguments: {', '.join(params) or '(none)'}",
                )
        if code.kwargs is not None:
            slots[layout[code.kwargs]] = extra

        # Parameters with defaults stay unbound; the prologue fills them in.
        for i in range(count - code.defaults):
            if slots[i] is UNBOUND:
                slots[i] = Undefined(params[i])

    # ─────────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────────

    def _lookup(self, act: Activation, name: str, frame: Frame | None) -> Any:
        if frame is not None:
            value = frame.lookup(name)
            if value is not UNBOUND:
                return value
        context = act.context
        if name in context:
            return context[name]
        env_globals = self.env.globals
        if name in env_globals:
            return env_globals[name]
        return Undefined(name)

    def _truth(self, value: Any) -> bool:
        return is_true(self.state.check(value))

    def _pop_arguments(
        self, argc: int, kwnames: tuple[str, ...]
    ) -> tuple[tuple[Any, ...], dict[str, Any]]:
        total = argc + len(kwnames)
        if not total:
            return (), {}
        values = self.stack[-total:]
        del self.stack[-total:]
        return tuple(values[:argc]), dict(zip(kwnames, values[argc:], strict=True))

    def _invoke(
        self, func: Callable[..., Any], args: tuple[Any, ...], kwargs: dict[str, Any], what: str
    ) -> Any:
        """Call a host callable, wrapping non-template errors."""
        state = self.state
        if state.strict and not allows_undefined(func):
            for value in args:
                state.check(value)
            for value in kwargs.values():
                state.check(value)
        if wants_state(func):
            args = (state, *args)
        try:
            return func(*args, **kwargs)
        except TemplateError:
            raise
        except Exception as exc:
            raise TemplateRuntimeError(f"{what} failed: {type(exc).__name__}: {exc}") from exc

    def _call(self, callee: Any, args: tuple[Any, ...], kwargs: dict[str, Any], what: str) -> None:
        if isinstance(callee, Macro):
            if callee.vm is not self:
                self._adopt_sources(callee.vm)
            self._enter_macro(callee, args, kwargs)
            return
        if isinstance(callee, LoopContext):
            entry = callee.recursion
            if isinstance(entry, _LoopEntry) and entry.vm is self:
                if kwargs or len(args) != 1:
                    raise TemplateRuntimeError("loop() takes exactly one argument")
                entry.enter(args[0])
                return
        if isinstance(callee, Undefined):
            raise UndefinedError(callee.name, available_names=self.known_names())
        if isinstance(callee, Object):
            try:
                result = callee.call(self.state, args, kwargs)
            except TemplateError:
                raise
            except Exception as exc:
                raise TemplateRuntimeError(
                    f"{what} failed: {type(exc).__name__}: {exc}"
                ) from exc
        elif callable(callee):
            result = self._invoke(callee, args, kwargs, what)
        else:
            raise TemplateRuntimeError(f"'{type_name(callee)}' object is not callable")
        self.stack.append(result)

    def _adopt_sources(self, other: Vm) -> None:
        for name, source in other._sources.items():
            self._sources.setdefault(name, source)

    def _load(self, target: Any) -> Template:
        if isinstance(target, Template):
            template = target
        else:
            self.state.check(target)
            if not isinstance(target, str):
                raise TemplateRuntimeError(
                    f"template name must be a string, not '{type_name(target)}'"
                )
            template = self.env.get_template(target)
        self._sources.setdefault(template.name, template.source)
        return template

    def _items(self, value: Any) -> list[Any]:
        if isinstance(value, Undefined):
            return []
        items = iterate(value)
        if items is None:
            raise TemplateRuntimeError(f"'{type_name(value)}' object is not iterable")
        return list(items)

    # ─────────────────────────────────────────────────────────────────────
    # Stack and names
    # ─────────────────────────────────────────────────────────────────────

    def _op_load_const(self, act: Activation, instr: Instruction) -> None:
        self.stack.append(act.program.constants[instr.arg])

    def _op_load_local(self, act: Activation, instr: Instruction) -> None:
        frame = self.frames[-1]
        for _ in range(instr.arg):
            frame = frame.parent  # type: ignore[assignment]
        value = frame.slots[instr.arg2]
        if value is UNBOUND:
            value = self._lookup(act, instr.arg3, frame.parent)
        self.stack.append(value)

    def _op_load_name(self, act: Activation, instr: Instruction) -> None:
        self.stack.append(self._lookup(act, instr.arg, self.frames[-1]))

    def _op_store_local(self, act: Activation, instr: Instruction) -> None:
        self.frames[-1].slots[instr.arg] = self.stack.pop()

    def _op_is_bound(self, act: Activation, instr: Instruction) -> None:
        self.stack.append(self.frames[-1].slots[instr.arg] is not UNBOUND)

    def _op_dup(self, act: Activation, instr: Instruction) -> None:
        self.stack.append(self.stack[-1])

    def _op_discard(self, act: Activation, instr: Instruction) -> None:
        self.stack.pop()

    # ─────────────────────────────────────────────────────────────────────
    # Values
    # ─────────────────────────────────────────────────────────────────────

    def _op_get_attr(self, act: Activation, instr: Instruction) -> None:
        obj = self.stack.pop()
        attr = instr.arg
        if isinstance(obj, Undefined):
            self.state.check(obj)
            self.stack.append(obj.child(attr))
            return
        value = get_attr(obj, attr)
        if value is MISSING:
            value = Undefined(f"{instr.arg2}.{attr}" if instr.arg2 else attr)
        self.stack.append(value)

    def _op_get_item(self, act: Activation, instr: Instruction) -> None:
        key = self.state.check(self.stack.pop())
        obj = self.stack.pop()
        if isinstance(obj, Undefined):
            self.state.check(obj)
            self.stack.append(Undefined(f"{obj.name}[{key!r}]"))
            return
        value = get_item(obj, key)
        if value is MISSING:
            value = Undefined(f"{instr.arg or ''}[{key!r}]")
        self.stack.append(value)

    def _op_set_attr(self, act: Activation, instr: Instruction) -> None:
        obj = self.state.check(self.stack.pop())
        value = self.stack.pop()
        if not isinstance(obj, Namespace):
            raise TemplateRuntimeError(
                f"cannot assign attribute '{instr.arg}' on '{type_name(obj)}'",
                suggestion="Only namespace() objects support attribute assignment",
            )
        obj.set_attr(instr.arg, value)

    def _op_slice(self, act: Activation, instr: Instruction) -> None:
        step = self.stack.pop()
        stop = self.stack.pop()
        start = self.stack.pop()
        obj = self.state.check(self.stack.pop())
        if isinstance(obj, Undefined):
            self.stack.append(obj)
            return
        self.stack.append(slice_value(obj, start, stop, step))

    def _op_build_list(self, act: Activation, instr: Instruction) -> None:
        count = instr.arg
        if count:
            items = self.stack[-count:]
            del self.stack[-count:]
        else:
            items = []
        self.stack.append(tuple(items) if instr.arg2 else items)

    def _op_build_map(self, act: Activation, instr: Instruction) -> None:
        count = instr.arg * 2
        values = self.stack[-count:] if count else []
        if count:
            del self.stack[-count:]
        for key in values[::2]:
            self.state.check(key)
        self.stack.append(dict(zip(values[::2], values[1::2], strict=True)))

    def _op_list_append(self, act: Activation, instr: Instruction) -> None:
        item = self.stack.pop()
        self.stack[-1].append(item)

    def _op_unpack(self, act: Activation, instr: Instruction) -> None:
        value = self.state.check(self.stack.pop())
        items = iterate(value)
        if items is None:
            raise TemplateRuntimeError(f"cannot unpack '{type_name(value)}'")
        values = list(items)
        if len(values) != instr.arg:
            raise TemplateRuntimeError(
                f"expected {instr.arg} values to unpack, got {len(values)}"
            )
        self.stack.extend(reversed(values))

    def _op_binary_op(self, act: Activation, instr: Instruction) -> None:
        right = self.stack.pop()
        left = self.stack.pop()
        if isinstance(left, Undefined) or isinstance(right, Undefined):
            self.state.check(left)
            self.state.check(right)
            self.stack.append(left if isinstance(left, Undefined) else right)
            return
        self.stack.append(BINARY_OPS[instr.arg](left, right))

    def _op_unary_op(self, act: Activation, instr: Instruction) -> None:
        operand = self.state.check(self.stack.pop())
        if isinstance(operand, Undefined):
            self.stack.append(operand)
            return
        self.stack.append(_UNARY_OPS[instr.arg](operand))

    def _op_unary_not(self, act: Activation, instr: Instruction) -> None:
        self.stack.append(not self._truth(self.stack.pop()))

    def _op_concat(self, act: Activation, instr: Instruction) -> None:
        right = self.state.check(self.stack.pop())
        left = self.state.check(self.stack.pop())
        self.stack.append(concat(left, right))

    def _op_compare(self, act: Activation, instr: Instruction) -> None:
        ops = instr.arg
        count = len(ops) + 1
        operands = self.stack[-count:]
        del self.stack[-count:]
        for value in operands:
            self.state.check(value)
        result = True
        for op, left, right in zip(ops, operands, operands[1:], strict=False):
            if op == "in":
                ok = contains(right, left)
            elif op == "not in":
                ok = not contains(right, left)
            else:
                ok = COMPARE_OPS[op](left, right)
            if not ok:
                result = False
                break
        self.stack.append(result)

    # ─────────────────────────────────────────────────────────────────────
    # Scopes and loops
    # ─────────────────────────────────────────────────────────────────────

    def _op_push_frame(self, act: Activation, instr: Instruction) -> None:
        self.frames.append(Frame(act.code.scopes[instr.arg], self.frames[-1]))

    def _op_pop_frame(self, act: Activation, instr: Instruction) -> None:
        self.frames.pop()

    def _op_push_loop(self, act: Activation, instr: Instruction) -> None:
        items = self._items(self.state.check(self.stack.pop()))
        recurse = None
        if instr.arg3 is not None:
            recurse = _LoopEntry(self, act, self.frames[act.frame_base].parent)
        frame = Frame(act.code.scopes[instr.arg], self.frames[-1])
        frame.loop = LoopContext(items, act.loop_depth, recurse)
        frame.loop_slot = instr.arg2
        self.frames.append(frame)

    def _op_iterate(self, act: Activation, instr: Instruction) -> None:
        frame = self.frames[-1]
        loop = frame.loop
        assert loop is not None
        more, item = loop.advance()
        if not more:
            act.ip = instr.arg
            return
        # Each iteration starts from a clean scope.
        frame.slots = [UNBOUND] * len(frame.slots)
        if frame.loop_slot is not None:
            frame.slots[frame.loop_slot] = loop
        self.stack.append(item)

    def _op_did_not_iterate(self, act: Activation, instr: Instruction) -> None:
        loop = self.frames[-1].loop
        assert loop is not None
        self.stack.append(not loop.iterated)

    # ─────────────────────────────────────────────────────────────────────
    # Control flow
    # ─────────────────────────────────────────────────────────────────────

    def _op_jump(self, act: Activation, instr: Instruction) -> None:
        act.ip = instr.arg

    def _op_pop_jump_if_false(self, act: Activation, instr: Instruction) -> None:
        if not self._truth(self.stack.pop()):
            act.ip = instr.arg

    def _op_pop_jump_if_true(self, act: Activation, instr: Instruction) -> None:
        if self._truth(self.stack.pop()):
            act.ip = instr.arg

    def _op_jump_if_false_or_pop(self, act: Activation, instr: Instruction) -> None:
        if not self._truth(self.stack[-1]):
            act.ip = instr.arg
        else:
            self.stack.pop()

    def _op_jump_if_true_or_pop(self, act: Activation, instr: Instruction) -> None:
        if self._truth(self.stack[-1]):
            act.ip = instr.arg
        else:
            self.stack.pop()

    # ─────────────────────────────────────────────────────────────────────
    # Output
    # ─────────────────────────────────────────────────────────────────────

    def _op_emit(self, act: Activation, instr: Instruction) -> None:
        value = self.state.check(self.stack.pop())
        self.output.write(escape_for(value, self.state.autoescape))

    def _op_emit_raw(self, act: Activation, instr: Instruction) -> None:
        self.output.write(act.program.constants[instr.arg])

    def _op_begin_capture(self, act: Activation, instr: Instruction) -> None:
        self.output.begin_capture()

    def _op_end_capture(self, act: Activation, instr: Instruction) -> None:
        text = self.output.end_capture()
        if self.state.autoescape is not AutoEscape.NONE:
            self.stack.append(Markup(text))
        else:
            self.stack.append(text)

    def _op_push_autoescape(self, act: Activation, instr: Instruction) -> None:
        mode = coerce_autoescape(self.state.check(self.stack.pop()))
        self.state.escapes.append(mode)

    def _op_pop_autoescape(self, act: Activation, instr: Instruction) -> None:
        self.state.escapes.pop()

    # ─────────────────────────────────────────────────────────────────────
    # Calls
    # ─────────────────────────────────────────────────────────────────────

    def _op_apply_filter(self, act: Activation, instr: Instruction) -> None:
        name = instr.arg
        args, kwargs = self._pop_arguments(instr.arg2, instr.arg3)
        value = self.stack.pop()
        func = self.env.filters.get(name)
        if func is None:
            raise FilterNotFoundError(name, available_names=frozenset(self.env.filters))
        self.stack.append(self._invoke(func, (value, *args), kwargs, f"filter '{name}'"))

    def _op_perform_test(self, act: Activation, instr: Instruction) -> None:
        name = instr.arg
        args, kwargs = self._pop_arguments(instr.arg2, instr.arg3)
        value = self.stack.pop()
        func = self.env.tests.get(name)
        if func is None:
            raise TestNotFoundError(name, available_names=frozenset(self.env.tests))
        self.stack.append(bool(self._invoke(func, (value, *args), kwargs, f"test '{name}'")))

    def _op_call(self, act: Activation, instr: Instruction) -> None:
        args, kwargs = self._pop_arguments(instr.arg, instr.arg2)
        callee = self.stack.pop()
        self._call(callee, args, kwargs, "call")

    def _op_call_name(self, act: Activation, instr: Instruction) -> None:
        name = instr.arg
        args, kwargs = self._pop_arguments(instr.arg2, instr.arg3)
        if name == "super":
            self._call_super(act)
            return
        callee = self._lookup(act, name, self.frames[-1])
        if isinstance(callee, Undefined):
            raise FunctionNotFoundError(name, available_names=self.known_names())
        self._call(callee, args, kwargs, f"call to '{name}'")

    def _call_super(self, act: Activation) -> None:
        if act.block is None:
            raise TemplateRuntimeError("super() can only be used inside a block")
        name, chain, index = act.block
        if index + 1 >= len(chain):
            raise TemplateRuntimeError(
                f"block '{name}' has no parent block to call super() on",
                suggestion="super() needs the block to exist in a template this one extends",
            )
        program, code = chain[index + 1]
        new = Activation(
            code, program, act.tstate, act.context, cost=BLOCK_COST, returns_value=True
        )
        new.block = (name, chain, index + 1)
        self._enter(new, Frame(code.scopes[0], self.frames[act.frame_base].parent))

    def _op_call_loop(self, act: Activation, instr: Instruction) -> None:
        iterable = self.stack.pop()
        code = act.program.macros[instr.arg]
        new = Activation(code, act.program, act.tstate, act.context)
        new.block = act.block
        self._enter(new, Frame(code.scopes[0], self.frames[-1]))
        self.stack.append(iterable)

    def _op_build_macro(self, act: Activation, instr: Instruction) -> None:
        code: Code = act.program.macros[instr.arg]
        self.stack.append(
            Macro(
                code.name.removeprefix("macro "),
                code,
                act.program,
                self.frames[-1],
                act.context,
                act.tstate,
                self,
            )
        )

    def _op_return(self, act: Activation, instr: Instruction) -> None:
        if act.pending_parent is not None:
            self._enter_parent(act)
            return
        text = ""
        if act.returns_value or act.discard:
            text = self.output.end_capture()
        escaping = self.state.autoescape is not AutoEscape.NONE
        root = self.frames[act.frame_base]
        self._leave(act)
        if act.on_return is not None:
            self.stack.append(act.on_return(root))
        elif act.returns_value:
            self.stack.append(Markup(text) if escaping else text)

    # ─────────────────────────────────────────────────────────────────────
    # Templates
    # ─────────────────────────────────────────────────────────────────────

    def _op_call_block(self, act: Activation, instr: Instruction) -> None:
        if act.pending_parent is not None:
            return
        name = instr.arg
        chain = act.tstate.blocks.get(name) or [(act.program, act.program.blocks[name])]
        program, code = chain[0]
        parent = self.frames[-1] if instr.arg2 else act.tstate.root_frame
        new = Activation(code, program, act.tstate, act.context, cost=BLOCK_COST)
        new.block = (name, chain, 0)
        self._enter(new, Frame(code.scopes[0], parent))

    def _op_extends(self, act: Activation, instr: Instruction) -> None:
        target = self.stack.pop()
        try:
            template = self._load(target)
        except TemplateNotFoundError as exc:
            raise BadExtendsError(
                f"parent template {target!r} not found",
                suggestion="Check the name passed to {% extends %}",
            ) from exc
        tstate = act.tstate
        if template.name in tstate.chain:
            cycle = " -> ".join([*tstate.chain, template.name])
            raise BadExtendsError(f"cyclic template inheritance: {cycle}")
        logger.debug("%s extends %s", tstate.chain[-1], template.name)
        tstate.add_parent(template.program)
        act.pending_parent = template.program
        self.output.begin_capture(discard=True)

    def _op_include(self, act: Activation, instr: Instruction) -> None:
        target = self.stack.pop()
        names = target if isinstance(target, (list, tuple)) else [target]
        template = None
        missing: TemplateNotFoundError | None = None
        for candidate in names:
            try:
                template = self._load(candidate)
                break
            except TemplateNotFoundError as exc:
                missing = exc
        if template is None:
            if instr.arg:
                return
            listed = ", ".join(repr(name) for name in names) or "(none)"
            raise BadIncludeError(
                f"included template not found: {listed}",
                suggestion="Add 'ignore missing' to skip absent templates",
            ) from missing
        if instr.arg2:
            self._enter_template(
                template.program, act.context, self.frames[-1], cost=INCLUDE_COST
            )
        else:
            self._enter_template(template.program, {}, None, cost=INCLUDE_COST)

    def _op_import(self, act: Activation, instr: Instruction) -> None:
        template = self._load(self.stack.pop())
        context = act.context if instr.arg else {}
        new = self._enter_template(
            template.program, context, None, cost=INCLUDE_COST, discard=True
        )
        new.on_return = lambda root: _module_from(template.name, root)

    def _op_import_name(self, act: Activation, instr: Instruction) -> None:
        module = self.stack.pop()
        value = get_attr(module, instr.arg)
        if value is MISSING:
            raise TemplateRuntimeError(
                f"template {getattr(module, 'name', '?')!r} does not export {instr.arg!r}",
                suggestion="Names starting with an underscore are private",
            )
        self.stack.append(value)


def _module_from(name: str, root: Frame) -> TemplateModule:
    exports = {key: value for key, value in root.bound_names().items() if not key.startswith("_")}
    return TemplateModule(name, exports)
