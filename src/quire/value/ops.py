"""Operators on template values.

Arithmetic promotes ``int`` to ``float`` when the operands are mixed. ``/``
is true division; ``//`` and ``%`` floor toward negative infinity. ``+`` is
rejected when either side is a string (use ``~``); lists and tuples
concatenate. Ordering is total: values of different kinds order by kind
(undefined < none < number < string < bytes < sequence < map < dynamic).

Undefined operands are not handled here; the VM applies the undefined
policy before dispatching to these functions.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import Any, Final

from quire.environment.exceptions import TemplateRuntimeError
from quire.utils.html import Markup, html_escape
from quire.value.display import to_str
from quire.value.objects import Object, ValueKind, is_number, iterate, kind_of
from quire.value.undefined import Undefined

# Longest string/sequence a single `*` repetition may produce.
MAX_REPEAT_LENGTH: Final = 10_000_000

# Largest bit length an integer `**` result may reach.
MAX_POW_BITS: Final = 100_000

_KIND_RANK: Final = {
    ValueKind.UNDEFINED: 0,
    ValueKind.NONE: 1,
    ValueKind.BOOL: 2,
    ValueKind.NUMBER: 2,
    ValueKind.STRING: 3,
    ValueKind.BYTES: 4,
    ValueKind.SEQUENCE: 5,
    ValueKind.MAP: 6,
    ValueKind.DYNAMIC: 7,
}


def type_name(value: Any) -> str:
    """Template-level type name used in error messages."""
    return kind_of(value).value


def _unsupported(op: str, a: Any, b: Any) -> TemplateRuntimeError:
    return TemplateRuntimeError(
        f"unsupported operand types for {op}: '{type_name(a)}' and '{type_name(b)}'"
    )


# ─────────────────────────────────────────────────────────────────────────────
# Arithmetic
# ─────────────────────────────────────────────────────────────────────────────


def add(a: Any, b: Any) -> Any:
    if isinstance(a, str) or isinstance(b, str):
        raise TemplateRuntimeError(
            f"cannot use + with '{type_name(a)}' and '{type_name(b)}'",
            suggestion="Use ~ to concatenate strings: {{ a ~ b }}",
        )
    if is_number(a) and is_number(b):
        return a + b
    if isinstance(a, list) and isinstance(b, list):
        return a + b
    if isinstance(a, tuple) and isinstance(b, tuple):
        return a + b
    raise _unsupported("+", a, b)


def sub(a: Any, b: Any) -> Any:
    if is_number(a) and is_number(b):
        return a - b
    raise _unsupported("-", a, b)


def _repeat(seq: Any, count: Any) -> Any:
    if isinstance(count, bool) or not isinstance(count, int):
        raise _unsupported("*", seq, count)
    if len(seq) * max(count, 0) > MAX_REPEAT_LENGTH:
        raise TemplateRuntimeError(
            f"repetition would produce more than {MAX_REPEAT_LENGTH} items"
        )
    return seq * count


def mul(a: Any, b: Any) -> Any:
    if is_number(a) and is_number(b):
        return a * b
    if isinstance(a, (str, list, tuple)):
        return _repeat(a, b)
    if isinstance(b, (str, list, tuple)):
        return _repeat(b, a)
    raise _unsupported("*", a, b)


def _check_divisor(op: str, a: Any, b: Any) -> None:
    if not (is_number(a) and is_number(b)):
        raise _unsupported(op, a, b)
    if b == 0:
        raise TemplateRuntimeError(f"division by zero in {op}")


def truediv(a: Any, b: Any) -> Any:
    _check_divisor("/", a, b)
    return a / b


def floordiv(a: Any, b: Any) -> Any:
    _check_divisor("//", a, b)
    return a // b


def mod(a: Any, b: Any) -> Any:
    _check_divisor("%", a, b)
    return a % b


def pow_(a: Any, b: Any) -> Any:
    if not (is_number(a) and is_number(b)):
        raise _unsupported("**", a, b)
    if isinstance(a, int) and isinstance(b, int) and b > 0:
        if max(a.bit_length(), 1) * b > MAX_POW_BITS and abs(a) > 1:
            raise TemplateRuntimeError("result of ** is too large")
    try:
        return a**b
    except (OverflowError, ZeroDivisionError) as exc:
        raise TemplateRuntimeError(f"invalid operation {a!r} ** {b!r}") from exc


def neg(value: Any) -> Any:
    if is_number(value):
        return -value
    raise TemplateRuntimeError(f"cannot negate '{type_name(value)}'")


def pos(value: Any) -> Any:
    if is_number(value):
        return +value
    raise TemplateRuntimeError(f"unary + is not supported for '{type_name(value)}'")


BINARY_OPS: Final[dict[str, Callable[[Any, Any], Any]]] = {
    "+": add,
    "-": sub,
    "*": mul,
    "/": truediv,
    "//": floordiv,
    "%": mod,
    "**": pow_,
}


def concat(a: Any, b: Any) -> str:
    """``a ~ b``: stringify both sides and concatenate.

    If either side is safe, the other side is escaped and the result is safe.
    """
    if isinstance(a, Markup) or isinstance(b, Markup):
        left = a if isinstance(a, Markup) else html_escape(to_str(a))
        right = b if isinstance(b, Markup) else html_escape(to_str(b))
        return Markup(str.__add__(left, right))
    return to_str(a) + to_str(b)


# ─────────────────────────────────────────────────────────────────────────────
# Truthiness, equality and ordering
# ─────────────────────────────────────────────────────────────────────────────


def is_true(value: Any) -> bool:
    """Template truthiness: empty, zero, none and undefined are false."""
    if isinstance(value, Object):
        return value.is_true()
    return bool(value)


def _is_seq(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def eq(a: Any, b: Any) -> bool:
    """Template equality: numbers compare across types, lists equal tuples."""
    if _is_seq(a) and _is_seq(b):
        return len(a) == len(b) and all(eq(x, y) for x, y in zip(a, b, strict=True))
    if isinstance(a, Mapping) and isinstance(b, Mapping):
        return len(a) == len(b) and all(k in b and eq(v, b[k]) for k, v in a.items())
    return bool(a == b)


def sort_key(value: Any) -> tuple[Any, ...]:
    """Key that realises the total ordering of template values."""
    kind = kind_of(value)
    rank = _KIND_RANK[kind]
    if kind in (ValueKind.NUMBER, ValueKind.BOOL):
        if value != value:  # NaN sorts after every other number
            return (rank, 1, 0)
        return (rank, 0, value)
    if kind in (ValueKind.STRING, ValueKind.BYTES):
        return (rank, str(value) if kind is ValueKind.STRING else bytes(value))
    if kind is ValueKind.SEQUENCE:
        return (rank, tuple(sort_key(item) for item in value))
    if kind is ValueKind.MAP:
        return (rank, tuple((sort_key(k), sort_key(v)) for k, v in value.items()))
    return (rank,)


def compare(a: Any, b: Any) -> int:
    """Three-way comparison: negative, zero or positive."""
    if eq(a, b):
        return 0
    ka, kb = sort_key(a), sort_key(b)
    if ka == kb:
        return 0
    return -1 if ka < kb else 1


COMPARE_OPS: Final[dict[str, Callable[[Any, Any], bool]]] = {
    "==": eq,
    "!=": lambda a, b: not eq(a, b),
    "<": lambda a, b: compare(a, b) < 0,
    "<=": lambda a, b: compare(a, b) <= 0,
    ">": lambda a, b: compare(a, b) > 0,
    ">=": lambda a, b: compare(a, b) >= 0,
}


# ─────────────────────────────────────────────────────────────────────────────
# Containment and slicing
# ─────────────────────────────────────────────────────────────────────────────


def contains(container: Any, item: Any) -> bool:
    """``item in container`` for strings, sequences, maps and objects."""
    if isinstance(container, Object):
        return container.contains(item)
    if isinstance(container, str):
        if not isinstance(item, str):
            raise TemplateRuntimeError(
                f"'in <string>' requires a string on the left, not '{type_name(item)}'"
            )
        return item in container
    if isinstance(container, Mapping):
        try:
            return item in container
        except TypeError:
            return False
    if isinstance(container, Undefined):
        return False
    items = iterate(container)
    if items is None:
        raise TemplateRuntimeError(f"'in' is not supported for '{type_name(container)}'")
    return any(eq(x, item) for x in items)


def _slice_index(value: Any, what: str) -> int | None:
    if value is None or isinstance(value, Undefined):
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise TemplateRuntimeError(f"slice {what} must be an integer, not '{type_name(value)}'")
    return value


def slice_value(value: Any, start: Any, stop: Any, step: Any) -> Any:
    """``value[start:stop:step]`` for strings and sequences."""
    bounds = slice(
        _slice_index(start, "start"), _slice_index(stop, "stop"), _slice_index(step, "step")
    )
    if bounds.step == 0:
        raise TemplateRuntimeError("slice step cannot be zero")
    if isinstance(value, Markup):
        return Markup(str.__getitem__(value, bounds))
    if isinstance(value, (str, bytes, list, tuple)):
        return value[bounds]
    if isinstance(value, Sequence):
        return list(value)[bounds]
    items = iterate(value)
    if items is None or isinstance(value, Mapping):
        raise TemplateRuntimeError(f"cannot slice '{type_name(value)}'")
    return list(items)[bounds]
