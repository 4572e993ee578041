"""Built-in tests for Quire templates.

Tests are boolean predicates used with `is` in conditionals:
`{% if value is test %}` or `{% if value is test(arg) %}`

Categories:
**Existence Tests** (receive undefined values even in strict mode):
    - `defined`: Value is not undefined
    - `undefined`: Value is undefined
    - `none`: Value is none

**Type Tests**:
    - `boolean`, `number`, `integer`, `float`, `string`
    - `sequence`: Value is a list or tuple (strings are not sequences)
    - `mapping`: Value is a map
    - `iterable`: Value supports iteration
    - `callable`: Value is callable
    - `safe` / `escaped`: Value is a safe string

**Boolean Tests**:
    - `true`: Value is exactly true
    - `false`: Value is exactly false

**Number Tests**:
    - `odd`, `even`: Integer parity
    - `divisibleby(n)`: Integer is divisible by n

**Comparison Tests** (also usable with `select`/`reject`):
    - `eq` / `equalto` / `==`, `ne` / `!=`
    - `lt` / `lessthan` / `<`, `le` / `<=`
    - `gt` / `greaterthan` / `>`, `ge` / `>=`
    - `sameas(other)`: Identity comparison
    - `in(seq)`: Value is contained in seq

**String Tests**:
    - `lower`, `upper`, `startingwith(prefix)`, `endingwith(suffix)`

**Registry Tests**:
    - `filter`: Name is a registered filter
    - `test`: Name is a registered test

Negation:
Use `is not` for negated tests:
`{% if user is not defined %}` or `{% if count is not even %}`

Custom Tests:
    >>> env.register_test('prime', lambda n: n > 1 and all(n % i for i in range(2, n)))
    >>> # {% if 17 is prime %}Yes{% endif %}
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

from quire.utils.decorators import accepts_undefined, pass_state
from quire.utils.html import Markup
from quire.value.objects import Object, iterate
from quire.value.ops import COMPARE_OPS, contains
from quire.value.undefined import Undefined

if TYPE_CHECKING:
    from quire.vm.state import State


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@accepts_undefined
def _test_defined(value: Any) -> bool:
    """Test if value is defined (``none`` counts as defined)."""
    return not isinstance(value, Undefined)


@accepts_undefined
def _test_undefined(value: Any) -> bool:
    return isinstance(value, Undefined)


@accepts_undefined
def _test_none(value: Any) -> bool:
    """Test if value is none."""
    return value is None


def _test_boolean(value: Any) -> bool:
    return isinstance(value, bool)


def _test_number(value: Any) -> bool:
    """Test if value is a number."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _test_integer(value: Any) -> bool:
    return _is_int(value)


def _test_float(value: Any) -> bool:
    return isinstance(value, float)


def _test_string(value: Any) -> bool:
    """Test if value is a string."""
    return isinstance(value, str)


def _test_sequence(value: Any) -> bool:
    """Test if value is a sequence."""
    return isinstance(value, (list, tuple))


def _test_mapping(value: Any) -> bool:
    """Test if value is a mapping."""
    return isinstance(value, Mapping)


def _test_iterable(value: Any) -> bool:
    """Test if value is iterable."""
    return isinstance(value, str) or iterate(value) is not None


def _test_callable(value: Any) -> bool:
    """Test if value is callable."""
    if isinstance(value, Object):
        return type(value).call is not Object.call
    return callable(value)


def _test_safe(value: Any) -> bool:
    return isinstance(value, Markup) or hasattr(value, "__html__")


def _test_odd(value: Any) -> bool:
    """Test if value is odd."""
    return _is_int(value) and value % 2 == 1


def _test_even(value: Any) -> bool:
    """Test if value is even."""
    return _is_int(value) and value % 2 == 0


def _test_divisible_by(value: Any, num: Any) -> bool:
    """Test if value is divisible by num."""
    if not _is_int(value) or not _is_int(num) or num == 0:
        return False
    return bool(value % num == 0)


def _comparison(op: str) -> Callable[[Any, Any], bool]:
    compare = COMPARE_OPS[op]

    def test(value: Any, other: Any) -> bool:
        return compare(value, other)

    test.__name__ = f"_test_{op}"
    return test


def _test_sameas(value: Any, other: Any) -> bool:
    return value is other


def _test_in(value: Any, seq: Any) -> bool:
    """Test if value is in sequence."""
    return contains(seq, value)


def _test_lower(value: Any) -> bool:
    """Test if string is lowercase."""
    return isinstance(value, str) and value.islower()


def _test_upper(value: Any) -> bool:
    """Test if string is uppercase."""
    return isinstance(value, str) and value.isupper()


def _test_startingwith(value: Any, prefix: Any) -> bool:
    return isinstance(value, str) and value.startswith(str(prefix))


def _test_endingwith(value: Any, suffix: Any) -> bool:
    return isinstance(value, str) and value.endswith(str(suffix))


@pass_state
def _test_filter(state: State, value: Any) -> bool:
    """Test if a filter with this name is registered."""
    return isinstance(value, str) and value in state.env.filters


@pass_state
def _test_test(state: State, value: Any) -> bool:
    """Test if a test with this name is registered."""
    return isinstance(value, str) and value in state.env.tests


_eq = _comparison("==")
_ne = _comparison("!=")
_lt = _comparison("<")
_le = _comparison("<=")
_gt = _comparison(">")
_ge = _comparison(">=")

# Default tests
DEFAULT_TESTS: dict[str, Callable[..., bool]] = {
    "boolean": _test_boolean,
    "callable": _test_callable,
    "defined": _test_defined,
    "divisibleby": _test_divisible_by,
    "endingwith": _test_endingwith,
    "eq": _eq,
    "equalto": _eq,
    "==": _eq,
    "escaped": _test_safe,
    "even": _test_even,
    "false": lambda v: v is False,
    "filter": _test_filter,
    "float": _test_float,
    "ge": _ge,
    ">=": _ge,
    "gt": _gt,
    "greaterthan": _gt,
    ">": _gt,
    "in": _test_in,
    "integer": _test_integer,
    "iterable": _test_iterable,
    "le": _le,
    "<=": _le,
    "lower": _test_lower,
    "lt": _lt,
    "lessthan": _lt,
    "<": _lt,
    "mapping": _test_mapping,
    "ne": _ne,
    "!=": _ne,
    "none": _test_none,
    "number": _test_number,
    "odd": _test_odd,
    "safe": _test_safe,
    "sameas": _test_sameas,
    "sequence": _test_sequence,
    "startingwith": _test_startingwith,
    "string": _test_string,
    "test": _test_test,
    "true": lambda v: v is True,
    "undefined": _test_undefined,
    "upper": _test_upper,
}
