"""Template value model.

Python-native values plus ``Undefined`` and the ``Object`` capability base
for host objects.
"""

from quire.value.display import (
    AutoEscape,
    coerce_autoescape,
    dump_json,
    escape_for,
    literal,
    to_json,
    to_str,
)
from quire.value.objects import (
    MISSING,
    Namespace,
    Object,
    ValueKind,
    get_attr,
    get_item,
    is_number,
    iterate,
    kind_of,
    length,
)
from quire.value.ops import compare, concat, contains, eq, is_true, slice_value, sort_key
from quire.value.undefined import Undefined, UndefinedBehavior, is_undefined

__all__ = [
    "MISSING",
    "AutoEscape",
    "Namespace",
    "Object",
    "Undefined",
    "UndefinedBehavior",
    "ValueKind",
    "coerce_autoescape",
    "compare",
    "concat",
    "contains",
    "dump_json",
    "eq",
    "escape_for",
    "get_attr",
    "get_item",
    "is_number",
    "is_true",
    "is_undefined",
    "iterate",
    "kind_of",
    "length",
    "literal",
    "slice_value",
    "sort_key",
    "to_json",
    "to_str",
]
