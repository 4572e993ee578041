"""Property-based tests for Quire expression evaluation.

Uses hypothesis to verify algebraic properties of the expression
evaluator and the value model that must hold for all values:

- Arithmetic identities (additive identity, multiplicative identity)
- Comparison symmetry (== is symmetric, ordering is antisymmetric)
- Boolean tautologies (x or not x)
- Type coercion roundtrips (int -> string -> int)
- Ordering is total across value kinds
"""

from __future__ import annotations

from hypothesis import given, settings
from hypothesis import strategies as st

from quire import Environment
from quire.value import compare, eq, sort_key

from .strategies import ascii_lowercase_text, safe_identifier, safe_integer, scalar_value

# Shared environment instance; renders never mutate it
_env = Environment(autoescape=False)


def _render(template: str, **ctx: object) -> str:
    """Compile and render a one-shot template."""
    return _env.from_string(template).render(**ctx)


class TestExpressionProperties:
    """Algebraic properties of expression evaluation."""

    @given(x=safe_integer)
    @settings(max_examples=200)
    def test_additive_identity(self, x: int) -> None:
        assert _render("{{ x + 0 }}", x=x) == str(x)

    @given(x=safe_integer)
    @settings(max_examples=200)
    def test_multiplicative_identity(self, x: int) -> None:
        assert _render("{{ x * 1 }}", x=x) == str(x)

    @given(x=safe_integer)
    @settings(max_examples=200)
    def test_double_negation(self, x: int) -> None:
        assert _render("{{ -(-(x)) }}", x=x) == str(x)

    @given(a=safe_integer, b=safe_integer)
    @settings(max_examples=200)
    def test_addition_commutativity(self, a: int, b: int) -> None:
        assert _render("{{ a + b }}", a=a, b=b) == _render("{{ b + a }}", a=a, b=b)

    @given(a=safe_integer, b=safe_integer)
    @settings(max_examples=200)
    def test_comparison_matches_python(self, a: int, b: int) -> None:
        result = _render("{{ a < b }}|{{ a == b }}|{{ a >= b }}", a=a, b=b)
        expected = "|".join(str(v).lower() for v in (a < b, a == b, a >= b))
        assert result == expected

    @given(x=st.booleans())
    @settings(max_examples=50)
    def test_boolean_tautology(self, x: bool) -> None:
        assert _render("{{ x or not x }}", x=x) == "true"

    @given(x=st.integers(min_value=-9999, max_value=9999))
    @settings(max_examples=200)
    def test_int_string_roundtrip(self, x: int) -> None:
        assert _render("{{ x | string | int }}", x=x) == str(x)

    @given(s=ascii_lowercase_text)
    @settings(max_examples=200)
    def test_upper_lower_roundtrip(self, s: str) -> None:
        assert _render("{{ s | upper | lower }}", s=s) == s

    @given(a=safe_integer, b=st.integers(min_value=1, max_value=1000))
    @settings(max_examples=200)
    def test_division_consistency(self, a: int, b: int) -> None:
        """(a // b) * b + (a % b) == a (division algorithm)."""
        assert _render("{{ (a // b) * b + (a % b) }}", a=a, b=b) == str(a)

    @given(name=safe_identifier, x=safe_integer)
    @settings(max_examples=100)
    def test_set_then_read(self, name: str, x: int) -> None:
        source = "{% set " + name + " = v %}{{ " + name + " }}"
        assert _render(source, v=x) == str(x)

    @given(s=st.text(max_size=20), t=st.text(max_size=20))
    @settings(max_examples=200)
    def test_tilde_concatenation(self, s: str, t: str) -> None:
        assert _render("{{ s ~ t }}", s=s, t=t) == s + t


class TestValueOrderingProperties:
    """The value ordering is a total order across kinds."""

    @given(a=scalar_value, b=scalar_value)
    @settings(max_examples=300)
    def test_compare_is_antisymmetric(self, a: object, b: object) -> None:
        assert compare(a, b) == -compare(b, a)

    @given(a=scalar_value)
    @settings(max_examples=200)
    def test_eq_is_reflexive(self, a: object) -> None:
        assert eq(a, a)
        assert compare(a, a) == 0

    @given(values=st.lists(scalar_value, max_size=15))
    @settings(max_examples=200)
    def test_sorting_is_consistent_with_compare(self, values: list[object]) -> None:
        ordered = sorted(values, key=sort_key)
        for left, right in zip(ordered, ordered[1:]):
            assert compare(left, right) <= 0

    @given(values=st.lists(scalar_value, max_size=15))
    @settings(max_examples=100)
    def test_sort_filter_accepts_mixed_kinds(self, values: list[object]) -> None:
        result = _render("{{ values | sort | length }}", values=values)
        assert result == str(len(values))
