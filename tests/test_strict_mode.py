"""Tests for strict and lenient undefined handling.

Lenient mode (the default) renders undefined values as empty strings and
lets them flow through attribute access and arithmetic. Strict mode raises
UndefinedError as soon as an undefined value is used for anything other
than ``default``, ``is defined`` / ``is undefined`` or assignment.
"""

from __future__ import annotations

import pytest

from quire import Environment, UndefinedBehavior, UndefinedError


class TestLenientMode:
    @pytest.mark.parametrize(
        "source",
        [
            "{{ missing }}",
            "{{ missing.a.b }}",
            "{{ missing[0] }}",
            "{{ missing + 1 }}",
            "{{ user.nope }}",
            "{% for x in missing %}{{ x }}{% endfor %}",
        ],
    )
    def test_renders_empty(self, env, source: str) -> None:
        assert env.render_str(source, user={}) == ""

    def test_default_is_lenient(self) -> None:
        assert Environment().undefined is UndefinedBehavior.LENIENT

    def test_undefined_is_falsy(self, env) -> None:
        assert env.render_str("{% if missing %}T{% else %}F{% endif %}") == "F"


class TestUndefinedError:
    """Strict mode raises UndefinedError on use."""

    def test_undefined_raises_error(self, env_strict) -> None:
        with pytest.raises(UndefinedError) as exc_info:
            env_strict.render_str("{{ undefined_var }}")
        assert "undefined_var" in str(exc_info.value)

    def test_error_includes_variable_name(self, env_strict) -> None:
        with pytest.raises(UndefinedError) as exc_info:
            env_strict.render_str("{{ my_missing_var }}")
        assert exc_info.value.name == "my_missing_var"

    def test_error_includes_location(self, env_strict) -> None:
        with pytest.raises(UndefinedError) as exc_info:
            env_strict.render_str("line one\n{{ missing }}")
        error = exc_info.value
        assert error.template_name == "<string>"
        assert error.lineno == 2
        assert "<string>:2" in str(error)

    def test_error_suggests_close_name(self, env_strict) -> None:
        with pytest.raises(UndefinedError) as exc_info:
            env_strict.render_str("{{ usr }}", user="ada")
        assert "Did you mean 'user'?" in str(exc_info.value)

    def test_error_includes_hint(self, env_strict) -> None:
        with pytest.raises(UndefinedError) as exc_info:
            env_strict.render_str("{{ title }}")
        assert "{{ title | default('') }}" in str(exc_info.value)

    def test_missing_attribute_names_the_chain(self, env_strict) -> None:
        with pytest.raises(UndefinedError) as exc_info:
            env_strict.render_str("{{ user.email }}", user={"name": "ada"})
        assert exc_info.value.name == "user.email"

    def test_attribute_of_undefined_names_the_root(self, env_strict) -> None:
        with pytest.raises(UndefinedError) as exc_info:
            env_strict.render_str("{{ missing.attr }}")
        assert exc_info.value.name == "missing"

    def test_missing_item(self, env_strict) -> None:
        with pytest.raises(UndefinedError) as exc_info:
            env_strict.render_str("{{ xs[9] }}", xs=[1])
        assert "[9]" in exc_info.value.name

    @pytest.mark.parametrize(
        "source",
        [
            "{% if missing %}{% endif %}",
            "{{ missing + 1 }}",
            "{{ missing ~ 'x' }}",
            "{{ missing == 1 }}",
            "{{ not missing }}",
            "{{ missing | upper }}",
            "{{ range(missing) }}",
            "{% for x in missing %}{% endfor %}",
        ],
    )
    def test_every_use_raises(self, env_strict, source: str) -> None:
        with pytest.raises(UndefinedError):
            env_strict.render_str(source)


class TestStrictEscapeHatches:
    """Operations that inspect undefined values without raising."""

    def test_defined_variables_work(self, env_strict) -> None:
        assert env_strict.render_str("{{ name }}", name="World") == "World"

    def test_none_is_defined(self, env_strict) -> None:
        assert env_strict.render_str("{{ value }}", value=None) == "none"

    def test_globals_work(self, env_strict) -> None:
        assert env_strict.render_str("{{ range(3) | list }}") == "[0, 1, 2]"

    def test_default_filter(self, env_strict) -> None:
        assert env_strict.render_str("{{ missing | default('fallback') }}") == "fallback"

    def test_default_filter_on_missing_attribute(self, env_strict) -> None:
        assert env_strict.render_str("{{ user.email | default('-') }}", user={}) == "-"

    def test_defined_tests(self, env_strict) -> None:
        source = "{{ missing is defined }} {{ missing is undefined }} {{ x is defined }}"
        assert env_strict.render_str(source, x=1) == "false true true"

    def test_conditional_on_defined(self, env_strict) -> None:
        source = "{% if missing is defined %}yes{% else %}no{% endif %}"
        assert env_strict.render_str(source) == "no"

    def test_assignment_does_not_raise(self, env_strict) -> None:
        assert env_strict.render_str("{% set y = missing %}{{ y is undefined }}") == "true"


class TestSwitchingBehavior:
    def test_set_undefined_behavior(self) -> None:
        env = Environment(autoescape=False)
        assert env.render_str("[{{ missing }}]") == "[]"
        env.set_undefined_behavior(UndefinedBehavior.STRICT)
        with pytest.raises(UndefinedError):
            env.render_str("[{{ missing }}]")
        env.set_undefined_behavior(UndefinedBehavior.LENIENT)
        assert env.render_str("[{{ missing }}]") == "[]"
