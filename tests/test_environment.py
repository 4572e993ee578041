"""Environment: loaders, registries, template cache and rendering entry points."""

from __future__ import annotations

import logging

import pytest

from quire import (
    AutoEscape,
    ChoiceLoader,
    DictLoader,
    Environment,
    FunctionLoader,
    Template,
    TemplateNotFoundError,
    TemplateSyntaxError,
    UndefinedBehavior,
    UndefinedError,
    accepts_undefined,
    pass_state,
)


class TestLoaders:
    def test_dict_loader(self) -> None:
        env = Environment(loader=DictLoader({"a.html": "A"}))
        assert env.render("a.html") == "A"

    def test_dict_loader_did_you_mean(self) -> None:
        env = Environment(loader=DictLoader({"index.html": "x"}))
        with pytest.raises(TemplateNotFoundError, match="Did you mean 'index.html'"):
            env.get_template("indx.html")

    def test_dict_loader_lists_available(self) -> None:
        env = Environment(loader=DictLoader({"a.html": "", "b.html": ""}))
        with pytest.raises(TemplateNotFoundError, match="Available: a.html, b.html"):
            env.get_template("zzzzzzzz")

    def test_function_loader(self) -> None:
        calls = []

        def load(name: str) -> str | None:
            calls.append(name)
            return "Hello {{ name }}" if name == "hi.txt" else None

        env = Environment(loader=FunctionLoader(load))
        assert env.render("hi.txt", name="Ada") == "Hello Ada"
        with pytest.raises(TemplateNotFoundError, match="Template 'nope' not found"):
            env.get_template("nope")
        assert calls == ["hi.txt", "nope"]

    def test_function_loader_returns_filename(self) -> None:
        loader = FunctionLoader(lambda name: ("src", f"db://{name}"))
        assert loader.get_source("x") == ("src", "db://x")

    def test_bare_callable_is_a_loader(self) -> None:
        env = Environment(loader=lambda name: name.upper())
        assert env.render("abc") == "ABC"

    def test_invalid_loader(self) -> None:
        with pytest.raises(TypeError, match="expected a loader or a callable"):
            Environment(loader=42)

    def test_choice_loader_order(self) -> None:
        custom = DictLoader({"nav.html": "custom"})
        default = DictLoader({"nav.html": "default", "footer.html": "footer"})
        env = Environment(loader=ChoiceLoader([custom, default]))
        assert env.render("nav.html") == "custom"
        assert env.render("footer.html") == "footer"
        assert env.list_templates() == ["footer.html", "nav.html"]

    def test_choice_loader_not_found(self) -> None:
        env = Environment(loader=ChoiceLoader([DictLoader({}), DictLoader({})]))
        with pytest.raises(TemplateNotFoundError, match="not found in any of 2 loaders"):
            env.get_template("x")

    def test_no_loader(self) -> None:
        env = Environment()
        with pytest.raises(TemplateNotFoundError, match="no loader configured"):
            env.get_template("page.html")


class TestTemplateCache:
    def test_get_template_is_cached(self) -> None:
        loads = []

        def load(name: str) -> str:
            loads.append(name)
            return "x"

        env = Environment(loader=load)
        first = env.get_template("t")
        assert env.get_template("t") is first
        assert loads == ["t"]

    def test_add_template_compiles_eagerly(self, env) -> None:
        with pytest.raises(TemplateSyntaxError):
            env.add_template("bad.html", "{% if %}")
        template = env.add_template("ok.html", "ok")
        assert isinstance(template, Template)
        assert env.get_template("ok.html") is template

    def test_registered_templates_shadow_loader(self) -> None:
        env = Environment(loader=DictLoader({"a.html": "loaded"}))
        env.add_template("a.html", "registered")
        assert env.render("a.html") == "registered"

    def test_remove_template(self, env) -> None:
        env.add_template("t.html", "x")
        env.remove_template("t.html")
        with pytest.raises(TemplateNotFoundError):
            env.get_template("t.html")

    def test_clear_templates(self, env) -> None:
        env.add_template("a.html", "a")
        env.add_template("b.html", "b")
        assert env.list_templates() == ["a.html", "b.html"]
        env.clear_templates()
        assert env.list_templates() == []

    def test_from_string_is_not_cached(self, env) -> None:
        template = env.from_string("x")
        assert template.name == "<string>"
        assert env.list_templates() == []
        assert env.from_string("x", name="named.txt").name == "named.txt"

    def test_set_loader_drops_loaded_templates(self) -> None:
        env = Environment(loader=DictLoader({"t.html": "old"}))
        env.add_template("kept.html", "kept")
        assert env.render("t.html") == "old"
        env.set_loader(DictLoader({"t.html": "new"}))
        assert env.render("t.html") == "new"
        assert env.render("kept.html") == "kept"

    def test_registered_templates_survive_setting_changes(self, env) -> None:
        env.add_template("t.html", "{{ 1 }}\n")
        env.set_whitespace(keep_trailing_newline=True)
        assert env.render("t.html") == "1\n"

    def test_templates_can_include_each_other(self, env) -> None:
        env.add_template("a.html", "[{% include 'b.html' %}]")
        env.add_template("b.html", "b")
        assert env.render("a.html") == "[b]"


class TestRegistries:
    def test_register_filter(self, env) -> None:
        env.register_filter("money", lambda v: f"${v:,.2f}")
        assert env.render_str("{{ price | money }}", price=1234.5) == "$1,234.50"

    def test_replacing_builtin_filter_warns(self, env, caplog) -> None:
        with caplog.at_level(logging.WARNING, logger="quire.environment.core"):
            env.register_filter("upper", lambda v: "UP")
        assert "Replacing built-in filter 'upper'" in caplog.text
        assert env.render_str("{{ 'a' | upper }}") == "UP"

    def test_new_environment_keeps_builtins(self, env) -> None:
        env.register_filter("upper", lambda v: "UP")
        assert Environment(autoescape=False).render_str("{{ 'a' | upper }}") == "A"

    def test_update_filters(self, env) -> None:
        env.update_filters({"twice": lambda v: v * 2, "neg": lambda v: -v})
        assert env.render_str("{{ 3 | twice | neg }}") == "-6"

    def test_filters_registry_is_dict_like(self, env) -> None:
        env.filters["shout"] = lambda v: v.upper() + "!"
        assert "shout" in env.filters
        assert env.filters.get("nope") is None
        del env.filters["shout"]
        assert "shout" not in env.filters
        assert "upper" in env.filters.keys()

    def test_register_test(self, env) -> None:
        env.register_test("positive", lambda v: v > 0)
        assert env.render_str("{{ 3 is positive }} {{ 0 is positive }}") == "true false"

    def test_update_tests(self, env) -> None:
        env.update_tests({"short": lambda v: len(v) < 3})
        assert env.render_str("{{ 'ab' is short }}") == "true"

    def test_register_function_requires_callable(self, env) -> None:
        with pytest.raises(TypeError, match="expects a callable"):
            env.register_function("x", 5)

    def test_filter_registered_after_compile(self, env) -> None:
        template = env.from_string("{{ 'x' | late }}")
        env.register_filter("late", lambda v: v + "!")
        assert template.render() == "x!"


class TestCallableMarkers:
    def test_pass_state(self) -> None:
        @pass_state
        def mode(state, value):
            return f"{value}:{state.autoescape.value}"

        env = Environment(autoescape=True)
        env.register_filter("mode", mode)
        assert env.render_str("{{ 'v' | mode }}") == "v:html"
        assert env.render_str("{% autoescape false %}{{ 'v' | mode }}{% endautoescape %}") == "v:none"

    def test_pass_state_global(self, env) -> None:
        @pass_state
        def is_strict(state):
            return state.strict

        env.register_function("is_strict", is_strict)
        assert env.render_str("{{ is_strict() }}") == "false"

    def test_accepts_undefined(self, env_strict) -> None:
        @accepts_undefined
        def or_dash(value):
            return "-" if value is None or not value else value

        env_strict.register_filter("or_dash", or_dash)
        assert env_strict.render_str("{{ missing | or_dash }}") == "-"

    def test_undefined_arguments_raise_in_strict_mode(self, env_strict) -> None:
        env_strict.register_filter("plain", lambda v: "seen")
        with pytest.raises(UndefinedError):
            env_strict.render_str("{{ missing | plain }}")


class TestRendering:
    def test_render_context_and_kwargs(self, env) -> None:
        env.add_template("t.html", "{{ a }}{{ b }}")
        assert env.render("t.html", {"a": 1, "b": 2}, b=3) == "13"

    def test_template_render_positional_dict(self, env) -> None:
        template = env.from_string("{{ x }}")
        assert template.render({"x": 1}) == "1"
        assert template.render(x=2) == "2"
        with pytest.raises(TypeError, match="at most 1 positional argument"):
            template.render({"x": 1}, {"x": 2})

    def test_render_to(self, env) -> None:
        chunks: list[str] = []
        env.from_string("a{% for i in range(3) %}{{ i }}{% endfor %}b").render_to(
            chunks.append, {}
        )
        assert "".join(chunks) == "a012b"
        assert len(chunks) > 1

    def test_render_to_partial_output_on_error(self, env) -> None:
        chunks: list[str] = []
        template = env.from_string("before{{ 1 // 0 }}after")
        with pytest.raises(Exception, match="division by zero"):
            template.render_to(chunks.append)
        assert "after" not in "".join(chunks)

    def test_template_properties(self, env) -> None:
        template = env.from_string("hi {{ name }}", name="greet.txt")
        assert template.source == "hi {{ name }}"
        assert repr(template) == "<Template greet.txt>"
        assert template.program.name == "greet.txt"

    def test_disassemble(self, env) -> None:
        listing = env.from_string("hi{% block b %}{{ x }}{% endblock %}").disassemble()
        assert listing.startswith("<code")
        assert "EMIT_RAW" in listing
        assert "CALL_BLOCK('b'" in listing

    def test_templates_are_reusable(self, env) -> None:
        template = env.from_string("{% set m = n + 1 %}{{ m }}")
        assert template.render(n=1) == "2"
        assert template.render(n=1) == "2"


class TestSettings:
    def test_defaults(self) -> None:
        env = Environment()
        assert env.undefined is UndefinedBehavior.LENIENT
        assert env.recursion_limit == 500
        assert env.fuel is None
        assert env.autoescape_for("page.html") is AutoEscape.HTML

    def test_undefined_from_string(self) -> None:
        assert Environment(undefined="strict").undefined is UndefinedBehavior.STRICT
        with pytest.raises(ValueError):
            Environment(undefined="loud")

    def test_set_undefined_behavior(self, env) -> None:
        env.set_undefined_behavior(UndefinedBehavior.STRICT)
        with pytest.raises(UndefinedError):
            env.render_str("{{ x }}")
        env.set_undefined_behavior("lenient")
        assert env.render_str("{{ x }}") == ""

    def test_repr(self, env) -> None:
        assert repr(env) == "<Environment templates=0 undefined=lenient recursion_limit=500>"
