"""Autoescape modes, safe strings and per-template policies."""

from __future__ import annotations

import pytest

from quire import (
    AutoEscape,
    DictLoader,
    Environment,
    Markup,
    TemplateRuntimeError,
    html_escape,
    select_autoescape,
)


class _Html:
    def __html__(self) -> str:
        return "<em>ok</em>"


class TestHtmlMode:
    def test_escapes_special_characters(self, env_autoescape) -> None:
        result = env_autoescape.render_str("{{ s }}", s="<a href=\"x\">&'")
        assert result == "&lt;a href=&#34;x&#34;&gt;&amp;&#39;"

    def test_template_data_is_not_escaped(self, env_autoescape) -> None:
        assert env_autoescape.render_str("<p>{{ s }}</p>", s="&") == "<p>&amp;</p>"

    def test_markup_passes_through(self, env_autoescape) -> None:
        assert env_autoescape.render_str("{{ s }}", s=Markup("<b>")) == "<b>"

    def test_safe_filter(self, env_autoescape) -> None:
        assert env_autoescape.render_str("{{ s | safe }}", s="<b>") == "<b>"

    def test_dunder_html_objects(self, env_autoescape) -> None:
        assert env_autoescape.render_str("{{ obj }}", obj=_Html()) == "<em>ok</em>"

    def test_escape_filter_does_not_double_escape(self, env_autoescape) -> None:
        assert env_autoescape.render_str("{{ s | e }}", s="<") == "&lt;"

    def test_scalars_render_plainly(self, env_autoescape) -> None:
        assert env_autoescape.render_str("{{ 1 }} {{ none }} {{ true }}") == "1 none true"

    def test_containers_are_escaped(self, env_autoescape) -> None:
        assert env_autoescape.render_str("{{ ['<'] }}") == "[&#34;&lt;&#34;]"

    def test_join_escapes_items_and_separator(self, env_autoescape) -> None:
        result = env_autoescape.render_str("{{ xs | join('&') }}", xs=["<a>", Markup("<b>")])
        assert result == "&lt;a&gt;&amp;<b>"

    def test_captured_set_is_safe(self, env_autoescape) -> None:
        source = "{% set x %}<b>{{ s }}</b>{% endset %}{{ x }}"
        assert env_autoescape.render_str(source, s="<") == "<b>&lt;</b>"

    def test_filter_output_is_escaped(self, env_autoescape) -> None:
        assert env_autoescape.render_str("{{ s | upper }}", s="<i>") == "&lt;I&gt;"

    def test_upper_keeps_markup_safe(self, env_autoescape) -> None:
        assert env_autoescape.render_str("{{ s | upper }}", s=Markup("<i>")) == "<I>"


class TestJsonMode:
    @pytest.fixture
    def env_json(self) -> Environment:
        return Environment(autoescape="json")

    def test_strings_are_quoted_and_escaped(self, env_json) -> None:
        assert env_json.render_str("{{ s }}", s="a<b") == '"a\\u003cb"'

    def test_maps(self, env_json) -> None:
        assert env_json.render_str("{{ d }}", d={"b": 1, "a": "x"}) == '{"a": "x", "b": 1}'

    def test_scalars(self, env_json) -> None:
        assert env_json.render_str("{{ 1 }},{{ none }},{{ true }}") == "1,null,true"

    def test_undefined_renders_empty(self, env_json) -> None:
        assert env_json.render_str("[{{ missing }}]") == "[]"


class TestAutoescapeBlock:
    def test_disable_inside_block(self, env_autoescape) -> None:
        source = "{% autoescape false %}{{ s }}{% endautoescape %}{{ s }}"
        assert env_autoescape.render_str(source, s="<b>") == "<b>&lt;b&gt;"

    def test_enable_inside_block(self, env) -> None:
        source = "{% autoescape true %}{{ s }}{% endautoescape %}{{ s }}"
        assert env.render_str(source, s="<b>") == "&lt;b&gt;<b>"

    def test_named_mode(self, env) -> None:
        assert env.render_str("{% autoescape 'json' %}{{ s }}{% endautoescape %}", s="x") == '"x"'

    def test_invalid_mode(self, env) -> None:
        with pytest.raises(TemplateRuntimeError, match="invalid autoescape mode"):
            env.render_str("{% autoescape 'xml' %}{% endautoescape %}")

    def test_macro_defined_in_template_follows_caller_mode(self, env_autoescape) -> None:
        source = (
            "{% macro m(x) %}{{ x }}{% endmacro %}"
            "{% autoescape false %}{{ m('<') }}{% endautoescape %}"
        )
        assert env_autoescape.render_str(source) == "<"


class TestPolicies:
    def test_select_autoescape(self) -> None:
        assert select_autoescape("page.html") is AutoEscape.HTML
        assert select_autoescape("<string>") is AutoEscape.HTML
        assert select_autoescape("data.JSON") is AutoEscape.JSON
        assert select_autoescape("config.yaml") is AutoEscape.JSON
        assert select_autoescape("notes.txt") is AutoEscape.NONE
        assert select_autoescape("query.sql") is AutoEscape.NONE

    def test_default_policy_uses_template_name(self) -> None:
        env = Environment()
        env.add_template("page.html", "{{ v }}")
        env.add_template("data.json", "{{ v }}")
        env.add_template("notes.txt", "{{ v }}")
        assert env.render("page.html", v="<") == "&lt;"
        assert env.render("data.json", v="<") == '"\\u003c"'
        assert env.render("notes.txt", v="<") == "<"

    def test_callable_policy(self) -> None:
        env = Environment(autoescape=lambda name: name.endswith(".xml"))
        env.add_template("feed.xml", "{{ v }}")
        env.add_template("feed.txt", "{{ v }}")
        assert env.render("feed.xml", v="&") == "&amp;"
        assert env.render("feed.txt", v="&") == "&"

    def test_included_template_uses_own_mode(self) -> None:
        env = Environment(
            loader=DictLoader({"page.html": "{{ v }}|{% include 'note.txt' %}", "note.txt": "{{ v }}"})
        )
        assert env.render("page.html", v="<") == "&lt;|<"

    def test_set_autoescape(self) -> None:
        env = Environment()
        env.set_autoescape(False)
        assert env.render_str("{{ v }}", v="<") == "<"
        with pytest.raises(TemplateRuntimeError):
            env.set_autoescape("xml")


class TestMarkup:
    def test_concatenation_escapes_plain_strings(self) -> None:
        assert Markup("<b>") + "<i>" == "<b>&lt;i&gt;"
        assert isinstance(Markup("<b>") + "x", Markup)

    def test_html_escape_passes_markup(self) -> None:
        safe = Markup("<b>")
        assert html_escape(safe) is safe
        assert html_escape("<b>") == "&lt;b&gt;"

    def test_striptags(self) -> None:
        assert Markup("<p>Hello   <b>world</b></p>").striptags() == "Hello world"

    def test_join_escapes(self) -> None:
        assert Markup("<br>").join(["<", Markup("&")]) == "&lt;<br>&"
