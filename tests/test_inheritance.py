"""Template inheritance, blocks, super() and include."""

from __future__ import annotations

import pytest

from quire import (
    BadExtendsError,
    BadIncludeError,
    DictLoader,
    Environment,
    TemplateNotFoundError,
    TemplateRuntimeError,
)


@pytest.fixture
def loader_env():
    """Environment over an in-memory set of layouts and partials."""

    def make(templates: dict[str, str]) -> Environment:
        return Environment(loader=DictLoader(templates), autoescape=False)

    return make


BASE = "<{% block a %}A{% endblock %}|{% block b %}B{% endblock %}>"


class TestExtends:
    def test_parent_renders_own_blocks(self, loader_env) -> None:
        env = loader_env({"base.html": BASE})
        assert env.render("base.html") == "<A|B>"

    def test_child_overrides_block(self, loader_env) -> None:
        env = loader_env(
            {
                "base.html": BASE,
                "child.html": "{% extends 'base.html' %}{% block a %}X{% endblock %}",
            }
        )
        assert env.render("child.html") == "<X|B>"

    def test_env_with_loader_fixture(self, env_with_loader) -> None:
        assert env_with_loader.render("child.html") == (
            "<html><head></head><body>Hello World</body></html>"
        )

    def test_text_outside_blocks_is_discarded(self, loader_env) -> None:
        env = loader_env(
            {
                "base.html": BASE,
                "child.html": "{% extends 'base.html' %}junk{% block a %}X{% endblock %}junk",
            }
        )
        assert env.render("child.html") == "<X|B>"

    def test_text_before_extends_is_kept(self, loader_env) -> None:
        env = loader_env({"base.html": BASE, "child.html": "pre{% extends 'base.html' %}"})
        assert env.render("child.html") == "pre<A|B>"

    def test_three_levels(self, loader_env) -> None:
        env = loader_env(
            {
                "base.html": BASE,
                "mid.html": "{% extends 'base.html' %}{% block b %}M{% endblock %}",
                "leaf.html": "{% extends 'mid.html' %}{% block a %}L{% endblock %}",
            }
        )
        assert env.render("leaf.html") == "<L|M>"

    def test_child_blocks_see_context(self, loader_env) -> None:
        env = loader_env(
            {
                "base.html": BASE,
                "child.html": "{% extends 'base.html' %}{% block a %}{{ user }}{% endblock %}",
            }
        )
        assert env.render("child.html", user="ada") == "<ada|B>"

    def test_child_top_level_set_visible_to_parent(self, loader_env) -> None:
        env = loader_env(
            {
                "base.html": "<title>{{ title }}</title>",
                "child.html": "{% extends 'base.html' %}{% set title = 'Home' %}",
            }
        )
        assert env.render("child.html") == "<title>Home</title>"

    def test_dynamic_parent_name(self, loader_env) -> None:
        env = loader_env(
            {
                "one.html": "1{% block a %}{% endblock %}",
                "two.html": "2{% block a %}{% endblock %}",
                "child.html": "{% extends layout %}{% block a %}!{% endblock %}",
            }
        )
        assert env.render("child.html", layout="one.html") == "1!"
        assert env.render("child.html", layout="two.html") == "2!"

    def test_parent_given_as_template_object(self, loader_env) -> None:
        env = loader_env({"base.html": BASE})
        child = env.from_string("{% extends parent %}{% block b %}Y{% endblock %}")
        assert child.render(parent=env.get_template("base.html")) == "<A|Y>"

    def test_unknown_block_in_child_is_ignored(self, loader_env) -> None:
        env = loader_env(
            {
                "base.html": BASE,
                "child.html": "{% extends 'base.html' %}{% block zzz %}Z{% endblock %}",
            }
        )
        assert env.render("child.html") == "<A|B>"

    def test_nested_blocks(self, loader_env) -> None:
        env = loader_env(
            {
                "base.html": "{% block outer %}O[{% block inner %}I{% endblock %}]{% endblock %}",
                "child.html": "{% extends 'base.html' %}{% block inner %}X{% endblock %}",
            }
        )
        assert env.render("child.html") == "O[X]"

    def test_missing_parent(self, loader_env) -> None:
        env = loader_env({"child.html": "{% extends 'nope.html' %}"})
        with pytest.raises(BadExtendsError, match="parent template 'nope.html' not found") as exc_info:
            env.render("child.html")
        assert isinstance(exc_info.value.__cause__, TemplateNotFoundError)

    def test_cyclic_inheritance(self, loader_env) -> None:
        env = loader_env(
            {
                "a.html": "{% extends 'b.html' %}",
                "b.html": "{% extends 'a.html' %}",
            }
        )
        with pytest.raises(BadExtendsError, match="cyclic template inheritance: a.html -> b.html -> a.html"):
            env.render("a.html")


class TestSuper:
    def test_super_renders_parent_block(self, loader_env) -> None:
        env = loader_env(
            {
                "base.html": BASE,
                "child.html": "{% extends 'base.html' %}{% block a %}[{{ super() }}]{% endblock %}",
            }
        )
        assert env.render("child.html") == "<[A]|B>"

    def test_super_chain(self, loader_env) -> None:
        env = loader_env(
            {
                "base.html": "{% block a %}base{% endblock %}",
                "mid.html": "{% extends 'base.html' %}{% block a %}mid+{{ super() }}{% endblock %}",
                "leaf.html": "{% extends 'mid.html' %}{% block a %}leaf+{{ super() }}{% endblock %}",
            }
        )
        assert env.render("leaf.html") == "leaf+mid+base"

    def test_super_skips_levels_without_override(self, loader_env) -> None:
        env = loader_env(
            {
                "base.html": "{% block a %}base{% endblock %}",
                "mid.html": "{% extends 'base.html' %}",
                "leaf.html": "{% extends 'mid.html' %}{% block a %}({{ super() }}){% endblock %}",
            }
        )
        assert env.render("leaf.html") == "(base)"

    def test_super_outside_block(self, env) -> None:
        with pytest.raises(TemplateRuntimeError, match="super\\(\\) can only be used inside a block"):
            env.render_str("{{ super() }}")

    def test_super_without_parent_block(self, env) -> None:
        with pytest.raises(TemplateRuntimeError, match="block 'a' has no parent block"):
            env.render_str("{% block a %}{{ super() }}{% endblock %}")


class TestScopedBlocks:
    def test_unscoped_block_does_not_see_loop_variables(self, env) -> None:
        source = "{% for i in [1, 2] %}{% block item %}[{{ i }}]{% endblock %}{% endfor %}"
        assert env.render_str(source) == "[][]"

    def test_scoped_block_sees_loop_variables(self, env) -> None:
        source = "{% for i in [1, 2] %}{% block item scoped %}[{{ i }}]{% endblock %}{% endfor %}"
        assert env.render_str(source) == "[1][2]"

    def test_override_of_scoped_block(self, loader_env) -> None:
        env = loader_env(
            {
                "base.html": "{% for i in xs %}{% block row scoped %}{{ i }}{% endblock %}{% endfor %}",
                "child.html": "{% extends 'base.html' %}{% block row %}<{{ i }}>{% endblock %}",
            }
        )
        assert env.render("child.html", xs=[1, 2]) == "<1><2>"


class TestInclude:
    def test_include(self, env_with_loader) -> None:
        template = env_with_loader.from_string("[{% include 'partial.html' %}]")
        assert template.render() == "[<p>Partial content</p>]"

    def test_include_sees_context_and_locals(self, loader_env) -> None:
        env = loader_env({"show.html": "{{ x }}{{ y }}"})
        assert env.render_str("{% set x = 1 %}{% include 'show.html' %}", y=2) == "12"

    def test_include_inside_loop(self, loader_env) -> None:
        env = loader_env({"show.html": "{{ x }}"})
        assert env.render_str("{% for x in [1, 2] %}{% include 'show.html' %}{% endfor %}") == "12"

    def test_include_without_context(self, loader_env) -> None:
        env = loader_env({"show.html": "[{{ x }}]"})
        assert env.render_str("{% include 'show.html' without context %}", x=1) == "[]"

    def test_include_first_existing(self, loader_env) -> None:
        env = loader_env({"b.html": "B"})
        assert env.render_str("{% include ['a.html', 'b.html'] %}") == "B"

    def test_ignore_missing(self, loader_env) -> None:
        env = loader_env({})
        assert env.render_str("x{% include 'nope.html' ignore missing %}y") == "xy"

    def test_missing_include(self, loader_env) -> None:
        env = loader_env({})
        with pytest.raises(BadIncludeError, match="included template not found: 'nope.html'") as exc_info:
            env.render_str("{% include 'nope.html' %}")
        assert isinstance(exc_info.value.__cause__, TemplateNotFoundError)

    def test_included_assignments_do_not_leak(self, loader_env) -> None:
        env = loader_env({"set.html": "{% set leaked = 1 %}"})
        assert env.render_str("{% include 'set.html' %}[{{ leaked }}]") == "[]"

    def test_include_of_child_template(self, loader_env) -> None:
        env = loader_env(
            {
                "base.html": BASE,
                "child.html": "{% extends 'base.html' %}{% block b %}C{% endblock %}",
            }
        )
        assert env.render_str("({% include 'child.html' %})") == "(<A|C>)"
