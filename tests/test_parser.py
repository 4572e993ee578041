"""Tests for the Quire parser: AST shape, precedence and syntax errors."""

from __future__ import annotations

import pytest

from quire import nodes
from quire.environment.exceptions import ErrorCode, TemplateSyntaxError
from quire.lexer import tokenize
from quire.parser import ParseError, Parser


def parse(source: str) -> nodes.Template:
    return Parser(tokenize(source), "test.html", source).parse()


def expr_of(source: str) -> nodes.Expr:
    """Parse ``{{ source }}`` and return its expression."""
    tree = parse("{{ " + source + " }}")
    output = tree.body[0]
    assert isinstance(output, nodes.Output)
    return output.expr


class TestPrecedence:
    """Operator precedence and associativity."""

    def test_multiplication_binds_tighter_than_addition(self) -> None:
        expr = expr_of("1 + 2 * 3")
        assert isinstance(expr, nodes.BinOp)
        assert expr.op == "+"
        assert isinstance(expr.right, nodes.BinOp)
        assert expr.right.op == "*"

    def test_additive_is_left_associative(self) -> None:
        expr = expr_of("a - b - c")
        assert isinstance(expr, nodes.BinOp)
        assert isinstance(expr.left, nodes.BinOp)
        assert expr.left.op == "-"

    def test_power_is_right_associative(self) -> None:
        expr = expr_of("2 ** 3 ** 2")
        assert isinstance(expr, nodes.BinOp)
        assert expr.op == "**"
        assert isinstance(expr.right, nodes.BinOp)
        assert expr.right.op == "**"

    def test_concat_shares_additive_level(self) -> None:
        expr = expr_of("a ~ b + c")
        assert isinstance(expr, nodes.BinOp)
        assert expr.op == "+"
        assert isinstance(expr.left, nodes.BinOp)
        assert expr.left.op == "~"

    def test_filter_binds_tighter_than_unary_minus(self) -> None:
        expr = expr_of("-x | abs")
        assert isinstance(expr, nodes.UnaryOp)
        assert expr.op == "-"
        assert isinstance(expr.operand, nodes.Filter)

    def test_filter_binds_tighter_than_arithmetic(self) -> None:
        expr = expr_of("a + b | length")
        assert isinstance(expr, nodes.BinOp)
        assert isinstance(expr.right, nodes.Filter)

    def test_not_binds_looser_than_comparison(self) -> None:
        expr = expr_of("not a == b")
        assert isinstance(expr, nodes.UnaryOp)
        assert isinstance(expr.operand, nodes.Compare)

    def test_and_binds_tighter_than_or(self) -> None:
        expr = expr_of("a or b and c")
        assert isinstance(expr, nodes.BoolOp)
        assert expr.op == "or"
        assert isinstance(expr.values[1], nodes.BoolOp)
        assert expr.values[1].op == "and"

    def test_chained_comparison(self) -> None:
        expr = expr_of("1 < x <= 10")
        assert isinstance(expr, nodes.Compare)
        assert tuple(expr.ops) == ("<", "<=")

    def test_not_in(self) -> None:
        expr = expr_of("a not in b")
        assert isinstance(expr, nodes.Compare)
        assert tuple(expr.ops) == ("not in",)

    def test_conditional_expression(self) -> None:
        expr = expr_of("a if b else c")
        assert isinstance(expr, nodes.CondExpr)
        assert isinstance(expr.if_false, nodes.Name)

    def test_conditional_without_else(self) -> None:
        expr = expr_of("a if b")
        assert isinstance(expr, nodes.CondExpr)
        assert expr.if_false is None


class TestPrimaries:
    """Literals, postfix operators, filters and tests."""

    @pytest.mark.parametrize(
        ("source", "value"),
        [("true", True), ("False", False), ("none", None), ("None", None), ("'a' 'b'", "ab")],
    )
    def test_constants(self, source: str, value: object) -> None:
        expr = expr_of(source)
        assert isinstance(expr, nodes.Const)
        assert expr.value == value

    def test_list_tuple_dict(self) -> None:
        assert isinstance(expr_of("[1, 2,]"), nodes.List)
        assert isinstance(expr_of("(1, 2)"), nodes.Tuple)
        assert isinstance(expr_of("()"), nodes.Tuple)
        assert isinstance(expr_of("(1)"), nodes.Const)
        mapping = expr_of("{'a': 1, 'b': 2}")
        assert isinstance(mapping, nodes.Dict)
        assert len(mapping.keys) == 2

    def test_attribute_and_item(self) -> None:
        expr = expr_of("user.tags[0]")
        assert isinstance(expr, nodes.Getitem)
        assert isinstance(expr.obj, nodes.Getattr)
        assert expr.obj.attr == "tags"

    def test_integer_attribute_is_subscript(self) -> None:
        expr = expr_of("items.0")
        assert isinstance(expr, nodes.Getitem)
        assert isinstance(expr.key, nodes.Const)
        assert expr.key.value == 0

    def test_slice(self) -> None:
        expr = expr_of("items[1:-1]")
        assert isinstance(expr, nodes.Getitem)
        assert isinstance(expr.key, nodes.Slice)
        assert expr.key.step is None

    def test_call_with_kwargs(self) -> None:
        expr = expr_of("f(1, x=2)")
        assert isinstance(expr, nodes.FuncCall)
        assert len(expr.args) == 1
        assert set(expr.kwargs) == {"x"}

    def test_filter_chain(self) -> None:
        expr = expr_of("name | trim | truncate(10)")
        assert isinstance(expr, nodes.Filter)
        assert expr.name == "truncate"
        assert isinstance(expr.value, nodes.Filter)
        assert expr.value.name == "trim"

    def test_negated_test_with_bare_argument(self) -> None:
        expr = expr_of("x is not divisibleby 3")
        assert isinstance(expr, nodes.Test)
        assert expr.negated
        assert expr.name == "divisibleby"
        assert len(expr.args) == 1

    def test_bare_test_argument_stops_at_keyword(self) -> None:
        expr = expr_of("x is defined and y")
        assert isinstance(expr, nodes.BoolOp)
        assert isinstance(expr.values[0], nodes.Test)
        assert expr.values[0].args == ()


class TestStatements:
    """Statement nodes."""

    def test_if_elif_else(self) -> None:
        tree = parse("{% if a %}1{% elif b %}2{% else %}3{% endif %}")
        node = tree.body[0]
        assert isinstance(node, nodes.If)
        assert len(node.elif_) == 1
        assert len(node.else_) == 1

    def test_generic_end_tag(self) -> None:
        tree = parse("{% if a %}1{% end %}")
        assert isinstance(tree.body[0], nodes.If)

    def test_for_with_filter_and_else(self) -> None:
        tree = parse("{% for k, v in items if v recursive %}{{ k }}{% else %}-{% endfor %}")
        node = tree.body[0]
        assert isinstance(node, nodes.For)
        assert isinstance(node.target, nodes.Tuple)
        assert node.test is not None
        assert node.recursive
        assert len(node.else_) == 1

    def test_set_forms(self) -> None:
        tree = parse("{% set a, b = (1, 2) %}{% set ns.x = 1 %}{% set c | upper %}x{% endset %}")
        first, second, third = tree.body
        assert isinstance(first, nodes.Set)
        assert isinstance(first.target, nodes.Tuple)
        assert isinstance(second, nodes.Set)
        assert isinstance(second.target, nodes.Getattr)
        assert isinstance(third, nodes.SetBlock)
        assert third.filters[0][0] == "upper"

    def test_macro_signature(self) -> None:
        tree = parse("{% macro m(a, b=1, **rest) %}{% endmacro %}")
        node = tree.body[0]
        assert isinstance(node, nodes.Macro)
        assert tuple(node.params) == ("a", "b")
        assert len(node.defaults) == 1
        assert node.kwarg == "rest"

    def test_call_block(self) -> None:
        tree = parse("{% call(item) listing(items) %}{{ item }}{% endcall %}")
        node = tree.body[0]
        assert isinstance(node, nodes.CallBlock)
        assert tuple(node.params) == ("item",)

    def test_extends_recorded_on_root(self) -> None:
        tree = parse("{% extends 'base.html' %}{% block a %}{% endblock %}")
        assert tree.extends is not None

    def test_extends_after_comment_and_whitespace(self) -> None:
        tree = parse("{# header #}\n{% extends 'base.html' %}")
        assert tree.extends is not None

    def test_block_scoped_and_named_end(self) -> None:
        tree = parse("{% block body scoped %}x{% endblock body %}")
        node = tree.body[0]
        assert isinstance(node, nodes.Block)
        assert node.scoped

    def test_include_modifiers(self) -> None:
        tree = parse("{% include 'x.html' ignore missing without context %}")
        node = tree.body[0]
        assert isinstance(node, nodes.Include)
        assert node.ignore_missing
        assert not node.with_context

    def test_imports(self) -> None:
        tree = parse(
            "{% import 'm.html' as m with context %}"
            "{% from 'm.html' import a, b as c %}"
        )
        imp, from_imp = tree.body
        assert isinstance(imp, nodes.Import)
        assert imp.with_context
        assert isinstance(from_imp, nodes.FromImport)
        assert tuple(from_imp.names) == (("a", None), ("b", "c"))

    def test_with_filter_autoescape_do(self) -> None:
        tree = parse(
            "{% with a = 1, b = 2 %}{% endwith %}"
            "{% filter upper | trim %}x{% endfilter %}"
            "{% autoescape false %}{% endautoescape %}"
            "{% do items.append(1) %}"
        )
        kinds = [type(node) for node in tree.body]
        assert kinds == [nodes.With, nodes.FilterBlock, nodes.Autoescape, nodes.Do]

    def test_nodes_are_immutable(self) -> None:
        tree = parse("{{ x }}")
        with pytest.raises(AttributeError):
            tree.body[0].lineno = 5  # type: ignore[misc]

    def test_positions(self) -> None:
        tree = parse("line one\n{{ value }}")
        output = tree.body[1]
        assert output.lineno == 2
        assert output.expr.col_offset == 3


class TestParseErrors:
    """Invalid structure raises ParseError (a TemplateSyntaxError)."""

    def test_unclosed_block(self) -> None:
        with pytest.raises(ParseError, match="Unclosed 'if' block started at line 1") as exc_info:
            parse("{% if x %}never closed")
        assert exc_info.value.code is ErrorCode.UNCLOSED_BLOCK

    def test_mismatched_end_tag(self) -> None:
        with pytest.raises(ParseError, match="Mismatched closing tag: expected 'endfor'"):
            parse("{% for x in y %}{% endif %}")

    def test_mismatched_block_name(self) -> None:
        with pytest.raises(ParseError, match="Mismatched block name"):
            parse("{% block a %}{% endblock b %}")

    def test_stray_end_tag(self) -> None:
        with pytest.raises(ParseError, match="no block is open"):
            parse("text {% endif %}")

    def test_stray_else(self) -> None:
        with pytest.raises(ParseError, match="outside of a block"):
            parse("{% else %}")

    def test_unknown_tag(self) -> None:
        with pytest.raises(ParseError, match="Unknown tag 'frobnicate'"):
            parse("{% frobnicate %}")

    def test_extends_not_first(self) -> None:
        with pytest.raises(ParseError, match="'extends' must be the first statement"):
            parse("{{ x }}{% extends 'base.html' %}")

    def test_extends_twice(self) -> None:
        with pytest.raises(ParseError, match="extends more than one parent"):
            parse("{% extends 'a' %}{% extends 'b' %}")

    def test_duplicate_block(self) -> None:
        with pytest.raises(ParseError, match="Block 'a' defined twice"):
            parse("{% block a %}{% endblock %}{% block a %}{% endblock %}")

    def test_break_outside_loop(self) -> None:
        with pytest.raises(ParseError, match="'break' outside of a loop"):
            parse("{% break %}")

    def test_continue_in_macro_inside_loop(self) -> None:
        with pytest.raises(ParseError, match="'continue' outside of a loop"):
            parse("{% for x in y %}{% macro m() %}{% continue %}{% endmacro %}{% endfor %}")

    def test_elif_after_else(self) -> None:
        with pytest.raises(ParseError, match="'elif' after 'else'"):
            parse("{% if a %}{% else %}{% elif b %}{% endif %}")

    def test_non_default_after_default(self) -> None:
        with pytest.raises(ParseError, match="Non-default parameter 'b' follows default"):
            parse("{% macro m(a=1, b) %}{% endmacro %}")

    def test_private_import(self) -> None:
        with pytest.raises(ParseError, match="Cannot import private name '_hidden'"):
            parse("{% from 'm.html' import _hidden %}")

    def test_positional_after_keyword(self) -> None:
        with pytest.raises(ParseError, match="Positional argument follows keyword"):
            parse("{{ f(a=1, 2) }}")

    def test_assign_to_constant(self) -> None:
        with pytest.raises(ParseError, match="Cannot assign to 'true'"):
            parse("{% set true = 1 %}")

    def test_empty_output(self) -> None:
        with pytest.raises(ParseError, match="Expected an expression"):
            parse("{{ }}")

    def test_call_without_call_expression(self) -> None:
        with pytest.raises(ParseError, match="Expected a macro call"):
            parse("{% call foo %}{% endcall %}")

    def test_error_carries_location(self) -> None:
        source = "ok\n{% if %}"
        with pytest.raises(TemplateSyntaxError) as exc_info:
            parse(source)
        err = exc_info.value
        assert err.lineno == 2
        assert err.template_name == "test.html"
        assert err.offset == len(b"ok\n{% if ")

    def test_message_has_caret_snippet(self) -> None:
        with pytest.raises(TemplateSyntaxError) as exc_info:
            parse("{{ 1 + }}")
        text = str(exc_info.value)
        assert "Syntax Error" in text
        assert "^" in text
