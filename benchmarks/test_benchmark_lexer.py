"""Lexer, parser and compiler throughput.

Run with:
    pytest benchmarks/test_benchmark_lexer.py -v --benchmark-enable
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from quire import SyntaxConfig
from quire.compiler import Compiler
from quire.lexer import tokenize
from quire.parser import Parser

if TYPE_CHECKING:
    from pytest_benchmark.fixture import BenchmarkFixture


# =============================================================================
# Test Templates
# =============================================================================

# Minimal: single variable
MINIMAL = "{{ name }}"

# Small: typical loop with variable
SMALL = """\
{% for item in items %}
  <li>{{ item.name | upper }}</li>
{% endfor %}
"""

# Medium: realistic page fragment
MEDIUM = """\
{% if user %}
  <div class="profile">
    <h1>{{ user.name | title }}</h1>
    <p>{{ user.bio | default("No bio") }}</p>
    {% for post in user.posts %}
      <article>
        <h2>{{ post.title }}</h2>
        <p>{{ post.body | truncate(120) }}</p>
        {# comments are dropped #}
      </article>
    {% endfor %}
  </div>
{% else %}
  <p>Please log in.</p>
{% endif %}
"""

# Large: repeated medium template
LARGE = MEDIUM * 20

# Data-heavy: lots of raw text between constructs
DATA_HEAVY = (
    """
This is a large block of static HTML content that doesn't contain any
template constructs. It simulates a real-world template where most of
the content is static HTML with occasional dynamic parts.

Lorem ipsum dolor sit amet, consectetur adipiscing elit. Sed do eiusmod
tempor incididunt ut labore et dolore magna aliqua.

{{ variable_1 }}

More static content here. The lexer needs to scan through all of this
to find the next template construct.

{{ variable_2 }}
"""
    * 10
)

# Construct-dense: many template constructs, little data
CONSTRUCT_DENSE = "{{ a }}{{ b }}{{ c }}{% if x %}{{ d }}{% endif %}" * 50

ERB = SyntaxConfig(
    block_start="<%",
    block_end="%>",
    variable_start="${",
    variable_end="}",
    comment_start="<%#",
    comment_end="%>",
)


@pytest.mark.benchmark(group="lexer:full-tokenize")
@pytest.mark.parametrize(
    ("template", "name"),
    [
        (MINIMAL, "minimal"),
        (SMALL, "small"),
        (MEDIUM, "medium"),
        (LARGE, "large"),
        (DATA_HEAVY, "data-heavy"),
        (CONSTRUCT_DENSE, "construct-dense"),
    ],
)
def test_lexer_tokenize(benchmark: BenchmarkFixture, template: str, name: str) -> None:
    result = benchmark(lambda: list(tokenize(template)))
    assert result[-1].type.name == "EOF"


@pytest.mark.benchmark(group="lexer:custom-syntax")
def test_lexer_custom_delimiters(benchmark: BenchmarkFixture) -> None:
    source = LARGE.replace("{%", "<%").replace("%}", "%>").replace("{{", "${").replace("}}", "}")
    source = source.replace("{#", "<%#").replace("#}", "%>")
    benchmark(lambda: list(tokenize(source, ERB)))


@pytest.mark.benchmark(group="pipeline:parse")
def test_parse_large(benchmark: BenchmarkFixture) -> None:
    benchmark(lambda: Parser(tokenize(LARGE), "large.html", LARGE).parse())


@pytest.mark.benchmark(group="pipeline:compile")
def test_compile_large(benchmark: BenchmarkFixture) -> None:
    ast = Parser(tokenize(LARGE), "large.html", LARGE).parse()
    benchmark(Compiler().compile, ast, "large.html")
