"""One Environment shared by many threads rendering at once."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from quire import DictLoader, Environment

THREADS = 8

PAGE = """\
{% extends "base.html" %}
{% block body %}{% from "tags.html" import tag %}<article id="page-{{ page_id }}">
{%- for t in tags %}{{ tag(t) }}{% endfor -%}
</article>{% endblock %}"""


@pytest.fixture
def shared_env() -> Environment:
    return Environment(
        loader=DictLoader(
            {
                "base.html": "<h1>{% block title %}Page {{ page_id }}{% endblock %}</h1>{% block body %}{% endblock %}",
                "tags.html": "{% macro tag(name) %}<li>{{ name }}</li>{% endmacro %}",
                "page.html": PAGE,
            }
        ),
        autoescape=False,
    )


def _page(i: int) -> dict[str, object]:
    return {"page_id": i, "tags": [f"tag-{i}-a", f"tag-{i}-b", f"tag-{i}-c"]}


class TestConcurrentRendering:
    """Threads render the same template without cross-contamination."""

    def test_each_thread_gets_its_own_output(self, shared_env) -> None:
        template = shared_env.get_template("page.html")

        def render(i: int) -> list[str]:
            return [template.render(_page(i)) for _ in range(25)]

        with ThreadPoolExecutor(max_workers=THREADS) as pool:
            results = list(pool.map(render, range(THREADS)))

        for i, outputs in enumerate(results):
            expected = (
                f'<h1>Page {i}</h1><article id="page-{i}">'
                f"<li>tag-{i}-a</li><li>tag-{i}-b</li><li>tag-{i}-c</li></article>"
            )
            assert set(outputs) == {expected}

    def test_cold_cache_race_keeps_one_template(self, shared_env) -> None:
        with ThreadPoolExecutor(max_workers=THREADS) as pool:
            templates = list(pool.map(lambda _: shared_env.get_template("page.html"), range(THREADS)))
        assert all(t is templates[0] for t in templates)

    def test_host_calls_to_a_shared_macro(self, shared_env) -> None:
        module = shared_env.get_template("tags.html").module()

        def call(i: int) -> list[str]:
            return [module.tag(f"{i}-{n}") for n in range(50)]

        with ThreadPoolExecutor(max_workers=THREADS) as pool:
            results = list(pool.map(call, range(THREADS)))

        for i, outputs in enumerate(results):
            assert outputs == [f"<li>{i}-{n}</li>" for n in range(50)]

    def test_shared_macro_inside_concurrent_renders(self, shared_env) -> None:
        tag = shared_env.get_template("tags.html").module().tag
        template = shared_env.from_string("{% for n in range(20) %}{{ tag(k) }}{% endfor %}")

        def render(i: int) -> str:
            return template.render(tag=tag, k=i)

        with ThreadPoolExecutor(max_workers=THREADS) as pool:
            results = list(pool.map(render, range(THREADS)))

        assert results == [f"<li>{i}</li>" * 20 for i in range(THREADS)]
