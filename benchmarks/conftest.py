from __future__ import annotations

import json
import os
import platform
import sys
from importlib import metadata
from pathlib import Path

import pytest
from jinja2 import DictLoader as Jinja2DictLoader
from jinja2 import Environment as Jinja2Environment

from quire import DictLoader, Environment

BASE_DIR = Path(__file__).resolve().parent
BENCHMARK_OUTPUT_DIR = BASE_DIR.parent / ".benchmarks"

# Sources valid in both engines.
TEMPLATES: dict[str, str] = {
    "minimal.html": "Hello, {{ name }}!",
    "small.html": (
        "<h1>{{ title | upper }}</h1>\n"
        "<ul>\n"
        "{% for item in items %}  <li class=\"{{ loop.cycle('odd', 'even') }}\">{{ item }}</li>\n"
        "{% endfor %}</ul>\n"
    ),
    "medium.html": (
        "{% macro card(user) %}"
        "<div class=\"card\"><h2>{{ user.name | title }}</h2>"
        "<p>{{ user.email | default('no email') }}</p>"
        "{% if user.tags %}<p>{{ user.tags | join(', ') }}</p>{% endif %}</div>"
        "{% endmacro %}"
        "{% for user in users | sort(attribute='name') %}{{ card(user) }}{% endfor %}"
        "<p>{{ users | selectattr('active') | list | length }} active</p>"
    ),
    "large.html": (
        "<table>{% for row in rows %}<tr>"
        "{% for cell in row %}<td>{{ cell }}</td>{% endfor %}"
        "</tr>{% endfor %}</table>"
    ),
    "base.html": (
        "<html><head><title>{% block title %}Site{% endblock %}</title></head>"
        "<body>{% block nav %}<nav>{% for link in links %}<a>{{ link }}</a>{% endfor %}</nav>"
        "{% endblock %}{% block content %}{% endblock %}</body></html>"
    ),
    "layout.html": (
        "{% extends 'base.html' %}"
        "{% block title %}{{ page }} | {{ super() }}{% endblock %}"
        "{% block content %}<main>{% block main %}{% endblock %}</main>{% endblock %}"
    ),
    "complex.html": (
        "{% extends 'layout.html' %}"
        "{% block main %}{% for user in users %}"
        "{% include 'row.html' %}{% endfor %}{% endblock %}"
    ),
    "row.html": "<p>{{ user.name }} &lt;{{ user.email }}&gt;</p>",
}

SMALL_CONTEXT: dict[str, object] = {
    "title": "fruit",
    "items": ["apple", "banana", "cherry", "date", "<elderberry>"],
}

MEDIUM_CONTEXT: dict[str, object] = {
    "users": [
        {
            "name": f"user {i}",
            "email": f"user{i}@example.com" if i % 3 else None,
            "tags": ["admin", "staff"][: i % 3],
            "active": i % 2 == 0,
        }
        for i in range(100)
    ],
}

LARGE_CONTEXT: dict[str, object] = {
    "rows": [[f"r{r}c{c}" for c in range(10)] for r in range(100)],
}

COMPLEX_CONTEXT: dict[str, object] = {
    "page": "Members",
    "links": ["home", "about", "members", "contact"],
    "users": MEDIUM_CONTEXT["users"][:30],
}


def _version(dist: str) -> str:
    try:
        return metadata.version(dist)
    except metadata.PackageNotFoundError:
        return "unknown"


def collect_environment_metadata() -> dict[str, object]:
    """Capture reproducibility metadata for each benchmark run."""
    return {
        "python": {
            "version": platform.python_version(),
            "implementation": platform.python_implementation(),
            "executable": sys.executable,
        },
        "os": {
            "system": platform.system(),
            "release": platform.release(),
            "machine": platform.machine(),
        },
        "cpu": {
            "processor": platform.processor(),
            "count": os.cpu_count(),
        },
        "quire": _version("quire"),
        "jinja2": _version("jinja2"),
    }


@pytest.fixture(scope="session")
def environment_metadata() -> dict[str, object]:
    """Write environment metadata to .benchmarks for ingestion."""
    BENCHMARK_OUTPUT_DIR.mkdir(exist_ok=True)
    info = collect_environment_metadata()
    (BENCHMARK_OUTPUT_DIR / "environment.json").write_text(json.dumps(info, indent=2))
    return info


@pytest.fixture(scope="session")
def quire_env() -> Environment:
    return Environment(loader=DictLoader(TEMPLATES))


@pytest.fixture(scope="session")
def jinja2_env() -> Jinja2Environment:
    return Jinja2Environment(loader=Jinja2DictLoader(TEMPLATES), autoescape=True)


@pytest.fixture(scope="session")
def small_context() -> dict[str, object]:
    return SMALL_CONTEXT


@pytest.fixture(scope="session")
def medium_context() -> dict[str, object]:
    return MEDIUM_CONTEXT


@pytest.fixture(scope="session")
def large_context() -> dict[str, object]:
    return LARGE_CONTEXT


@pytest.fixture(scope="session")
def complex_context() -> dict[str, object]:
    return COMPLEX_CONTEXT


@pytest.fixture(scope="session")
def template_sources() -> dict[str, str]:
    return TEMPLATES
