"""Pytest configuration and fixtures for Quire tests."""

import pytest

from quire import DictLoader, Environment, UndefinedBehavior


@pytest.fixture(autouse=True)
def _plain_diagnostics(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep error messages free of ANSI colours so substring checks are stable."""
    monkeypatch.delenv("FORCE_COLOR", raising=False)
    monkeypatch.setenv("NO_COLOR", "1")


@pytest.fixture
def env():
    """Create a Quire Environment with autoescape disabled."""
    return Environment(autoescape=False)


@pytest.fixture
def env_autoescape():
    """Create a Quire Environment with HTML autoescape enabled."""
    return Environment(autoescape=True)


@pytest.fixture
def env_strict():
    """Create a Quire Environment that raises on undefined values."""
    return Environment(autoescape=False, undefined=UndefinedBehavior.STRICT)


@pytest.fixture
def env_trim():
    """Create a Quire Environment with trim_blocks enabled."""
    return Environment(autoescape=False, trim_blocks=True)


@pytest.fixture
def env_with_loader():
    """Create a Quire Environment with DictLoader and test templates."""
    loader = DictLoader(
        {
            "base.html": (
                "<html>"
                "<head>{% block head %}{% endblock %}</head>"
                "<body>{% block body %}{% endblock %}</body>"
                "</html>"
            ),
            "child.html": ('{% extends "base.html" %}{% block body %}Hello World{% endblock %}'),
            "partial.html": "<p>Partial content</p>",
            "macros.html": (
                "{% macro greet(name) %}Hello {{ name }}{% endmacro %}"
                "{% macro add(a, b) %}{{ a + b }}{% endmacro %}"
            ),
        }
    )
    return Environment(loader=loader)
