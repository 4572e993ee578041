"""Terminal colouring of diagnostics."""

from __future__ import annotations

import pytest

from quire import TemplateRuntimeError
from quire.environment import terminal


class TestColorDetection:
    def test_no_color_disables(self, monkeypatch) -> None:
        monkeypatch.delenv("FORCE_COLOR", raising=False)
        monkeypatch.setenv("NO_COLOR", "1")
        assert not terminal.supports_color()

    def test_force_color_wins_over_no_color(self, monkeypatch) -> None:
        monkeypatch.setenv("NO_COLOR", "1")
        monkeypatch.setenv("FORCE_COLOR", "1")
        assert terminal.supports_color()

    def test_colorize_plain_when_disabled(self, monkeypatch) -> None:
        monkeypatch.delenv("FORCE_COLOR", raising=False)
        assert terminal.colorize("Error", "bright_red", "bold") == "Error"

    def test_colorize_adds_codes_when_enabled(self, monkeypatch) -> None:
        monkeypatch.setenv("FORCE_COLOR", "1")
        result = terminal.colorize("Error", "bright_red", "bold")
        assert result.startswith("\033[91m\033[1m")
        assert result.endswith("\033[0m")
        assert terminal.strip_colors(result) == "Error"


class TestFormatting:
    def test_source_line_marker(self) -> None:
        assert terminal.format_source_line(7, "x") == "   7 | x"
        assert terminal.format_source_line(7, "x", is_error=True) == ">  7 | x"

    def test_error_header(self) -> None:
        assert terminal.format_error_header("Q-RUN-005", "boom") == "Q-RUN-005: boom"
        assert terminal.format_error_header(None, "boom") == "boom"

    def test_colored_error_strips_to_plain(self, env, monkeypatch) -> None:
        with pytest.raises(TemplateRuntimeError) as exc_info:
            env.render_str("{{ 1 // 0 }}")
        plain = str(exc_info.value)
        monkeypatch.setenv("FORCE_COLOR", "1")
        colored = str(exc_info.value)
        assert "\033[" in colored
        assert terminal.strip_colors(colored) == plain

