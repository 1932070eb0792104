"""Tests for the immutable UI context."""

import pytest
from pydantic import ValidationError

from lamacli.theme import DARK, LIGHT, UIContext, ViewMode


class TestUIContext:
    def test_with_theme_returns_new_context(self):
        ui = UIContext()
        light = ui.with_theme(LIGHT)

        assert ui.theme is DARK
        assert light.theme is LIGHT
        assert light.view is ui.view

    def test_next_theme_cycles(self):
        ui = UIContext()
        assert ui.next_theme().theme.name == "light"
        assert ui.next_theme().next_theme().theme.name == "dark"

    def test_context_is_frozen(self):
        with pytest.raises(ValidationError):
            UIContext().theme = LIGHT

    def test_allowed_transitions(self):
        ui = UIContext().go(ViewMode.FILES).go(ViewMode.FILE_VIEWER).go(ViewMode.CHAT)
        assert ui.view is ViewMode.CHAT

    def test_rejected_transition(self):
        ui = UIContext().go(ViewMode.HISTORY)
        with pytest.raises(ValueError):
            ui.go(ViewMode.FILES)

    def test_staying_put_is_allowed(self):
        ui = UIContext().go(ViewMode.HELP)
        assert ui.go(ViewMode.HELP) is ui
