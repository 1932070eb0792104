"""Immutable presentation context: colour theme and current view."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class Theme(BaseModel):
    """Colour palette, expressed as click colour names."""

    model_config = ConfigDict(frozen=True)

    name: str
    primary: str
    secondary: str
    subtle: str
    success: str
    warning: str
    error: str


DARK = Theme(
    name="dark",
    primary="magenta",
    secondary="bright_magenta",
    subtle="bright_black",
    success="green",
    warning="yellow",
    error="red",
)

LIGHT = Theme(
    name="light",
    primary="blue",
    secondary="cyan",
    subtle="black",
    success="green",
    warning="yellow",
    error="red",
)

THEMES = {t.name: t for t in (DARK, LIGHT)}


class ViewMode(str, Enum):
    CHAT = "chat"
    FILES = "files"
    FILE_VIEWER = "file_viewer"
    MODEL_SELECT = "model_select"
    HISTORY = "history"
    HELP = "help"


# Every secondary view returns to chat; files can open the viewer.
VIEW_TRANSITIONS: dict[ViewMode, frozenset[ViewMode]] = {
    ViewMode.CHAT: frozenset(
        {ViewMode.FILES, ViewMode.MODEL_SELECT, ViewMode.HISTORY, ViewMode.HELP}
    ),
    ViewMode.FILES: frozenset({ViewMode.CHAT, ViewMode.FILE_VIEWER}),
    ViewMode.FILE_VIEWER: frozenset({ViewMode.FILES, ViewMode.CHAT}),
    ViewMode.MODEL_SELECT: frozenset({ViewMode.CHAT}),
    ViewMode.HISTORY: frozenset({ViewMode.CHAT}),
    ViewMode.HELP: frozenset({ViewMode.CHAT}),
}


class UIContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    theme: Theme = DARK
    view: ViewMode = ViewMode.CHAT

    def with_theme(self, theme: Theme) -> UIContext:
        return self.model_copy(update={"theme": theme})

    def next_theme(self) -> UIContext:
        names = list(THEMES)
        following = names[(names.index(self.theme.name) + 1) % len(names)]
        return self.with_theme(THEMES[following])

    def go(self, view: ViewMode) -> UIContext:
        if view is self.view:
            return self
        if view not in VIEW_TRANSITIONS[self.view]:
            raise ValueError(f"Cannot switch from {self.view.value} to {view.value}")
        return self.model_copy(update={"view": view})
