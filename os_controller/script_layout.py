"""Coordinates and timings of the bot's reload-settings interaction script.

Every point is an offset from the top-left corner of the window it is
anchored to: the bot's main window or the account popup opened from it. The
numbers were measured against a 1024x768 main window and are only valid for
that layout.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

Anchor = Literal["main", "popup"]


class ScreenPoint(BaseModel):
    """A click target relative to an anchor window."""

    x: int
    y: int
    anchor: Anchor = "main"

    def resolve(self, main_origin: tuple[int, int], popup_origin: tuple[int, int]) -> tuple[int, int]:
        """Translate to absolute screen coordinates."""
        base = popup_origin if self.anchor == "popup" else main_origin
        return (base[0] + self.x, base[1] + self.y)


class ScriptLayout(BaseModel):
    """Click targets, in script order."""

    search_box: ScreenPoint = Field(default_factory=lambda: ScreenPoint(x=994, y=142))
    account_row: ScreenPoint = Field(default_factory=lambda: ScreenPoint(x=391, y=216))
    functions_tab: ScreenPoint = Field(
        default_factory=lambda: ScreenPoint(x=159, y=60, anchor="popup")
    )
    reload_settings: ScreenPoint = Field(default_factory=lambda: ScreenPoint(x=390, y=300))
    close_record: ScreenPoint = Field(default_factory=lambda: ScreenPoint(x=450, y=14))
    final_click: ScreenPoint = Field(default_factory=lambda: ScreenPoint(x=745, y=145))


class ScriptDelays(BaseModel):
    """Pauses in seconds, tuned by hand against the bot's UI animations."""

    cursor_settle: float = 0.1
    button_hold: float = 0.05
    after_click: float = 0.1
    double_click_gap: float = 0.1
    after_restore: float = 1.0
    after_resize: float = 0.5
    after_foreground: float = 1.0
    after_search_click: float = 0.5
    between_keys: float = 0.1
    after_paste: float = 0.5
    after_search_submit: float = 2.0
    after_account_open: float = 3.0
    after_functions_tab: float = 1.0
    after_reload: float = 2.0
    after_close: float = 1.0
    after_final_click: float = 1.0


class AutomationConfig(BaseModel):
    """Driver configuration block (``automation:`` in the YAML config)."""

    allow_os_automation: bool = False
    window_title: str = "Lords Mobile Bot"
    window_origin: tuple[int, int] = (0, 0)
    window_size: tuple[int, int] = (1024, 768)
    foreground_attempts: int = 2
    popup_timeout_seconds: float = 10.0
    popup_poll_seconds: float = 0.5
    layout: ScriptLayout = Field(default_factory=ScriptLayout)
    delays: ScriptDelays = Field(default_factory=ScriptDelays)
