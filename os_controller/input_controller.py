"""Mouse and keyboard primitives for the reload script.

Clicks land exactly on the requested pixel: the bot's controls are small and
the script depends on fixed offsets, so there is no path smoothing or jitter.
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable

from os_controller.script_layout import ScriptDelays

if os.name == "nt":
    import ctypes

    try:
        ctypes.windll.user32.SetProcessDPIAware()
    except Exception:
        pass

try:
    import pyautogui
    import pyperclip

    pyautogui.FAILSAFE = True
    pyautogui.PAUSE = 0.0  # Timing comes from ScriptDelays
except Exception:  # not installed, or no display to attach to
    pyautogui = None
    pyperclip = None


class InputController:
    """Synthesizes clicks, hotkeys and clipboard pastes."""

    def __init__(
        self,
        delays: ScriptDelays | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.delays = delays or ScriptDelays()
        self.sleep = sleep
        self.logger = logging.getLogger("dash.input_controller")
        if not pyautogui:
            self.logger.warning("pyautogui not installed. InputController disabled.")

    def _check_available(self) -> None:
        if not pyautogui:
            raise RuntimeError("Cannot execute action: pyautogui missing.")

    def click(self, x: int, y: int) -> str:
        self._check_available()
        pyautogui.moveTo(x, y, _pause=False)
        self.sleep(self.delays.cursor_settle)
        pyautogui.mouseDown(_pause=False)
        self.sleep(self.delays.button_hold)
        pyautogui.mouseUp(_pause=False)
        self.sleep(self.delays.after_click)
        return f"Clicked at ({x}, {y})"

    def double_click(self, x: int, y: int) -> str:
        # Two discrete clicks; the bot's list control ignores OS double-click events.
        self.click(x, y)
        self.sleep(self.delays.double_click_gap)
        self.click(x, y)
        return f"Double-clicked at ({x}, {y})"

    def press_hotkey(self, *keys: str) -> str:
        self._check_available()
        pyautogui.hotkey(*keys, _pause=False)
        return f"Pressed hotkey: {'+'.join(keys)}"

    def press_key(self, key: str) -> str:
        self._check_available()
        pyautogui.press(key, _pause=False)
        return f"Pressed key: {key}"

    def replace_field_with_clipboard(self, text: str) -> str:
        """Select all, delete, then paste ``text`` via the clipboard."""
        self._check_available()
        if not pyperclip:
            raise RuntimeError("pyperclip missing.")
        pyperclip.copy(text)
        self.press_hotkey("ctrl", "a")
        self.sleep(self.delays.between_keys)
        self.press_key("delete")
        self.sleep(self.delays.between_keys)
        self.press_hotkey("ctrl", "v")
        self.sleep(self.delays.after_paste)
        return f"Pasted text of length {len(text)} from clipboard."
