"""Windows driver that makes the bot reload one account's settings.

The bot has no API for this, so the driver operates its UI the way a person
would: search the account list for the IGG ID, open the account record,
press Functions -> Reload Settings and close the record again.
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable

from core.errors import (
    AutomationCancelled,
    AutomationError,
    AutomationFailed,
    TargetNotFound,
)
from os_controller.base_controller import DriverResult, WindowAutomationDriver
from os_controller.input_controller import InputController
from os_controller.script_layout import AutomationConfig, ScreenPoint
from os_controller.window_manager import WindowManager


class Transcript:
    """Collects step lines for diagnostics and mirrors them to the logger."""

    def __init__(self, logger: logging.Logger) -> None:
        self.logger = logger
        self.lines: list[str] = []

    def __call__(self, line: str, level: int = logging.INFO) -> None:
        self.lines.append(line)
        self.logger.log(level, line)

    def text(self) -> str:
        return "\n".join(self.lines)


class ReloadSettingsDriver(WindowAutomationDriver):
    """Drives the bot's main window and account popup with synthetic input."""

    def __init__(
        self,
        config: AutomationConfig | None = None,
        input_controller: InputController | None = None,
        window_manager: WindowManager | None = None,
        platform_name: str = os.name,
    ) -> None:
        self.config = config or AutomationConfig()
        self.platform_name = platform_name
        self.logger = logging.getLogger("dash.driver")
        self._cancel = threading.Event()
        self.input_controller = input_controller or InputController(
            self.config.delays, sleep=self._sleep
        )
        self.window_manager = window_manager or WindowManager()

    def _ensure_allowed(self) -> None:
        if not self.config.allow_os_automation:
            raise AutomationFailed("OS automation is disabled by configuration.")
        if self.platform_name != "nt":
            raise AutomationFailed("The bot driver requires a Windows environment.")

    def _sleep(self, seconds: float) -> None:
        if self._cancel.wait(max(0.0, seconds)):
            raise AutomationCancelled("Automation cancelled.")

    def run(self, identifier: str, cancel_event: threading.Event | None = None) -> DriverResult:
        self._ensure_allowed()
        self._cancel = cancel_event or threading.Event()
        transcript = Transcript(self.logger)
        try:
            self._run_script(identifier, transcript)
        except AutomationError as exc:
            exc.output = transcript.text()
            raise
        except Exception as exc:
            transcript(f"ERROR: {exc}", logging.ERROR)
            raise AutomationFailed(f"Automation step failed: {exc}", output=transcript.text()) from exc
        return {
            "success": True,
            "identifier": identifier,
            "steps": list(transcript.lines),
            "output": transcript.text(),
        }

    def _click(
        self,
        label: str,
        point: ScreenPoint,
        main: tuple[int, int],
        popup: tuple[int, int],
        log: Transcript,
        double: bool = False,
    ) -> None:
        x, y = point.resolve(main, popup)
        if double:
            log(f"{label}: Double-click at ({x}, {y})")
            self.input_controller.double_click(x, y)
        else:
            log(f"{label}: Click at ({x}, {y})")
            self.input_controller.click(x, y)

    def _run_script(self, identifier: str, log: Transcript) -> None:
        cfg = self.config
        delays = cfg.delays
        layout = cfg.layout
        wm = self.window_manager
        sleep: Callable[[float], None] = self._sleep

        log("=== AUTOMATION START ===")
        log(f"Searching for {cfg.window_title}...")
        window = wm.find_window(cfg.window_title)
        if window is None:
            log(f"ERROR: {cfg.window_title} not found!", logging.ERROR)
            for title in wm.list_titles(limit=5):
                log(f"Found Window: {title}")
            raise TargetNotFound(
                f"{cfg.window_title} application not found. Please open it manually."
            )

        log(f"Found: {window.title}")
        handle = window.handle

        if wm.is_minimized(handle):
            log("Restoring minimized window...")
            wm.restore(handle)
            sleep(delays.after_restore)

        width, height = cfg.window_size
        ox, oy = cfg.window_origin
        log(f"Resizing window to {width}x{height} at ({ox},{oy})...")
        wm.move_resize(handle, ox, oy, width, height)
        sleep(delays.after_resize)

        for attempt in range(max(1, cfg.foreground_attempts)):
            log("Forcing window to foreground...")
            in_front = wm.force_foreground(handle)
            sleep(delays.after_foreground)
            if in_front:
                log("SUCCESS: Window is now in foreground")
                break
            log(f"WARNING: Window may not be in foreground (attempt {attempt + 1}).", logging.WARNING)

        left, top, _, _ = wm.window_rect(handle)
        main = (left, top)
        log(f"Main Window at: ({left}, {top})")

        # Popup-anchored points are only used after step 4 resolves the popup.
        self._click("Step 1: Search", layout.search_box, main, main, log)
        sleep(delays.after_search_click)
        self._click("Step 1: Search", layout.search_box, main, main, log)
        sleep(delays.after_search_click)

        log(f"Step 2: Paste IGG ID {identifier}")
        self.input_controller.replace_field_with_clipboard(identifier)
        self.input_controller.press_key("enter")
        sleep(delays.after_search_submit)

        self._click("Step 3: Account", layout.account_row, main, main, log, double=True)
        sleep(delays.after_account_open)

        log("Step 4: Detecting account popup...")
        popup_handle = wm.wait_for_new_foreground(
            handle,
            timeout_seconds=cfg.popup_timeout_seconds,
            poll_seconds=cfg.popup_poll_seconds,
            sleep=sleep,
        )
        if popup_handle is None:
            log(
                "WARNING: Timeout waiting for separate popup window. Falling back to main window.",
                logging.WARNING,
            )
            popup_handle = handle
        else:
            log(f"SUCCESS: Account popup detected. Handle: {popup_handle}")

        p_left, p_top, p_right, p_bottom = wm.window_rect(popup_handle)
        popup = (p_left, p_top)
        log(f"Popup Window Rect: Left={p_left}, Top={p_top}, Right={p_right}, Bottom={p_bottom}")

        self._click("Step 5: Functions", layout.functions_tab, main, popup, log)
        sleep(delays.after_functions_tab)

        self._click("Step 6: Reload Settings", layout.reload_settings, main, popup, log)
        sleep(delays.after_reload)

        self._click("Step 7: Close", layout.close_record, main, popup, log)
        sleep(delays.after_close)

        self._click("Step 8: Final", layout.final_click, main, popup, log)
        sleep(delays.after_final_click)

        log("=== AUTOMATION COMPLETE ===")
