"""Window lookup and placement via PyGetWindow plus a few raw user32 calls."""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

try:
    import pygetwindow as gw
except (ImportError, NotImplementedError):  # only Windows is supported
    gw = None

if os.name == "nt":
    import ctypes
    from ctypes import wintypes
else:
    ctypes = None
    wintypes = None

SW_SHOW = 5
SW_RESTORE = 9
HWND_TOPMOST = -1
HWND_NOTOPMOST = -2
SWP_NOSIZE = 0x0001
SWP_NOMOVE = 0x0002
SWP_SHOWWINDOW = 0x0040


@dataclass
class WindowInfo:
    """A top-level window and its on-screen rectangle."""

    handle: int
    title: str
    left: int
    top: int
    right: int
    bottom: int

    @property
    def origin(self) -> tuple[int, int]:
        return (self.left, self.top)


class WindowManager:
    """Facade for finding, placing and focusing desktop windows on Windows."""

    def __init__(self) -> None:
        self.logger = logging.getLogger("dash.window_manager")
        if not gw:
            self.logger.warning("pygetwindow is not installed.")

    def _check_available(self) -> None:
        if not gw:
            raise RuntimeError("Cannot execute window operation: pygetwindow missing.")
        if ctypes is None:
            raise RuntimeError("Window control requires a Windows environment.")

    @staticmethod
    def _user32() -> Any:
        return ctypes.windll.user32

    def find_window(self, title_substring: str) -> WindowInfo | None:
        """Return the first visible window whose title contains the substring."""
        self._check_available()
        needle = title_substring.lower()
        for window in gw.getAllWindows():
            title = window.title or ""
            if title.strip() and needle in title.lower():
                return WindowInfo(
                    handle=int(window._hWnd),
                    title=title,
                    left=window.left,
                    top=window.top,
                    right=window.right,
                    bottom=window.bottom,
                )
        return None

    def list_titles(self, limit: int = 5) -> list[str]:
        """Titles of visible windows, for diagnostics when the target is missing."""
        self._check_available()
        titles = [w.title for w in gw.getAllWindows() if (w.title or "").strip()]
        return titles[:limit]

    def is_minimized(self, handle: int) -> bool:
        self._check_available()
        return bool(self._user32().IsIconic(handle))

    def restore(self, handle: int) -> None:
        self._check_available()
        self._user32().ShowWindow(handle, SW_RESTORE)

    def move_resize(self, handle: int, x: int, y: int, width: int, height: int) -> None:
        self._check_available()
        if not self._user32().MoveWindow(handle, x, y, width, height, True):
            self.logger.warning("MoveWindow refused for handle %s", handle)

    def foreground_handle(self) -> int:
        self._check_available()
        return int(self._user32().GetForegroundWindow() or 0)

    def window_rect(self, handle: int) -> tuple[int, int, int, int]:
        self._check_available()
        rect = wintypes.RECT()
        self._user32().GetWindowRect(handle, ctypes.byref(rect))
        return (rect.left, rect.top, rect.right, rect.bottom)

    def force_foreground(self, handle: int) -> bool:
        """Bring ``handle`` to the foreground and report whether it got there.

        Plain SetForegroundWindow is refused by focus-stealing prevention when
        the caller does not own the current foreground window, so the input
        queue of the current foreground thread is attached for the duration
        of the switch and a TOPMOST/NOTOPMOST toggle raises the z-order.
        """
        self._check_available()
        user32 = self._user32()
        current = self.foreground_handle()
        if current == handle:
            return True

        own_thread = ctypes.windll.kernel32.GetCurrentThreadId()
        fg_pid = wintypes.DWORD()
        fg_thread = user32.GetWindowThreadProcessId(current, ctypes.byref(fg_pid))

        user32.AttachThreadInput(own_thread, fg_thread, True)
        try:
            user32.SetWindowPos(handle, HWND_TOPMOST, 0, 0, 0, 0, SWP_NOMOVE | SWP_NOSIZE)
            user32.SetWindowPos(
                handle, HWND_NOTOPMOST, 0, 0, 0, 0, SWP_NOMOVE | SWP_NOSIZE | SWP_SHOWWINDOW
            )
            user32.ShowWindow(handle, SW_SHOW)
            user32.SetForegroundWindow(handle)
        finally:
            user32.AttachThreadInput(own_thread, fg_thread, False)
        return self.foreground_handle() == handle

    def wait_for_new_foreground(
        self,
        previous_handle: int,
        timeout_seconds: float,
        poll_seconds: float,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> int | None:
        """Poll until a window other than ``previous_handle`` has focus.

        Returns the new foreground handle, or None when the timeout elapses.
        """
        deadline = clock() + timeout_seconds
        while True:
            current = self.foreground_handle()
            if current and current != previous_handle:
                return current
            if clock() >= deadline:
                return None
            sleep(poll_seconds)
