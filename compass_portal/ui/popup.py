"""Popup windows used for external authorization.

A popup is anything with a boolean ``closed`` attribute. The browser
launcher opens the authorization URL in the user's browser; the handle
is marked closed when the backend redirects the browser to the local
landing app, or when the user gives up and closes it explicitly.
"""

import logging
import threading
import webbrowser
from typing import Callable, Protocol
from urllib.parse import parse_qs, urlparse

logger = logging.getLogger(__name__)


class PopupHandle(Protocol):
    closed: bool


class PopupLauncher(Protocol):
    def open(self, url: str, width: int, height: int) -> PopupHandle | None:
        """Open ``url``; a falsy return means the popup was blocked."""


class BrowserPopup:
    """Handle for an authorization page opened in the system browser."""

    def __init__(self, url: str, state: str | None, width: int, height: int):
        self.url = url
        self.state = state
        self.size = (width, height)
        self.result: str | None = None
        self.message: str | None = None
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def close(self, result: str = "closed", message: str | None = None) -> None:
        if self.closed:
            return
        self.result = result
        self.message = message
        self._closed.set()
        logger.debug(f"Popup for state {self.state} closed ({result})")

    def __repr__(self) -> str:
        return f"BrowserPopup(state={self.state!r}, closed={self.closed})"


class PopupRegistry:
    """Open browser popups keyed by OAuth state."""

    def __init__(self):
        self._popups: dict[str | None, BrowserPopup] = {}
        self._lock = threading.Lock()

    def register(self, popup: BrowserPopup) -> None:
        with self._lock:
            self._popups[popup.state] = popup

    @property
    def pending(self) -> list[BrowserPopup]:
        with self._lock:
            return [popup for popup in self._popups.values() if not popup.closed]

    def close(self, state: str | None, result: str = "success", message: str | None = None) -> bool:
        with self._lock:
            popup = self._popups.pop(state, None)
        if popup is None:
            logger.warning(f"No pending popup for state {state}")
            return False
        popup.close(result, message)
        return True

    def close_all(self, result: str = "error", message: str | None = None) -> int:
        with self._lock:
            popups = list(self._popups.values())
            self._popups.clear()
        for popup in popups:
            popup.close(result, message)
        return len(popups)


def state_from_url(url: str) -> str | None:
    values = parse_qs(urlparse(url).query).get("state")
    return values[0] if values else None


class BrowserPopupLauncher:
    """Open authorization URLs with :mod:`webbrowser`.

    Args:
        registry: Registry the landing app uses to close handles
        opener: Callable returning True when the browser accepted the URL
    """

    def __init__(self, registry: PopupRegistry, opener: Callable[[str], bool] = webbrowser.open_new):
        self.registry = registry
        self.opener = opener

    def open(self, url: str, width: int, height: int) -> BrowserPopup | None:
        if not self.opener(url):
            logger.warning("Browser refused to open the authorization page")
            return None
        popup = BrowserPopup(url, state_from_url(url), width, height)
        self.registry.register(popup)
        logger.info(f"Opened authorization page ({width}x{height})")
        return popup
