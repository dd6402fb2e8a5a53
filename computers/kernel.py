"""
Kernel browser computer.

Attaches Playwright to a Kernel-hosted Chromium over its CDP WebSocket URL
and exposes the primitive actions the computer-use model emits. The remote
browser is owned by the Kernel session; closing this computer only
disconnects from it.
"""

import asyncio
import base64
import logging
from pathlib import Path
from typing import Dict, List, Optional

from playwright.async_api import Browser, BrowserContext, Download, Page, Playwright, async_playwright

from computers.base import Computer

logger = logging.getLogger(__name__)

CUA_KEY_TO_PLAYWRIGHT_KEY = {
    "/": "Divide",
    "\\": "Backslash",
    "alt": "Alt",
    "arrowdown": "ArrowDown",
    "arrowleft": "ArrowLeft",
    "arrowright": "ArrowRight",
    "arrowup": "ArrowUp",
    "backspace": "Backspace",
    "capslock": "CapsLock",
    "cmd": "Meta",
    "ctrl": "Control",
    "delete": "Delete",
    "end": "End",
    "enter": "Enter",
    "esc": "Escape",
    "home": "Home",
    "insert": "Insert",
    "option": "Alt",
    "pagedown": "PageDown",
    "pageup": "PageUp",
    "shift": "Shift",
    "space": " ",
    "super": "Meta",
    "tab": "Tab",
    "win": "Meta",
}

_MOUSE_BUTTONS = {"left": "left", "right": "right", "middle": "middle"}


def to_playwright_key(key: str) -> str:
    """Translate a CUA key name (``CTRL``, ``ArrowLeft``...) to Playwright's."""
    return CUA_KEY_TO_PLAYWRIGHT_KEY.get(key.lower(), key)


class KernelComputer(Computer):
    """Playwright-over-CDP computer for a remote Kernel browser."""

    environment = "browser"

    def __init__(
        self,
        cdp_ws_url: str,
        width: int = 1024,
        height: int = 768,
        download_dir: Optional[str] = None,
    ):
        self.cdp_ws_url = cdp_ws_url
        self.dimensions = (width, height)
        self.download_dir = Path(download_dir) if download_dir else None

        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def open(self) -> None:
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.connect_over_cdp(self.cdp_ws_url)

        contexts = self._browser.contexts
        self._context = contexts[0] if contexts else await self._browser.new_context()
        self._context.on("page", self._handle_new_page)

        pages = self._context.pages
        self._page = pages[0] if pages else await self._context.new_page()
        self._page.on("close", self._handle_page_close)

        width, height = self.dimensions
        await self._page.set_viewport_size({"width": width, "height": height})
        logger.info("Attached to remote browser (%sx%s)", width, height)

    async def close(self) -> None:
        browser, playwright = self._browser, self._playwright
        self._browser = self._playwright = None
        self._context = self._page = None
        if browser is not None:
            await browser.close()
        if playwright is not None:
            await playwright.stop()

    def _handle_new_page(self, page: Page) -> None:
        """Follow newly opened tabs."""
        logger.debug("New tab opened: %s", page.url)
        self._page = page
        page.on("close", self._handle_page_close)

    def _handle_page_close(self, page: Page) -> None:
        if self._page is not page or self._context is None:
            return
        remaining = [p for p in self._context.pages if p is not page]
        self._page = remaining[-1] if remaining else None
        logger.debug("Active tab closed; %s tab(s) remain", len(remaining))

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError("Computer is not open")
        return self._page

    # =========================================================================
    # Actions
    # =========================================================================

    async def screenshot(self) -> str:
        png_bytes = await self.page.screenshot(full_page=False)
        return base64.b64encode(png_bytes).decode("utf-8")

    async def click(self, x: int, y: int, button: str = "left") -> None:
        if button == "back":
            await self.back()
        elif button == "forward":
            await self.forward()
        elif button == "wheel":
            await self.page.mouse.wheel(x, y)
        else:
            await self.page.mouse.click(x, y, button=_MOUSE_BUTTONS.get(button, "left"))

    async def double_click(self, x: int, y: int) -> None:
        await self.page.mouse.dblclick(x, y)

    async def scroll(self, x: int, y: int, scroll_x: int, scroll_y: int) -> None:
        await self.page.mouse.move(x, y)
        await self.page.evaluate(f"window.scrollBy({int(scroll_x)}, {int(scroll_y)})")

    async def type(self, text: str) -> None:
        await self.page.keyboard.type(text)

    async def wait(self, ms: int = 1000) -> None:
        await asyncio.sleep(ms / 1000)

    async def move(self, x: int, y: int) -> None:
        await self.page.mouse.move(x, y)

    async def keypress(self, keys: List[str]) -> None:
        mapped = [to_playwright_key(key) for key in keys]
        for key in mapped:
            await self.page.keyboard.down(key)
        for key in reversed(mapped):
            await self.page.keyboard.up(key)

    async def drag(self, path: List[Dict[str, int]]) -> None:
        if not path:
            return
        mouse = self.page.mouse
        await mouse.move(path[0]["x"], path[0]["y"])
        await mouse.down()
        for point in path[1:]:
            await mouse.move(point["x"], point["y"])
        await mouse.up()

    async def get_current_url(self) -> str:
        return self.page.url

    # Extra navigation, reachable through function tools
    async def goto(self, url: str) -> None:
        await self.page.goto(url)

    async def back(self) -> None:
        await self.page.go_back()

    async def forward(self) -> None:
        await self.page.go_forward()

    # =========================================================================
    # Downloads
    # =========================================================================

    async def _download_reference(self, download: Download) -> str:
        if self.download_dir is None:
            return download.suggested_filename
        self.download_dir.mkdir(parents=True, exist_ok=True)
        target = self.download_dir / download.suggested_filename
        await download.save_as(target)
        return str(target)

    async def wait_for_download(self, timeout_ms: int) -> Optional[str]:
        """
        Wait for the first download started from any tab.

        Args:
            timeout_ms: Upper bound in milliseconds.

        Returns:
            The suggested filename (or saved path when download_dir is set),
            or None if nothing was downloaded in time.
        """
        context = self._context
        if context is None:
            raise RuntimeError("Computer is not open")

        loop = asyncio.get_running_loop()
        first_download: asyncio.Future = loop.create_future()
        watched: List[Page] = []

        def on_download(download: Download) -> None:
            if not first_download.done():
                first_download.set_result(download)

        def watch(page: Page) -> None:
            page.on("download", on_download)
            watched.append(page)

        for page in context.pages:
            watch(page)
        context.on("page", watch)

        try:
            download = await asyncio.wait_for(first_download, timeout_ms / 1000)
        except asyncio.TimeoutError:
            logger.info("No download within %sms", timeout_ms)
            return None
        finally:
            context.remove_listener("page", watch)
            for page in watched:
                page.remove_listener("download", on_download)

        reference = await self._download_reference(download)
        logger.info("Download started: %s", reference)
        return reference
