"""Screenshots of the preset visualizer page, taken with Playwright."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from types import TracebackType

from playwright.async_api import Browser, Page, Playwright, async_playwright

logger = logging.getLogger(__name__)

SCREENSHOT_SUFFIX = "_screenshot.jpg"


class PlaywrightScreenshotter:
    """Chromium with a fixed pool of pre-sized pages.

    ``take`` borrows a page from the pool, so at most ``pool_size``
    screenshots are in progress at once.
    """

    def __init__(
        self,
        visualizer_url: str,
        *,
        width: int = 2000,
        height: int = 1500,
        timeout: float = 30.0,
        pool_size: int = 10,
    ) -> None:
        self.visualizer_url = visualizer_url
        self.width = width
        self.height = height
        self.timeout_ms = timeout * 1000
        self.pool_size = pool_size
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._pages: asyncio.Queue[Page] = asyncio.Queue()

    async def start(self) -> None:
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch()
        for _ in range(self.pool_size):
            page = await self._browser.new_page(
                viewport={"width": self.width, "height": self.height}
            )
            self._pages.put_nowait(page)

    async def stop(self) -> None:
        while not self._pages.empty():
            await self._pages.get_nowait().close()
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    async def __aenter__(self) -> PlaywrightScreenshotter:
        try:
            await self.start()
        except BaseException:
            await self.stop()
            raise
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()

    async def take(self, preset_ids: str, prefix: Path) -> None:
        page = await self._pages.get()
        try:
            await page.goto(self.visualizer_url, timeout=self.timeout_ms)
            await page.locator("textarea").first.fill(
                preset_ids, timeout=self.timeout_ms
            )
            await page.locator("button").first.click()
            await page.wait_for_load_state("networkidle", timeout=self.timeout_ms)
            await page.screenshot(path=f"{prefix}{SCREENSHOT_SUFFIX}", type="jpeg")
        finally:
            self._pages.put_nowait(page)
        logger.info("Screenshot %s has been taken", prefix)
