"""Core browser management for interactive sessions."""

import logging
from typing import Optional

from playwright.async_api import async_playwright, Browser, BrowserContext, Page, Playwright

from formation_agent.core.browser_document import PlaywrightDocument

logger = logging.getLogger(__name__)


class BrowserManager:
    """Manages one Playwright browser session and its single page."""

    def __init__(self, visible: bool = False, timeout: int = 30000):
        """Initialize the browser manager.

        Args:
            visible: Whether to show the browser window
            timeout: Navigation timeout in milliseconds
        """
        self.visible = visible
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None

    async def initialize(self) -> bool:
        """Start the browser and open a page.

        Returns:
            True if successful, False otherwise
        """
        try:
            self.playwright = await async_playwright().start()
            self.browser = await self.playwright.chromium.launch(headless=not self.visible)
            self.context = await self.browser.new_context(viewport={'width': 1280, 'height': 1024})
            self.page = await self.context.new_page()
            self.logger.info("Browser initialized")
            return True
        except Exception as e:
            self.logger.error(f"Failed to start browser: {e}")
            await self.close()
            return False

    async def navigate(self, url: str) -> bool:
        """
        Navigate to a URL and wait for the page to settle.

        Args:
            url: URL to navigate to

        Returns:
            True if navigation successful, False otherwise
        """
        try:
            await self.page.goto(url, wait_until="networkidle", timeout=self.timeout)
            return True
        except Exception as e:
            self.logger.error(f"Failed to navigate to {url}: {e}")
            return False

    def get_document(self) -> PlaywrightDocument:
        """Document view of the current page."""
        if self.page is None:
            raise RuntimeError("Browser is not initialized")
        return PlaywrightDocument(self.page)

    async def close(self) -> None:
        """Close the browser manager."""
        try:
            if self.page:
                await self.page.close()
            if self.context:
                await self.context.close()
            if self.browser:
                await self.browser.close()
            if self.playwright:
                await self.playwright.stop()
        except Exception as e:
            self.logger.error(f"Error closing browser: {str(e)}")
        finally:
            self.page = None
            self.context = None
            self.browser = None
            self.playwright = None
