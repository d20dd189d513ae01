"""
Renderer Module
Rendering-service collaborators that return fully executed page markup.
"""

import time
import logging
from typing import Optional

import requests
from playwright.sync_api import sync_playwright, Page, Error as PlaywrightError

from .api_utils import APIClient
from .exceptions import RenderError

logger = logging.getLogger(__name__)

SCRAPINGBEE_URL = 'https://app.scrapingbee.com/api/v1/'


class Renderer:
    """Given a URL, return the page markup after JavaScript has run."""

    name = 'renderer'

    def render(self, url: str) -> str:
        raise NotImplementedError


class ScrapingBeeRenderer(Renderer):
    """Renders pages through the ScrapingBee HTTP API."""

    name = 'scrapingbee'

    def __init__(self, api_key: str, timeout: Optional[int] = 60, api_url: str = SCRAPINGBEE_URL,
                 client: Optional[APIClient] = None):
        if not api_key:
            raise ValueError("SCRAPINGBEE_API_KEY not set")
        self.api_key = api_key
        self.api_url = api_url
        self.client = client or APIClient(timeout=timeout)

    def render(self, url: str) -> str:
        params = {'api_key': self.api_key, 'url': url, 'render_js': 'true'}
        try:
            response = self.client.get(self.api_url, params=params, check_status=False)
        except requests.RequestException as e:
            raise RenderError(f"ScrapingBee request failed: {e}") from e
        if not response.ok:
            raise RenderError(
                f"ScrapingBee API failed with status: {response.status_code} {response.text[:200]}")
        return response.text


class PlaywrightRenderer(Renderer):
    """
    Renders pages in a local headless Chromium.

    A browser is launched per call so the renderer can be used from any
    worker thread.
    """

    name = 'playwright'

    LAUNCH_ARGS = [
        '--no-sandbox',
        '--disable-setuid-sandbox',
        '--disable-dev-shm-usage',
        '--no-first-run',
        '--no-zygote',
        '--disable-gpu'
    ]

    def __init__(self, headless: bool = True, timeout: Optional[int] = 60):
        """
        Args:
            headless: Run browser in headless mode
            timeout: Navigation timeout in seconds; None waits indefinitely
        """
        self.headless = headless
        self.timeout_ms = timeout * 1000 if timeout else 0

    def render(self, url: str) -> str:
        try:
            with sync_playwright() as p:
                browser = p.chromium.launch(headless=self.headless, args=self.LAUNCH_ARGS)
                try:
                    page = browser.new_page(user_agent='Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36')
                    page.set_default_timeout(self.timeout_ms)
                    logger.info(f"Loading page: {url}")
                    page.goto(url, wait_until='networkidle', timeout=self.timeout_ms)
                    self._wait_for_stability(page)
                    return page.content()
                finally:
                    browser.close()
        except PlaywrightError as e:
            raise RenderError(f"Playwright failed to render {url}: {e}") from e

    def _wait_for_stability(self, page: Page, check_interval: float = 0.5, stable_time: float = 1.0):
        """Wait until the DOM stops changing, for at most ten seconds."""
        last_html = ""
        stable_count = 0
        required_stable = int(stable_time / check_interval)

        for _ in range(20):
            current_html = page.content()
            if current_html == last_html:
                stable_count += 1
                if stable_count >= required_stable:
                    return
            else:
                stable_count = 0
                last_html = current_html
            time.sleep(check_interval)


def build_renderer(settings) -> Optional[Renderer]:
    """Create the configured renderer, or None for encoded-script pages only."""
    backend = settings.render_backend
    if backend == 'playwright':
        return PlaywrightRenderer(timeout=settings.request_timeout)
    if backend == 'scrapingbee':
        try:
            return ScrapingBeeRenderer(settings.scrapingbee_api_key, timeout=settings.request_timeout)
        except ValueError as e:
            logger.warning(f"Renderer not available: {e}")
            return None
    if backend not in ('none', ''):
        logger.warning(f"Unknown RENDER_BACKEND '{backend}', rendered pages are disabled")
    return None
