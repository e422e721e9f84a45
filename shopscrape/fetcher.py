import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Any, Dict, List, Optional

from fake_useragent import UserAgent
from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright_stealth import Stealth

from .errors import LaunchError

logger = logging.getLogger(__name__)

UA = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36"

LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-features=IsolateOrigins,site-per-process",
    "--disable-site-isolation-trials",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--hide-scrollbars",
    "--mute-audio",
]

CONTEXT_OPTIONS: Dict[str, Any] = {
    "viewport": {"width": 1920, "height": 1080},
    "device_scale_factor": 1,
    "has_touch": False,
    "is_mobile": False,
    "java_script_enabled": True,
    "locale": "en-US",
    "timezone_id": "Asia/Manila",
    "color_scheme": "light",
    "ignore_https_errors": True,
}

# Images, fonts and stylesheets are never needed for extraction.
BLOCKED_RESOURCES = "**/*.{png,jpg,jpeg,gif,webp,svg,css,woff,woff2,ttf,otf}"

# Runs before any page script in every frame of the context.
STEALTH_INIT_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });
Object.defineProperty(navigator, 'plugins', {
  get: () => [
    { name: 'Chrome PDF Plugin', filename: 'internal-pdf-viewer' },
    { name: 'Chrome PDF Viewer', filename: 'mhjfbmdgcfjbbpaeojofohoefgiehjai' },
    { name: 'Native Client', filename: 'internal-nacl-plugin' },
  ],
});
(() => {
  const patch = (proto) => {
    if (!proto) return;
    const getParameter = proto.getParameter;
    proto.getParameter = function (parameter) {
      if (parameter === 37445) return 'Intel Inc.';                 // UNMASKED_VENDOR_WEBGL
      if (parameter === 37446) return 'Intel Iris OpenGL Engine';   // UNMASKED_RENDERER_WEBGL
      return getParameter.apply(this, [parameter]);
    };
  };
  patch(window.WebGLRenderingContext && WebGLRenderingContext.prototype);
  patch(window.WebGL2RenderingContext && WebGL2RenderingContext.prototype);
})();
"""


@lru_cache()
def _user_agents() -> UserAgent:
    return UserAgent(fallback=UA)


def random_user_agent() -> str:
    return _user_agents().chrome


class BrowserSession:
    """
    One headless Chromium process plus the contexts opened on it.

    Every page gets its own context so cookies and navigation state never
    leak between platforms. Use as an async context manager, or call close()
    on every exit path.
    """

    def __init__(self, pw: Playwright, browser: Browser, user_agent: Optional[str] = None,
                 block_resources: bool = True, storage_state: Optional[Dict[str, Any]] = None):
        self._pw = pw
        self._browser = browser
        self.user_agent = user_agent
        self.block_resources = block_resources
        self.storage_state = storage_state
        self._stealth = Stealth()
        self._contexts: List[BrowserContext] = []
        self.closed = False

    @classmethod
    async def open(cls, headless: bool = True, user_agent: Optional[str] = None,
                   block_resources: bool = True, storage_state: Optional[Dict[str, Any]] = None) -> "BrowserSession":
        pw = None
        try:
            pw = await async_playwright().start()
            browser = await pw.chromium.launch(headless=headless, args=LAUNCH_ARGS)
        except (PlaywrightError, OSError) as e:
            if pw is not None:
                await pw.stop()
            raise LaunchError(f"could not start chromium: {e}") from e
        logger.info("[Fetcher] Browser launched (headless=%s, block_resources=%s)", headless, block_resources)
        return cls(pw, browser, user_agent=user_agent, block_resources=block_resources, storage_state=storage_state)

    async def __aenter__(self) -> "BrowserSession":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def new_page(self, extra_headers: Optional[Dict[str, str]] = None) -> Page:
        if self.closed:
            raise RuntimeError("browser session is closed")
        ctx = await self._browser.new_context(
            user_agent=self.user_agent or random_user_agent(),
            storage_state=self.storage_state,
            **CONTEXT_OPTIONS,
        )
        self._contexts.append(ctx)
        try:
            await self._stealth.apply_stealth_async(ctx)
            await ctx.add_init_script(STEALTH_INIT_SCRIPT)
            if extra_headers:
                await ctx.set_extra_http_headers(extra_headers)
            page = await ctx.new_page()
            if self.block_resources:
                await page.route(BLOCKED_RESOURCES, lambda route: route.abort())
        except BaseException:
            await self._close_context(ctx)
            raise
        return page

    async def _close_context(self, ctx: BrowserContext):
        if ctx in self._contexts:
            self._contexts.remove(ctx)
        try:
            await ctx.close()
        except PlaywrightError as e:
            logger.debug("[Fetcher] context close failed: %s", e)

    async def close_page(self, page: Page):
        await self._close_context(page.context)

    @asynccontextmanager
    async def page_scope(self, extra_headers: Optional[Dict[str, str]] = None):
        page = await self.new_page(extra_headers=extra_headers)
        try:
            yield page
        finally:
            await self.close_page(page)

    async def close(self):
        if self.closed:
            return
        self.closed = True
        for ctx in list(self._contexts):
            await self._close_context(ctx)
        try:
            await self._browser.close()
        finally:
            await self._pw.stop()
        logger.info("[Fetcher] Browser closed")
