"""Sesión autenticada de navegador (Playwright) para hablar con talk.shapes.inc."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

from playwright.async_api import Browser, BrowserContext, Error as PlaywrightError, Page, Playwright
from playwright.async_api import async_playwright

from shapes_bridge.core.errors import TransportUnavailable
from shapes_bridge.core.logging import get_logger, log_event

logger = get_logger("shapes_bridge.session")

EVENT_BINDING = "emitSSE"

_LOGIN_CHECK = """() => (
  !!document.querySelector('a[href^="/chat"]') ||
  !!document.querySelector('[data-testid="chat-list"]')
)"""

_LAUNCH_ARGS = ["--no-sandbox", "--disable-setuid-sandbox"]


class BrowserSession:
    """Proveedor de sesión: evalúa scripts en la página y persiste cookies.

    `evaluate` nunca lanza; cuando la página no existe o la evaluación falla
    retorna `None` y el relay degrada a timeout.
    """

    def __init__(self, *, cookie_path: str, base_url: str, headless: bool = True) -> None:
        self.cookie_path = Path(cookie_path)
        self.base_url = base_url.rstrip("/")
        self.headless = headless
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None

    async def start(self, on_event: Callable[[Any], None]) -> None:
        """Lanza Chromium, restaura cookies y expone el binding de eventos SSE."""
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.headless, args=_LAUNCH_ARGS
        )
        self._context = await self._browser.new_context()

        cookies = self._load_cookies()
        if cookies:
            try:
                await self._context.add_cookies(cookies)
            except PlaywrightError as exc:
                logger.warning("session.cookies_rejected", extra={"error": str(exc)})

        self._page = await self._context.new_page()
        # El binding debe existir antes de navegar para sobrevivir recargas.
        await self._page.expose_function(EVENT_BINDING, on_event)
        await self._page.goto(f"{self.base_url}/login", wait_until="networkidle")

        logged_in = await self.evaluate(_LOGIN_CHECK)
        if not logged_in:
            logger.warning(
                "session.login_required",
                extra={"cookie_path": str(self.cookie_path), "cookies_loaded": bool(cookies)},
            )
        else:
            log_event(logger, "session.ready", base_url=self.base_url)

        await self.save_cookies()

    def is_alive(self) -> bool:
        return self._page is not None and not self._page.is_closed()

    def _require_page(self) -> Page:
        if self._page is None or self._page.is_closed():
            raise TransportUnavailable("La página del navegador no está disponible")
        return self._page

    async def evaluate(self, script: str, *args: Any) -> Any | None:
        """Evalúa `script` en la página; los argumentos llegan como una lista."""
        try:
            page = self._require_page()
            return await page.evaluate(script, list(args))
        except TransportUnavailable:
            logger.debug("session.unavailable")
            return None
        except PlaywrightError as exc:
            logger.debug("session.evaluate_failed", extra={"error": str(exc)})
            return None

    def _load_cookies(self) -> list[dict[str, Any]]:
        if not self.cookie_path.exists():
            return []
        try:
            data = json.loads(self.cookie_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning(
                "session.cookies_unreadable",
                extra={"cookie_path": str(self.cookie_path), "error": str(exc)},
            )
            return []
        if not isinstance(data, list):
            return []
        return [cookie for cookie in data if isinstance(cookie, dict)]

    async def save_cookies(self) -> None:
        if self._context is None:
            return
        try:
            cookies = await self._context.cookies()
            self.cookie_path.parent.mkdir(parents=True, exist_ok=True)
            self.cookie_path.write_text(json.dumps(cookies, indent=2), encoding="utf-8")
        except (OSError, PlaywrightError):
            logger.exception("session.cookies_save_failed", extra={"cookie_path": str(self.cookie_path)})

    async def close(self) -> None:
        try:
            if self._context is not None:
                await self.save_cookies()
                await self._context.close()
            if self._browser is not None:
                await self._browser.close()
            if self._playwright is not None:
                await self._playwright.stop()
        except PlaywrightError:
            logger.exception("session.close_failed")
        finally:
            self._page = None
            self._context = None
            self._browser = None
            self._playwright = None
