from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from models import CameraState

logger = logging.getLogger(__name__)

_GPU_ARGS = [
    "--enable-gpu",
    "--enable-webgl",
    "--ignore-gpu-blocklist",
    "--enable-gpu-rasterization",
    "--disable-software-rasterizer",
]

DEFAULT_VIEWER = Path(__file__).resolve().parent / "web" / "viewer.html"
DEFAULT_STYLE = "https://demotiles.maplibre.org/style.json"


@dataclass
class BrowserOptions:
    width: int = 1280
    height: int = 720
    headless: bool = True
    style_url: str = DEFAULT_STYLE


class PlaywrightMapSurface:
    """Map surface backed by ``web/viewer.html`` in Chromium.

    Frames come from the page's ``requestAnimationFrame``, so shots advance
    at the browser's own frame rate. Use as an async context manager; the
    browser stays alive for every shot run inside the block.
    """

    def __init__(
        self,
        options: BrowserOptions | None = None,
        initial: CameraState | None = None,
        viewer_html_path: Path | None = None,
    ):
        self._options = options or BrowserOptions()
        self._initial = initial or CameraState()
        self._vpath = viewer_html_path or DEFAULT_VIEWER
        self._pw = None
        self._browser = None
        self._page = None
        self._console_messages: list[str] = []

    # ── context manager ──

    async def __aenter__(self) -> PlaywrightMapSurface:
        if not self._vpath.exists():
            raise FileNotFoundError(f"Viewer HTML not found: {self._vpath}")

        self._pw = await async_playwright().start()
        self._browser = await self._pw.chromium.launch(headless=self._options.headless, args=_GPU_ARGS)
        self._page = await self._browser.new_page(
            viewport={"width": self._options.width, "height": self._options.height}
        )
        self._page.on("console", self._on_console)
        await self._page.goto(self._vpath.as_uri(), wait_until="domcontentloaded")

        try:
            await self._page.evaluate(
                "async (cfg) => { await window.bootViewer(cfg); }",
                {"styleUrl": self._options.style_url, "initialCamera": self._initial.to_dict()},
            )
        except PlaywrightError as exc:
            await self.close()
            console_tail = "\n".join(self._console_messages[-8:])
            extra = f"\nBrowser console:\n{console_tail}" if console_tail else ""
            raise RuntimeError(
                "Map viewer initialization failed. Check the style URL and network access.\n"
                f"Original error: {exc}{extra}"
            ) from exc
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if self._browser:
            await self._browser.close()
            self._browser = None
        if self._pw:
            await self._pw.stop()
            self._pw = None
        self._page = None

    def _on_console(self, msg) -> None:
        text = msg.text.strip()
        if text:
            self._console_messages.append(f"[{msg.type}] {text}")
            logger.debug("viewer console [%s] %s", msg.type, text)

    def _require_page(self):
        if self._page is None:
            raise RuntimeError("Browser surface is not open; use it as 'async with PlaywrightMapSurface()'")
        return self._page

    # ── MapSurface ──

    async def is_ready(self) -> bool:
        page = self._require_page()
        return bool(await page.evaluate("() => window.isStyleLoaded()"))

    async def get_camera(self) -> CameraState:
        page = self._require_page()
        return CameraState.from_dict(await page.evaluate("() => window.getCameraState()"))

    async def jump_to(self, state: CameraState) -> None:
        page = self._require_page()
        await page.evaluate("(s) => window.setCameraState(s);", state.to_dict())

    async def next_frame(self) -> float:
        page = self._require_page()
        stamp_ms = await page.evaluate("() => new Promise((resolve) => requestAnimationFrame(resolve))")
        return float(stamp_ms) / 1000.0

    # ── extras ──

    async def screenshot(self, image_path: Path) -> None:
        """Capture the current frame as a PNG still."""
        page = self._require_page()
        image_path.parent.mkdir(parents=True, exist_ok=True)
        await page.screenshot(path=str(image_path), type="png")
