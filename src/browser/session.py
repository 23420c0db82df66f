"""マーケットプレイス ブラウザセッション

Playwright の永続コンテキスト（Chromiumプロファイル）でログイン状態を保持し、
SKUごとに出品一覧の検索結果ページを開いてHTMLスナップショットを保存する。
ログイン（2FA/CAPTCHA）は手動で行い、完了をURLで検知する。
"""

import logging
import re
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional
from urllib.parse import quote

from src.browser.humanize import (
    human_mouse_move,
    human_scroll,
    random_pause,
    random_user_agent,
    random_viewport,
)
from src.extract.snapshot import snapshot_path
from src.monitor.config import listings_url, resolve_path

logger = logging.getLogger(__name__)

LISTINGS_PATH_RE = re.compile(r"/publicaciones/listado")

# 閉じる/同意ボタン（モーダル・クッキーバナー）
OVERLAY_SELECTORS = [
    'button[aria-label="Cerrar"]',
    ".andes-modal__close",
    'button:has-text("×")',
    'button:has-text("Entendido")',
    'button:has-text("Aceptar")',
    'button:has-text("Aceptar todo")',
]

LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--no-default-browser-check",
    "--disable-popup-blocking",
]


class MarketplaceSession:
    """出品管理画面のブラウザセッション

    使い方:
        with MarketplaceSession(config) as session:
            session.open_listings()
            if not session.is_logged_in():
                session.wait_for_manual_login(300)
            html = session.save_html_for_sku("1234", "out")
    """

    def __init__(self, config: Dict[str, Any], headless: Optional[bool] = None):
        self.config = config
        self.listings_url = listings_url(config)
        self.profile_dir = resolve_path(config, "profile_dir")
        browser_config = config.get("browser", {})
        self.headless = (
            browser_config.get("headless", False) if headless is None else headless
        )
        self.locale = browser_config.get("locale", "es-UY")
        self.timezone = browser_config.get("timezone", "America/Montevideo")
        self._playwright = None
        self._context = None
        self.page = None

    def __enter__(self) -> "MarketplaceSession":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def start(self) -> None:
        """永続コンテキストでChromiumを起動"""
        try:
            from playwright.sync_api import Error as PlaywrightError
            from playwright.sync_api import sync_playwright
        except ImportError:
            raise RuntimeError(
                "Playwrightが未インストールです。"
                "pip install playwright && playwright install chromium"
            )

        self.profile_dir.mkdir(parents=True, exist_ok=True)
        user_agent = random_user_agent()
        viewport = random_viewport()

        self._playwright = sync_playwright().start()
        try:
            self._context = self._playwright.chromium.launch_persistent_context(
                str(self.profile_dir),
                headless=self.headless,
                viewport=viewport,
                user_agent=user_agent,
                locale=self.locale,
                timezone_id=self.timezone,
                args=LAUNCH_ARGS,
            )
            self.page = self._context.new_page()
            self.page.set_extra_http_headers({
                "Accept-Language": "es-UY,es-ES;q=0.9,es;q=0.8,en;q=0.6",
            })
        except PlaywrightError as e:
            self.close()
            raise RuntimeError(
                f"ブラウザを起動できません: {e}\n"
                "playwright install chromium を実行するか、"
                "同じプロファイルを使用中のChromiumを終了してください。"
            ) from e
        logger.info(
            f"ブラウザ起動: profile={self.profile_dir} "
            f"viewport={viewport['width']}x{viewport['height']} "
            f"headless={self.headless}"
        )

    def close(self) -> None:
        if self._context is not None:
            self._context.close()
            self._context = None
        if self._playwright is not None:
            self._playwright.stop()
            self._playwright = None
        self.page = None

    def _goto(self, url: str) -> None:
        """ページ遷移（遷移エラーは記録のみ、後続の抽出で判定）"""
        from playwright.sync_api import Error as PlaywrightError

        try:
            self.page.goto(url, wait_until="domcontentloaded")
        except PlaywrightError as e:
            logger.warning(f"ページ遷移エラー ({url}): {e}")

    def open_listings(self) -> None:
        """出品一覧ページを開く"""
        self._goto(self.listings_url)
        random_pause(350, 800)
        self.dismiss_overlays()

    def is_logged_in(self) -> bool:
        """出品一覧ページに到達していればログイン済み"""
        return bool(LISTINGS_PATH_RE.search(self.page.url or ""))

    def wait_for_manual_login(
        self,
        max_seconds: int,
        on_wait: Optional[Callable[[int], None]] = None,
    ) -> bool:
        """手動ログイン完了を待つ（ページ操作はしない）

        Args:
            max_seconds: 最大待機秒数
            on_wait: 残り秒数を受け取るコールバック（進捗表示用）

        Returns:
            ログインを検知できたらTrue
        """
        start = time.monotonic()
        while time.monotonic() - start < max_seconds:
            if self.is_logged_in():
                return True
            if on_wait is not None:
                left = max(0, round(max_seconds - (time.monotonic() - start)))
                on_wait(left)
            random_pause(900, 1100)
        return self.is_logged_in()

    def dismiss_overlays(self) -> None:
        """表示中のモーダル・バナーを閉じる"""
        from playwright.sync_api import Error as PlaywrightError

        for selector in OVERLAY_SELECTORS:
            button = self.page.locator(selector).first
            try:
                if button.is_visible():
                    button.click()
                    self.page.wait_for_timeout(120)
            except PlaywrightError:
                continue

    def search_url(self, sku: str) -> str:
        return "{}&search={}".format(self.listings_url, quote(sku))

    def save_html_for_sku(self, sku: str, out_dir: str) -> str:
        """SKUで検索した出品一覧のHTMLを out_dir/page-<sku>.html に保存

        Returns:
            保存したHTML
        """
        from playwright.sync_api import Error as PlaywrightError

        self._goto(self.search_url(sku))
        random_pause(400, 900)
        self.dismiss_overlays()

        try:
            human_scroll(self.page)
            human_mouse_move(self.page)
        except PlaywrightError as e:
            logger.debug(f"操作シミュレーション失敗: {e}")

        html = self.page.content()
        path = snapshot_path(out_dir, sku)
        Path(out_dir).mkdir(parents=True, exist_ok=True)
        path.write_text(html, encoding="utf-8")
        return html
