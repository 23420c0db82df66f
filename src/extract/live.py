"""ライブページ抽出器（Playwrightロケーター）

表示中の出品一覧ページからロケーターで直接行を探す最終フォールバック。
各ロケーターは短いタイムアウトで待ち、見つからなければ「なし」として扱う。
"""

import logging
import re
from typing import Any, Dict, List, Optional

from playwright.sync_api import Error as PlaywrightError

from src.extract.status import (
    clean,
    empty_record,
    has_listing_data,
    infer_competition,
    infer_operational,
    pick_item_id_from_href,
    pick_title,
    sku_pattern,
)

logger = logging.getLogger(__name__)

# 行候補セレクタ（役割付き要素を優先、最後に汎用div）
ROW_SELECTORS = [
    '[role="listitem"]',
    '[role="row"]',
    "article",
    "div.sc-list-item-row",
]

ROW_TIMEOUT_MS = 4000
ELEMENT_TIMEOUT_MS = 1500

_MODIFY_NAME_RE = re.compile(r"modificar", re.IGNORECASE)


def _visible(locator, timeout_ms: int) -> bool:
    """要素が表示されるまで待つ（タイムアウト・エラー時はFalse）"""
    try:
        locator.wait_for(state="visible", timeout=timeout_ms)
        return True
    except PlaywrightError:
        return False


def find_row(page, sku: str, timeout_ms: int = ROW_TIMEOUT_MS):
    """SKUを含む行のロケーターを返す（見つからなければNone）"""
    pattern = sku_pattern(sku)

    for selector in ROW_SELECTORS:
        row = page.locator(selector).filter(has_text=pattern).first
        if _visible(row, timeout_ms):
            return row
        # 最初のセレクタで待ち切ったら以降は即時判定
        timeout_ms = ELEMENT_TIMEOUT_MS

    # 汎用div: SKUとリンクを両方含む最も内側の要素
    row = (
        page.locator("div")
        .filter(has_text=pattern)
        .filter(has=page.locator("a"))
        .last
    )
    if _visible(row, timeout_ms):
        return row
    return None


def _read_title(row) -> str:
    try:
        heading = row.get_by_role("heading").first
        if _visible(heading, ELEMENT_TIMEOUT_MS):
            title = clean(heading.inner_text())
            if title:
                return title
        return pick_title(row.get_by_role("link").all_inner_texts())
    except PlaywrightError as e:
        logger.debug(f"タイトル取得失敗: {e}")
        return ""


def _read_hrefs(row) -> List[str]:
    return row.get_by_role("link").evaluate_all(
        "els => els.map(e => e.getAttribute('href') || '')"
    )


def _read_item_id(row) -> str:
    try:
        modify = row.get_by_role("link", name=_MODIFY_NAME_RE).first
        if _visible(modify, ELEMENT_TIMEOUT_MS):
            item_id = pick_item_id_from_href(modify.get_attribute("href"))
            if item_id:
                return item_id
        for href in _read_hrefs(row):
            item_id = pick_item_id_from_href(href)
            if item_id:
                return item_id
    except PlaywrightError as e:
        logger.debug(f"アイテムID取得失敗: {e}")
    return ""


def _read_aria_checked(row) -> Optional[str]:
    try:
        switch = row.get_by_role("switch").first
        if _visible(switch, ELEMENT_TIMEOUT_MS):
            return switch.get_attribute("aria-checked")
    except PlaywrightError as e:
        logger.debug(f"スイッチ状態取得失敗: {e}")
    return None


def extract_from_page(page, sku: str) -> Optional[Dict[str, Any]]:
    """表示中のページから指定SKUのレコードを抽出

    Args:
        page: playwright.sync_api.Page
        sku: 対象SKU

    Returns:
        レコードdict。行が見つからない、またはタイトルもアイテムIDも
        取れない場合はNone
    """
    row = find_row(page, sku)
    if row is None:
        return None

    try:
        text = clean(row.inner_text())
    except PlaywrightError as e:
        logger.warning(f"SKU {sku}: 行テキスト取得失敗: {e}")
        return None
    if not text:
        return None

    record = empty_record(sku, source="live")
    record["title"] = _read_title(row)
    record["item_id"] = _read_item_id(row)
    record["operational_status"] = infer_operational(
        text, _read_aria_checked(row)
    )
    record["competition_status"] = infer_competition(text)

    return record if has_listing_data(record) else None
