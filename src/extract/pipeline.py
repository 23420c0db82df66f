"""抽出器カスケード

スナップショット正規表現 → DOM → ライブページ の順に試し、
最初に有効なレコード（タイトルかアイテムIDあり）を返す。
"""

import logging
from typing import Any, Dict, Optional

from src.extract.dom import extract_from_html, list_skus_in_html
from src.extract.snapshot import parse_html_for_sku
from src.extract.status import has_listing_data

logger = logging.getLogger(__name__)


def extract_record(
    sku: str,
    html: Optional[str],
    page: Any = None,
) -> Optional[Dict[str, Any]]:
    """SKUのレコードを抽出

    Args:
        sku: 対象SKU
        html: スナップショットHTML（Noneならスナップショット系をスキップ）
        page: 表示中のPlaywright Page（Noneならライブ抽出をスキップ）

    Returns:
        レコードdict（"source" に採用した抽出器名）。全抽出器が失敗したらNone
    """
    if html:
        record = parse_html_for_sku(html, sku)
        if has_listing_data(record):
            return record
        logger.debug(f"SKU {sku}: 正規表現抽出で行なし、DOM抽出を試行")

        record = extract_from_html(html, sku)
        if has_listing_data(record):
            return record

    if page is not None:
        # playwright は重い依存なので遅延インポート
        from src.extract.live import extract_from_page

        logger.debug(f"SKU {sku}: ライブページ抽出を試行")
        record = extract_from_page(page, sku)
        if has_listing_data(record):
            return record

    if html:
        shown = list_skus_in_html(html)
        if shown:
            logger.info(f"SKU {sku}: ページ内のSKU表記 {', '.join(shown)}")

    return None
