"""HTMLスナップショット抽出器（正規表現ベース）

保存済みの out/page-<sku>.html から、SKUに対応する行だけを切り出して
アイテムID・タイトル・稼働/競争ステータスを抽出する。
出品管理画面のHTML構造は予告なく変わるため、各項目とも
複数パターンを順に試すフォールバック構成。
"""

import html as html_lib
import re
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Set

from src.extract.status import (
    COMPETITION_LOSING,
    COMPETITION_SHARING,
    COMPETITION_WINNING,
    ITEM_ID_PATTERN,
    OPERATIONAL_ACTIVE,
    OPERATIONAL_INACTIVE,
    OPERATIONAL_PAUSED,
    clean,
    empty_record,
    infer_operational,
    pick_item_id_from_href,
    sku_pattern,
)

# カタログ行: 3重の閉じdivまでを1行とみなす（次の行開始で打ち切り）
_CATALOG_ROW_RE = re.compile(
    r'<div class="sc-list-item-row sc-list-item-row--catalog'
    r'[\s\S]*?</div>\s*</div>\s*</div>'
)

# 行の開始タグ（sc-list-item-row-description 等の子要素クラスは除外）
_ROW_OPEN_RE = re.compile(
    r'<div\b[^>]*class="(?:[^"]*\s)?sc-list-item-row(?=[\s"])'
)

# ページ埋め込みJSON内のアイテムID
_JSON_ITEM_ID_RES = [
    re.compile(r'"itemId"\s*:\s*"(' + ITEM_ID_PATTERN + r')"', re.IGNORECASE),
    re.compile(r'"item_id"\s*:\s*"(' + ITEM_ID_PATTERN + r')"', re.IGNORECASE),
]

_TITLE_ANCHOR_RE = re.compile(
    r'(<a\b[^>]*class="[^"]*\bsc-list-item-row-description__title\b[^"]*"[^>]*>)'
    r'(.*?)</a>',
    re.IGNORECASE | re.DOTALL,
)

_HREF_RE = re.compile(r'\bhref="([^"]+)"', re.IGNORECASE)

_TAG_RE = re.compile(r"<[^>]+>")

# スイッチラベル: Activa → Inactiva → Pausada の順に判定
_SWITCH_LABELS = [
    (OPERATIONAL_ACTIVE, "Activa"),
    (OPERATIONAL_INACTIVE, "Inactiva"),
    (OPERATIONAL_PAUSED, "Pausada"),
]

_SWITCH_TAG_RE = re.compile(r'<[^>]*\brole="switch"[^>]*>', re.IGNORECASE)
_ARIA_CHECKED_RE = re.compile(r'\baria-checked="(true|false)"', re.IGNORECASE)

# バッジ文言（要素テキスト全体が一致するもののみ）
_COMPETITION_BADGES = [
    (COMPETITION_WINNING, re.compile(r">\s*Ganando\s*</", re.IGNORECASE)),
    (COMPETITION_LOSING, re.compile(r">\s*Perdiendo\s*</", re.IGNORECASE)),
    (
        COMPETITION_SHARING,
        re.compile(
            r">\s*(?:Compartiendo\s+primer\s+lugar|COMPITIENDO)\s*</",
            re.IGNORECASE,
        ),
    ),
]

_ROW_SKU_RE = re.compile(r"\bSKU\s*(\d+)\b", re.IGNORECASE)


def _text(fragment: str) -> str:
    """HTML断片からタグを除去し、エンティティを戻して正規化"""
    return clean(html_lib.unescape(_TAG_RE.sub(" ", fragment)))


def _shown_skus(fragment: str) -> Set[str]:
    """断片内に表記されているSKU番号の集合"""
    return set(_ROW_SKU_RE.findall(_text(fragment)))


def _only_this_sku(fragment: str, sku: str) -> bool:
    """断片が指定SKUを含み、他のSKU表記を含まないか"""
    return bool(sku_pattern(sku).search(fragment)) and _shown_skus(fragment) <= {sku}


def _catalog_rows(html: str) -> Iterator[str]:
    """カタログ行を順に返す（次の行開始タグで打ち切る）"""
    starts = [m.start() for m in _ROW_OPEN_RE.finditer(html)]
    for i, start in enumerate(starts):
        match = _CATALOG_ROW_RE.match(html, start)
        if not match:
            continue
        end = match.end()
        if i + 1 < len(starts):
            end = min(end, starts[i + 1])
        yield html[start:end]


def slice_row_for_sku(html: str, sku: str) -> Optional[str]:
    """HTMLから指定SKUを含む行を切り出す

    1. カタログ行パターンに一致する行のうち、SKU表記が当該SKUだけの行
    2. SKU出現位置の直前の行開始タグから次の行開始タグまで

    SKUがページに存在しない、または切り出した範囲に他のSKUが
    混ざる場合はNone。
    """
    for row in _catalog_rows(html):
        if _only_this_sku(row, sku):
            return row

    hit = sku_pattern(sku).search(html)
    if not hit:
        return None

    starts = [m.start() for m in _ROW_OPEN_RE.finditer(html)]
    before = [s for s in starts if s <= hit.start()]
    if not before:
        return None
    after = [s for s in starts if s > hit.start()]
    end = after[0] if after else len(html)
    row = html[before[-1]:end]
    return row if _only_this_sku(row, sku) else None


def _find_item_id(row: str, html: str, single_listing: bool) -> str:
    item_id = pick_item_id_from_href(row)
    # 埋め込みJSONはページ単位なので、他SKUが表示されていれば使わない
    if item_id or not single_listing:
        return item_id
    for pattern in _JSON_ITEM_ID_RES:
        match = pattern.search(html)
        if match:
            return match.group(1).upper()
    return ""


def _find_operational(row: str) -> str:
    for status, label in _SWITCH_LABELS:
        pattern = (
            r"sc-list-item-status-switch__label[^>]*>\s*"
            + label + r"\s*<"
        )
        if re.search(pattern, row, re.IGNORECASE):
            return status

    for tag in _SWITCH_TAG_RE.findall(row):
        checked = _ARIA_CHECKED_RE.search(tag)
        if checked:
            return infer_operational("", checked.group(1).lower())

    return infer_operational("")


def _find_competition(row: str) -> Optional[str]:
    for status, pattern in _COMPETITION_BADGES:
        if pattern.search(row):
            return status
    return None


def parse_html_for_sku(html: str, sku: str) -> Dict[str, Any]:
    """HTML全体から指定SKUのレコードを抽出

    行が切り出せない場合、ページにSKU表記がないか当該SKUだけなら
    ページ全体を対象にする（検索結果が1件の想定）。
    埋め込みJSONのアイテムIDも同じ条件でのみ使う。
    常にレコードを返すので、有効性は has_listing_data で判定すること。
    """
    row = slice_row_for_sku(html, sku)
    scope = row if row is not None else html

    record = empty_record(sku, source="snapshot")
    single_listing = _shown_skus(html) <= {sku}

    # 他SKUの行が表示されている場合はページ全体を対象にしない（DOM抽出に任せる）
    if row is None and not single_listing:
        return record

    record["item_id"] = _find_item_id(scope, html, single_listing)

    anchor = _TITLE_ANCHOR_RE.search(scope)
    if anchor:
        record["title"] = _text(anchor.group(2))
        href = _HREF_RE.search(anchor.group(1))
        if href:
            record["listing_url"] = html_lib.unescape(href.group(1))

    record["operational_status"] = _find_operational(scope)

    competition = _find_competition(scope)
    if competition:
        record["competition_status"] = competition

    return record


def snapshot_path(out_dir: str, sku: str) -> Path:
    """SKUのスナップショットファイルパス"""
    return Path(out_dir) / "page-{}.html".format(sku)


def read_snapshot(sku: str, out_dir: str) -> Optional[str]:
    """スナップショットHTMLを読み込み（なければNone）"""
    path = snapshot_path(out_dir, sku)
    if not path.exists():
        return None
    return path.read_text(encoding="utf-8", errors="replace")


def parse_from_file(sku: str, out_dir: str = "out") -> Optional[Dict[str, Any]]:
    """out/page-<sku>.html を読み込んでレコードを返す"""
    html = read_snapshot(sku, out_dir)
    if html is None:
        return None
    return parse_html_for_sku(html, sku)
