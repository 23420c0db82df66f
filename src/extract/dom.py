"""DOM抽出器（BeautifulSoupベース）

正規表現で行が切り出せない構造変更に備えた2段目の抽出器。
SKU表記を含むテキストノードから祖先をたどって行コンテナを特定し、
見出し・リンク・スイッチ要素からレコードを組み立てる。
"""

import re
from typing import Any, Dict, List, Optional, Tuple

from bs4 import BeautifulSoup

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

_SKU_WORD_RE = re.compile(r"SKU", re.IGNORECASE)
_ANY_SKU_RE = re.compile(r"\bSKU\s*(\d+)\b", re.IGNORECASE)
_MODIFY_RE = re.compile(r"modificar", re.IGNORECASE)
_SWITCH_CLASS_RE = re.compile(r"switch")

_HEADINGS = ["h1", "h2", "h3", "h4", "h5", "h6"]
_SEMANTIC_ROLES = ("listitem", "row")
_STOP_TAGS = ("body", "html", "[document]")


def _text(element):
    # type: (Any) -> str
    return clean(element.get_text(" ", strip=True))


def _only_this_sku(text, sku):
    # type: (str, str) -> bool
    """テキスト内のSKU表記が指定SKUだけか（他の行を含んでいないか）"""
    found = set(_ANY_SKU_RE.findall(text))
    return found == {sku}


def _is_semantic_row(element):
    # type: (Any) -> bool
    return element.name == "article" or element.get("role") in _SEMANTIC_ROLES


def _has_title_candidate(element):
    # type: (Any) -> bool
    if element.find(_HEADINGS) or element.find(attrs={"role": "heading"}):
        return True
    links = [_text(a) for a in element.find_all("a")]
    return bool(pick_title(links))


def find_row_container(soup, sku):
    # type: (BeautifulSoup, str) -> Optional[Any]
    """指定SKUの行コンテナ要素を探す

    1. "SKU" を含むテキストノードから、SKU番号まで含む最小の祖先を探す
    2. そこから上へたどり、役割付きの行要素（listitem/row/article）があれば採用
    3. 他のSKUを含む祖先（一覧全体）に達したら、その直前の要素を行とする
    4. 1行だけのページでは、タイトル候補（見出し・リンク）を含む最初の祖先
    """
    needle = sku_pattern(sku)

    for node in soup.find_all(string=_SKU_WORD_RE):
        innermost = None
        element = node.parent
        while element is not None and element.name not in _STOP_TAGS:
            text = _text(element)
            if needle.search(text):
                if _only_this_sku(text, sku):
                    innermost = element
                break
            if _ANY_SKU_RE.search(text):
                # 別SKUの表記
                break
            element = element.parent

        if innermost is None:
            continue

        widest = innermost
        candidate = innermost
        titled = None
        while candidate is not None and candidate.name not in _STOP_TAGS:
            if not _only_this_sku(_text(candidate), sku):
                # 一覧コンテナに到達: 直下の最大要素が行そのもの
                return widest
            if _is_semantic_row(candidate):
                return candidate
            if titled is None and _has_title_candidate(candidate):
                titled = candidate
            widest = candidate
            candidate = candidate.parent

        # 1行だけのページ: body直下まで上るとヘッダ等を含むため見出し/リンク基準
        return titled or widest

    return None


def _extract_title(row):
    # type: (Any) -> Tuple[str, str]
    """見出し優先、なければ最長のリンクテキスト。(title, href) を返す"""
    heading = row.find(_HEADINGS) or row.find(attrs={"role": "heading"})
    if heading is not None:
        title = _text(heading)
        if title:
            link = heading.find("a", href=True)
            return title, (link["href"] if link else "")

    links = row.find_all("a")
    title = pick_title(_text(a) for a in links)
    if not title:
        return "", ""
    for a in links:
        if _text(a) == title:
            return title, a.get("href", "")
    return title, ""


def _extract_item_id(row):
    # type: (Any) -> str
    """「Modificar」リンク優先、なければ行内の全リンクから"""
    links = row.find_all("a", href=True)
    for a in links:
        if _MODIFY_RE.search(_text(a)) or _MODIFY_RE.search(a.get("aria-label", "")):
            item_id = pick_item_id_from_href(a["href"])
            if item_id:
                return item_id
    for a in links:
        item_id = pick_item_id_from_href(a["href"])
        if item_id:
            return item_id
    return ""


def _extract_aria_checked(row):
    # type: (Any) -> Optional[str]
    switch = row.find(attrs={"role": "switch"})
    if switch is not None and switch.get("aria-checked") in ("true", "false"):
        return switch["aria-checked"]

    # role属性のないスイッチ実装（status-switch内のcheckbox）
    for box in row.find_all("input", attrs={"type": "checkbox"}):
        if box.find_parent(class_=_SWITCH_CLASS_RE) is not None:
            return "true" if box.has_attr("checked") else "false"
    return None


def extract_from_html(html, sku):
    # type: (str, str) -> Optional[Dict[str, Any]]
    """HTMLから指定SKUのレコードを抽出（見つからなければNone）"""
    soup = BeautifulSoup(html, "html.parser")
    row = find_row_container(soup, sku)
    if row is None:
        return None

    text = _text(row)
    if not text:
        return None

    record = empty_record(sku, source="dom")
    record["title"], record["listing_url"] = _extract_title(row)
    record["item_id"] = _extract_item_id(row)
    record["operational_status"] = infer_operational(
        text, _extract_aria_checked(row)
    )
    record["competition_status"] = infer_competition(text)

    return record if has_listing_data(record) else None


def list_skus_in_html(html):
    # type: (str) -> List[str]
    """ページ内に表示されているSKU番号の一覧（出現順・重複なし）"""
    text = BeautifulSoup(html, "html.parser").get_text(" ", strip=True)
    seen = []
    for sku in _ANY_SKU_RE.findall(text):
        if sku not in seen:
            seen.append(sku)
    return seen
