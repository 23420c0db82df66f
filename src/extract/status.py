"""出品ステータス推定（共通ヒューリスティック）

スナップショット・DOM・ライブページの各抽出器が共有する
テキスト正規化とステータス推定ロジック。
ステータス値は出品管理画面（es-UY）の表示文言をそのまま使う。
"""

import re
from typing import Any, Dict, Iterable, Optional

# 競争ステータス
COMPETITION_WINNING = "Ganando"
COMPETITION_SHARING = "Compartiendo primer lugar"
COMPETITION_LOSING = "Perdiendo"
COMPETITION_NONE = "SIN_ESTADO"

COMPETITION_STATUSES = [
    COMPETITION_WINNING,
    COMPETITION_SHARING,
    COMPETITION_LOSING,
    COMPETITION_NONE,
]

# 稼働ステータス
OPERATIONAL_ACTIVE = "Activa"
OPERATIONAL_PAUSED = "Pausada"
OPERATIONAL_INACTIVE = "Inactiva"
OPERATIONAL_UNKNOWN = "UNKNOWN"

OPERATIONAL_STATUSES = [
    OPERATIONAL_ACTIVE,
    OPERATIONAL_PAUSED,
    OPERATIONAL_INACTIVE,
    OPERATIONAL_UNKNOWN,
]

DEFAULT_BASE_URL = "https://www.mercadolibre.com.uy"

# MLU123456789 / MLA... / MLB... （サイトID3文字 + 6桁以上）
ITEM_ID_PATTERN = r"[A-Z]{3}\d{6,}"

# 生HTML内では & が &amp; にエスケープされている
_HREF_ITEM_ID_RE = re.compile(
    r"(?:\?|&(?:amp;)?)itemId=(" + ITEM_ID_PATTERN + r")\b", re.IGNORECASE
)

# 「Modificar」「Ir a promociones」等の操作リンク
_ACTION_LINK_RE = re.compile(r"^(modificar|ir a promociones)", re.IGNORECASE)

_OPERATIONAL_WORDS = [
    (re.compile(r"\bactiva\b", re.IGNORECASE), OPERATIONAL_ACTIVE),
    (re.compile(r"\bpausada\b", re.IGNORECASE), OPERATIONAL_PAUSED),
    (re.compile(r"\binactiva\b", re.IGNORECASE), OPERATIONAL_INACTIVE),
]


def clean(text: Optional[str]) -> str:
    """連続する空白を1つにまとめてトリム"""
    return re.sub(r"\s+", " ", text or "").strip()


def sku_pattern(sku: str) -> "re.Pattern[str]":
    """行テキスト内の「SKU <番号>」にマッチする正規表現"""
    return re.compile(r"\bSKU\s*" + re.escape(sku) + r"\b", re.IGNORECASE)


def infer_competition(text: Optional[str]) -> str:
    """行テキストから競争ステータスを推定

    "COMPITIENDO" は「Compartiendo primer lugar」と同義として扱う。
    """
    lc = (text or "").lower()
    if "ganando" in lc:
        return COMPETITION_WINNING
    if "perdiendo" in lc:
        return COMPETITION_LOSING
    if "compartiendo primer lugar" in lc or "compitiendo" in lc:
        return COMPETITION_SHARING
    return COMPETITION_NONE


def infer_operational(text: Optional[str],
                      aria_checked: Optional[str] = None) -> str:
    """行テキスト（なければスイッチのaria-checked）から稼働ステータスを推定

    単語単位で照合するため "Inactiva" が "Activa" と誤判定されることはない。
    """
    for pattern, status in _OPERATIONAL_WORDS:
        if pattern.search(text or ""):
            return status
    if aria_checked == "true":
        return OPERATIONAL_ACTIVE
    if aria_checked == "false":
        return OPERATIONAL_PAUSED
    return OPERATIONAL_UNKNOWN


def pick_item_id_from_href(href: Optional[str]) -> str:
    """リンクのクエリ文字列 itemId=MLU... からアイテムIDを抽出"""
    if not href:
        return ""
    match = _HREF_ITEM_ID_RE.search(href)
    return match.group(1).upper() if match else ""


def pick_title(candidates: Iterable[Optional[str]]) -> str:
    """リンクテキスト候補からタイトルを選ぶ（操作リンクを除外し最長のもの）"""
    filtered = [clean(c) for c in candidates]
    filtered = [t for t in filtered if t and not _ACTION_LINK_RE.match(t)]
    if not filtered:
        return ""
    return max(filtered, key=len)


def item_edit_url(item_id: Optional[str],
                  base_url: str = DEFAULT_BASE_URL) -> str:
    """アイテムIDから出品編集ページのURLを生成"""
    if not item_id:
        return ""
    return "{}/syi/core/modify?itemId={}".format(base_url.rstrip("/"), item_id)


def empty_record(sku: str, source: str = "") -> Dict[str, Any]:
    """未抽出状態のレコード"""
    return {
        "sku": sku,
        "item_id": "",
        "competition_status": COMPETITION_NONE,
        "operational_status": OPERATIONAL_UNKNOWN,
        "title": "",
        "listing_url": "",
        "source": source,
    }


def has_listing_data(record: Optional[Dict[str, Any]]) -> bool:
    """タイトルかアイテムIDのどちらかが取れていれば有効"""
    if not record:
        return False
    return bool(record.get("title") or record.get("item_id"))
