"""結果CSV出力

results.csv は毎回上書き（履歴はDBに保存）。
タイトルのみダブルクォートで囲む（他の列はカンマを含まない値）。
"""

from pathlib import Path
from typing import Any, Dict, List, Union

from src.extract.status import DEFAULT_BASE_URL, item_edit_url

CSV_HEADERS = [
    "SKU",
    "ITEM_ID",
    "ESTADO_COMPETENCIA",
    "ESTADO_OPERATIVO",
    "TITULO",
    "URL",
    "TIMESTAMP",
]


def _quote(value: str) -> str:
    return '"{}"'.format((value or "").replace('"', '""'))


def records_to_csv(records: List[Dict[str, Any]],
                   base_url: str = DEFAULT_BASE_URL) -> str:
    """レコードをCSV文字列に変換"""
    lines = [",".join(CSV_HEADERS)]
    for r in records:
        lines.append(",".join([
            r.get("sku") or "",
            r.get("item_id") or "",
            r.get("competition_status") or "",
            r.get("operational_status") or "",
            _quote(r.get("title") or ""),
            item_edit_url(r.get("item_id"), base_url),
            r.get("checked_at") or "",
        ]))
    return "\n".join(lines) + "\n"


def write_results_csv(records: List[Dict[str, Any]],
                      path: Union[str, Path],
                      base_url: str = DEFAULT_BASE_URL) -> Path:
    """CSVをファイルに書き出す（上書き）"""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(records_to_csv(records, base_url), encoding="utf-8")
    return path
