"""HTMLサマリーレポート

競争ステータス別にセクションを分け、各セクション内は
稼働ステータス順 → タイトル順に並べる。
メール本文としてもブラウザ表示としても使えるよう単一HTMLで出力。
"""

import os
import unicodedata
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from zoneinfo import ZoneInfo

from jinja2 import Environment, FileSystemLoader, select_autoescape

from src.extract.status import (
    COMPETITION_STATUSES,
    DEFAULT_BASE_URL,
    OPERATIONAL_STATUSES,
    item_edit_url,
)

DEFAULT_TIMEZONE = "America/Montevideo"

_TEMPLATE_DIR = os.path.join(os.path.dirname(__file__), "templates")

_DAYS_ES = ["lunes", "martes", "miércoles", "jueves", "viernes", "sábado", "domingo"]
_MONTHS_ES = [
    "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
]

_env = Environment(
    loader=FileSystemLoader(_TEMPLATE_DIR),
    autoescape=select_autoescape(["html"]),
)


def _to_datetime(value: Union[datetime, str]) -> datetime:
    """ISO文字列/naive datetimeをUTCのaware datetimeに変換"""
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def format_local(value: Union[datetime, str], style: str = "short",
                 tz: str = DEFAULT_TIMEZONE) -> str:
    """現地時刻（es-UY表記）に整形

    short: 19/10/26, 10:30
    full:  domingo, 19 de octubre de 2026, 10:30:45
    """
    local = _to_datetime(value).astimezone(ZoneInfo(tz))
    if style == "full":
        return "{}, {} de {} de {}, {}".format(
            _DAYS_ES[local.weekday()],
            local.day,
            _MONTHS_ES[local.month - 1],
            local.year,
            local.strftime("%H:%M:%S"),
        )
    return local.strftime("%d/%m/%y, %H:%M")


def _title_key(title: Optional[str]) -> str:
    """アクセント・大文字小文字を無視した並び替えキー"""
    normalized = unicodedata.normalize("NFKD", title or "")
    stripped = "".join(c for c in normalized if not unicodedata.combining(c))
    return stripped.casefold()


def operational_rank(status: Optional[str]) -> int:
    """Activa < Pausada < Inactiva < UNKNOWN"""
    try:
        return OPERATIONAL_STATUSES.index(status)
    except ValueError:
        return len(OPERATIONAL_STATUSES) - 1


def sort_group(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """グループ内の並び: 稼働ステータス順 → タイトル順"""
    return sorted(
        records,
        key=lambda r: (operational_rank(r.get("operational_status")),
                       _title_key(r.get("title"))),
    )


def summarize(records: List[Dict[str, Any]]) -> Dict[str, Any]:
    """集計

    Returns:
        {
            "total": int,
            "groups": {競争ステータス: [record]},
            "competition_counts": {競争ステータス: int},
            "operational_counts": {稼働ステータス: int},
        }
    """
    groups = {status: [] for status in COMPETITION_STATUSES}
    operational_counts = {status: 0 for status in OPERATIONAL_STATUSES}

    for r in records:
        competition = r.get("competition_status")
        if competition not in groups:
            competition = COMPETITION_STATUSES[-1]
        groups[competition].append(r)

        operational = r.get("operational_status")
        if operational not in operational_counts:
            operational = OPERATIONAL_STATUSES[-1]
        operational_counts[operational] += 1

    return {
        "total": len(records),
        "groups": groups,
        "competition_counts": {s: len(groups[s]) for s in COMPETITION_STATUSES},
        "operational_counts": operational_counts,
    }


def detect_changes(previous: Dict[str, Dict[str, Any]],
                   current: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """前回実行からのステータス変化を検出

    Args:
        previous: {sku: 前回レコード}
        current: 今回のレコード

    Returns:
        変化のあったSKUのみ
        [{sku, title, competition_before, competition_after,
          operational_before, operational_after}]
    """
    changes = []
    for r in current:
        before = previous.get(r.get("sku"))
        if not before:
            continue
        competition_changed = (
            before.get("competition_status") != r.get("competition_status")
        )
        operational_changed = (
            before.get("operational_status") != r.get("operational_status")
        )
        if not (competition_changed or operational_changed):
            continue
        changes.append({
            "sku": r.get("sku"),
            "title": r.get("title") or before.get("title") or "",
            "competition_before": before.get("competition_status"),
            "competition_after": r.get("competition_status"),
            "operational_before": before.get("operational_status"),
            "operational_after": r.get("operational_status"),
        })
    return changes


def build_html_report(
    records: List[Dict[str, Any]],
    now: Optional[datetime] = None,
    changes: Optional[List[Dict[str, Any]]] = None,
    base_url: str = DEFAULT_BASE_URL,
    tz: str = DEFAULT_TIMEZONE,
) -> str:
    """HTMLレポートを生成"""
    now = now or datetime.now(timezone.utc)
    summary = summarize(records)

    sections = []
    for status in COMPETITION_STATUSES:
        group = summary["groups"][status]
        if not group:
            continue
        rows = []
        for r in sort_group(group):
            rows.append({
                "sku": r.get("sku", ""),
                "item_id": r.get("item_id") or "",
                "operational_status": r.get("operational_status", ""),
                "title": r.get("title") or "",
                "url": item_edit_url(r.get("item_id"), base_url),
                "checked_at": (
                    format_local(r["checked_at"], "short", tz)
                    if r.get("checked_at") else ""
                ),
            })
        sections.append({"status": status, "count": len(group), "rows": rows})

    template = _env.get_template("report.html")
    return template.render(
        generated_at=format_local(now, "full", tz),
        timezone=tz,
        total=summary["total"],
        competition_counts=summary["competition_counts"],
        operational_counts=summary["operational_counts"],
        sections=sections,
        changes=changes or [],
    )


def write_html_report(html: str, path: Union[str, Path]) -> Path:
    """HTMLレポートをファイルに保存"""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(html, encoding="utf-8")
    return path
