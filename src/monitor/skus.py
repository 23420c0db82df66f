"""SKUリスト読み込み"""

import re
from pathlib import Path
from typing import List, Union

_HEADER_RE = re.compile(r"^[A-Za-z]")
_SPLIT_RE = re.compile(r"[,\t]")
_NON_DIGIT_RE = re.compile(r"[^0-9]")


def read_skus_csv(path: Union[str, Path] = "skus.csv") -> List[str]:
    """skus.csv を読み込み、SKU（数字のみ）のリストを返す

    - 1列目のみ使用（カンマ/タブ区切り）
    - 1行目が英字で始まる場合はヘッダーとしてスキップ
    - 数字以外は除去し、空になった行は無視
    - 重複は最初の出現のみ残す

    ファイルがなければ空リスト。
    """
    path = Path(path)
    if not path.exists():
        return []

    raw = path.read_text(encoding="utf-8-sig")
    lines = [line.strip() for line in raw.splitlines()]
    lines = [line for line in lines if line]
    if lines and _HEADER_RE.match(lines[0]):
        lines = lines[1:]

    skus = []  # type: List[str]
    for line in lines:
        first = _SPLIT_RE.split(line)[0].strip()
        sku = _NON_DIGIT_RE.sub("", first)
        if sku and sku not in skus:
            skus.append(sku)
    return skus
