"""抽出器カスケードテスト

スナップショット → DOM → ライブ の順に試すことを確認。
"""

from unittest.mock import MagicMock, patch

from src.extract.pipeline import extract_record

SNAPSHOT_ROW = """
<div class="sc-list-item-row">
  <a class="sc-list-item-row-description__title" href="/p/1">Taza cerámica</a>
  <span>SKU 1111</span>
  <a href="/syi/core/modify?itemId=MLU111111111">Modificar</a>
</div>
"""

# sc-* クラスのない構造（正規表現では行が切り出せない）
LISTITEM_ROWS = """
<ul>
  <li role="listitem"><h3>Gorro de lana</h3><span>SKU 1234</span><span>Ganando</span></li>
  <li role="listitem"><h3>Guantes</h3><span>SKU 5678</span><span>Perdiendo</span></li>
</ul>
"""


class TestExtractRecord:
    """カスケード"""

    def test_snapshot_first(self):
        record = extract_record("1111", SNAPSHOT_ROW)
        assert record["source"] == "snapshot"
        assert record["item_id"] == "MLU111111111"

    def test_dom_fallback(self):
        record = extract_record("5678", LISTITEM_ROWS)
        assert record["source"] == "dom"
        assert record["title"] == "Guantes"
        assert record["competition_status"] == "Perdiendo"

    @patch("src.extract.live.extract_from_page")
    def test_live_fallback(self, mock_live):
        mock_live.return_value = {
            "sku": "9999", "item_id": "MLU999999999", "title": "Poncho",
            "competition_status": "Ganando", "operational_status": "Activa",
            "listing_url": "", "source": "live",
        }
        page = MagicMock()

        record = extract_record("9999", LISTITEM_ROWS, page=page)

        assert record["source"] == "live"
        mock_live.assert_called_once_with(page, "9999")

    @patch("src.extract.live.extract_from_page")
    def test_live_skipped_when_snapshot_found(self, mock_live):
        record = extract_record("1111", SNAPSHOT_ROW, page=MagicMock())
        assert record["source"] == "snapshot"
        mock_live.assert_not_called()

    def test_nothing_found(self):
        assert extract_record("9999", LISTITEM_ROWS) is None

    @patch("src.extract.live.extract_from_page", return_value=None)
    def test_no_html_live_fails(self, mock_live):
        assert extract_record("1234", None, page=MagicMock()) is None
        mock_live.assert_called_once()
