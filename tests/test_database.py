"""データベーステスト

- スキーマ冪等性（2回実行してもエラーなし）
- 実行履歴の作成・完了・出力記録
- チェック結果の保存と前回比較用の取得
- SKU推移
- 統計取得
"""

import os
import tempfile
from datetime import datetime, timedelta

import pytest

from src.db.database import Database


@pytest.fixture
def db():
    """テスト用の一時DBを作成"""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    database = Database(db_path=db_path)
    database.init_tables()

    yield database

    # クリーンアップ
    os.unlink(db_path)
    for ext in ["-journal", "-wal", "-shm"]:
        p = db_path + ext
        if os.path.exists(p):
            os.unlink(p)


def _check(sku, competition="Ganando", operational="Activa", item_id="MLU123456789"):
    return {
        "sku": sku,
        "item_id": item_id,
        "competition_status": competition,
        "operational_status": operational,
        "title": "Producto {}".format(sku),
        "listing_url": "",
        "source": "snapshot",
        "checked_at": "2026-10-19T13:30:00+00:00",
    }


class TestSchemaIdempotency:
    """スキーマ冪等性テスト"""

    def test_init_tables_twice(self, db):
        """テーブル作成を2回実行してもエラーにならない"""
        tables1 = db.init_tables()
        tables2 = db.init_tables()
        assert tables1 == tables2
        assert tables1 == ["monitor_runs", "listing_checks"]


class TestRuns:
    """実行履歴"""

    def test_create_and_complete(self, db):
        run_id = db.create_run("browser", skus_total=3)
        run = db.get_run(run_id)
        assert run["status"] == "running"
        assert run["skus_total"] == 3
        assert run["missing"] == []

        db.complete_run(run_id, records_count=2, missing=["9999"],
                        errors=["SKU 8888: タイムアウト"])
        run = db.get_run(run_id)
        assert run["status"] == "completed"
        assert run["records_count"] == 2
        assert run["missing"] == ["9999"]
        assert run["errors"] == ["SKU 8888: タイムアウト"]
        assert run["completed_at"] is not None

    def test_timestamps_utc(self, db):
        """開始・完了時刻はchecked_atと同じUTCのISO形式"""
        run_id = db.create_run("snapshot")
        db.complete_run(run_id, records_count=0)
        run = db.get_run(run_id)
        for key in ("started_at", "completed_at"):
            parsed = datetime.fromisoformat(run[key])
            assert parsed.utcoffset() == timedelta(0)

    def test_failed_run(self, db):
        run_id = db.create_run("snapshot")
        db.complete_run(run_id, records_count=0, errors=["boom"], success=False)
        assert db.get_run(run_id)["status"] == "failed"
        assert db.get_latest_run() is None
        assert db.get_latest_run(status=None)["id"] == run_id

    def test_update_outputs(self, db):
        run_id = db.create_run("browser")
        db.update_run_outputs(run_id, csv_path="results.csv",
                              report_path="out/report.html", email_sent=True)
        run = db.get_run(run_id)
        assert run["csv_path"] == "results.csv"
        assert run["report_path"] == "out/report.html"
        assert run["email_sent"] is True

    def test_get_runs_newest_first(self, db):
        ids = [db.create_run("browser") for _ in range(3)]
        runs = db.get_runs(limit=2)
        assert [r["id"] for r in runs] == [ids[2], ids[1]]

    def test_get_run_not_found(self, db):
        assert db.get_run(999) is None


class TestChecks:
    """チェック結果"""

    def test_add_and_get(self, db):
        run_id = db.create_run("browser")
        db.add_check(run_id, _check("1234"))
        db.add_check(run_id, _check("5678", item_id=""))

        checks = db.get_checks(run_id)
        assert [c["sku"] for c in checks] == ["1234", "5678"]
        assert checks[0]["competition_status"] == "Ganando"
        assert checks[1]["item_id"] == ""

    def test_latest_checks_before_run(self, db):
        """前回比較: 指定runより前の最新結果"""
        run1 = db.create_run("browser")
        db.add_check(run1, _check("1234", "Perdiendo"))
        db.add_check(run1, _check("5678", "Ganando"))
        run2 = db.create_run("browser")
        db.add_check(run2, _check("1234", "Ganando"))
        run3 = db.create_run("browser")
        db.add_check(run3, _check("1234", "Perdiendo"))

        previous = db.get_latest_checks(before_run_id=run3)
        assert previous["1234"]["competition_status"] == "Ganando"
        assert previous["5678"]["run_id"] == run1

        latest = db.get_latest_checks()
        assert latest["1234"]["run_id"] == run3

    def test_sku_history(self, db):
        run1 = db.create_run("snapshot")
        db.add_check(run1, _check("1234", operational="Pausada"))
        run2 = db.create_run("browser")
        db.add_check(run2, _check("1234", operational="Activa"))
        db.add_check(run2, _check("5678"))

        history = db.get_sku_history("1234")
        assert [h["run_id"] for h in history] == [run2, run1]
        assert history[0]["mode"] == "browser"
        assert history[1]["operational_status"] == "Pausada"


class TestStats:
    """統計取得"""

    def test_empty(self, db):
        stats = db.get_stats()
        assert stats["monitor_runs"] == 0
        assert stats["listing_checks"] == 0
        assert "latest_run_id" not in stats

    def test_latest_breakdown(self, db):
        run1 = db.create_run("browser")
        db.add_check(run1, _check("1"))
        db.complete_run(run1, records_count=1)
        run2 = db.create_run("browser")
        db.add_check(run2, _check("1", "Perdiendo", "Pausada"))
        db.add_check(run2, _check("2", "Perdiendo", "Activa"))
        db.add_check(run2, _check("3", "Ganando", "Activa"))
        db.complete_run(run2, records_count=3)

        stats = db.get_stats()
        assert stats["monitor_runs"] == 2
        assert stats["listing_checks"] == 4
        assert stats["distinct_skus"] == 3
        assert stats["latest_run_id"] == run2
        assert stats["latest_by_competition"] == {"Perdiendo": 2, "Ganando": 1}
        assert stats["latest_by_operational"] == {"Activa": 2, "Pausada": 1}
