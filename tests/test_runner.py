"""モニター実行エンジンテスト

ブラウザセッション・メール送信はモックで代替。
一時ディレクトリに out/ ・results.csv・DB を作成。
"""

import os
import tempfile
from unittest.mock import MagicMock, patch

import pytest

from src.db.database import Database
from src.extract.snapshot import snapshot_path
from src.monitor.config import load_config
from src.monitor.runner import MODE_BROWSER, MODE_SNAPSHOT, MonitorRunner


def _row_html(sku, title, item_id, competition="Ganando", operational="Activa"):
    return """
<div class="sc-list-item-row">
  <a class="sc-list-item-row-description__title" href="/p/{sku}">{title}</a>
  <span>SKU {sku}</span>
  <span class="sc-list-item-status-switch__label">{operational}</span>
  <span>{competition}</span>
  <a href="/syi/core/modify?itemId={item_id}">Modificar</a>
</div>
""".format(sku=sku, title=title, item_id=item_id,
           competition=competition, operational=operational)


@pytest.fixture
def workdir():
    with tempfile.TemporaryDirectory() as d:
        yield d


@pytest.fixture
def config(workdir):
    """一時ディレクトリ基準の設定"""
    config = load_config(os.path.join(workdir, "missing.yaml"))
    config["paths"]["out_dir"] = os.path.join(workdir, "out")
    config["paths"]["results_csv"] = os.path.join(workdir, "results.csv")
    config["paths"]["db_path"] = os.path.join(workdir, "monitor.db")
    return config


@pytest.fixture
def db(config):
    database = Database(db_path=config["paths"]["db_path"])
    database.init_tables()
    return database


def _write_snapshot(config, sku, html):
    out_dir = config["paths"]["out_dir"]
    os.makedirs(out_dir, exist_ok=True)
    snapshot_path(out_dir, sku).write_text(html, encoding="utf-8")


class TestParseSnapshots:
    """スナップショット解析モード"""

    def test_records_missing_and_errors(self, config, db):
        _write_snapshot(config, "1111", _row_html("1111", "Taza", "MLU111111111"))
        _write_snapshot(config, "3333", "<html><body><p>SKU 3333</p></body></html>")

        runner = MonitorRunner(config, database=db)
        seen = []
        results = runner.parse_snapshots(["1111", "2222", "3333"], on_record=seen.append)

        assert results["mode"] == MODE_SNAPSHOT
        assert [r["sku"] for r in results["records"]] == ["1111"]
        assert results["records"][0]["checked_at"]
        assert results["missing"] == ["3333"]
        assert len(results["errors"]) == 1
        assert "SKU 2222" in results["errors"][0]
        assert seen == results["records"]

        run = db.get_run(results["run_id"])
        assert run["status"] == "completed"
        assert run["records_count"] == 1
        assert run["missing"] == ["3333"]
        assert [c["sku"] for c in db.get_checks(results["run_id"])] == ["1111"]

    def test_without_database(self, config):
        _write_snapshot(config, "1111", _row_html("1111", "Taza", "MLU111111111"))
        results = MonitorRunner(config).parse_snapshots(["1111"])
        assert results["run_id"] is None
        assert len(results["records"]) == 1

    def test_database_failure_marks_run_failed(self, config, db):
        _write_snapshot(config, "1111", _row_html("1111", "Taza", "MLU111111111"))
        runner = MonitorRunner(config, database=db)

        with patch.object(db, "add_check", side_effect=RuntimeError("disk full")):
            with pytest.raises(RuntimeError):
                runner.parse_snapshots(["1111"])

        run = db.get_runs(limit=1)[0]
        assert run["status"] == "failed"
        assert "disk full" in run["errors"]


class TestRunBatch:
    """ブラウザモード"""

    @patch("src.monitor.runner.random_pause")
    def test_batch_continues_after_error(self, mock_pause, config, db):
        session = MagicMock()
        session.page = None
        session.save_html_for_sku.side_effect = [
            _row_html("1111", "Taza", "MLU111111111"),
            RuntimeError("Timeout 30000ms exceeded"),
            _row_html("3333", "Plato", "MLU333333333", "Perdiendo", "Pausada"),
        ]

        runner = MonitorRunner(config, database=db)
        results = runner.run_batch(session, ["1111", "2222", "3333"])

        assert results["mode"] == MODE_BROWSER
        assert [r["sku"] for r in results["records"]] == ["1111", "3333"]
        assert results["records"][1]["competition_status"] == "Perdiendo"
        assert results["errors"] == ["SKU 2222: Timeout 30000ms exceeded"]
        session.save_html_for_sku.assert_any_call("2222", runner.out_dir)
        assert mock_pause.called


class TestFinalize:
    """CSV・レポート出力・メール"""

    def _run(self, config, db, competition="Ganando", notifier=None, confirm=None):
        _write_snapshot(
            config, "1111",
            _row_html("1111", "Taza", "MLU111111111", competition=competition),
        )
        runner = MonitorRunner(config, database=db, notifier=notifier, confirm=confirm)
        return runner, runner.parse_snapshots(["1111"])

    def test_outputs_written(self, config, db):
        runner, results = self._run(config, db)
        results = runner.finalize(results, send_email=False)

        csv = results["csv_path"].read_text(encoding="utf-8")
        assert csv.startswith("SKU,ITEM_ID,")
        assert "1111,MLU111111111,Ganando,Activa" in csv

        html = results["report_path"].read_text(encoding="utf-8")
        assert "Ganando (1)" in html
        assert results["changes"] == []
        assert results["email_sent"] is False

        run = db.get_run(results["run_id"])
        assert run["csv_path"] == str(results["csv_path"])
        assert run["report_path"] == str(results["report_path"])

    def test_changes_since_previous_run(self, config, db):
        runner, first = self._run(config, db, competition="Ganando")
        runner.finalize(first, send_email=False)

        runner, second = self._run(config, db, competition="Perdiendo")
        second = runner.finalize(second, send_email=False)

        assert len(second["changes"]) == 1
        assert second["changes"][0]["competition_before"] == "Ganando"
        assert "Cambios desde la última corrida (1)" in (
            second["report_path"].read_text(encoding="utf-8")
        )

    def test_email_sent_with_csv(self, config, db):
        notifier = MagicMock()
        runner, results = self._run(config, db, notifier=notifier)
        results = runner.finalize(results)

        assert results["email_sent"] is True
        args, kwargs = notifier.send_report.call_args
        assert args[1].startswith("Reporte Monitor ML - ")
        assert kwargs["attachments"] == [results["csv_path"]]
        assert db.get_run(results["run_id"])["email_sent"] is True

    def test_email_disabled_in_config(self, config, db):
        config["email"]["enabled"] = False
        notifier = MagicMock()
        runner, results = self._run(config, db, notifier=notifier)
        results = runner.finalize(results)

        assert results["email_sent"] is False
        notifier.send_report.assert_not_called()

    def test_confirm_cancel(self, config, db):
        notifier = MagicMock()
        confirm = MagicMock(return_value={"subject": "x", "ok": False})
        runner, results = self._run(config, db, notifier=notifier, confirm=confirm)
        results = runner.finalize(results)

        assert results["email_sent"] is False
        notifier.send_report.assert_not_called()

    def test_confirm_custom_subject(self, config, db):
        notifier = MagicMock()
        confirm = MagicMock(return_value={"subject": "Mi asunto", "ok": True})
        runner, results = self._run(config, db, notifier=notifier, confirm=confirm)
        runner.finalize(results)

        assert notifier.send_report.call_args[0][1] == "Mi asunto"

    def test_send_failure_does_not_raise(self, config, db):
        notifier = MagicMock()
        notifier.send_report.side_effect = OSError("connection refused")
        runner, results = self._run(config, db, notifier=notifier)
        results = runner.finalize(results)

        assert results["email_sent"] is False
        assert results["report_path"].exists()


class TestRebuildReport:
    """レポート再生成"""

    def test_rebuild(self, config, db):
        _write_snapshot(config, "1111", _row_html("1111", "Taza", "MLU111111111"))
        runner = MonitorRunner(config, database=db)
        results = runner.parse_snapshots(["1111"])

        path = runner.rebuild_report(results["run_id"])
        assert path.name == "report-run-{}.html".format(results["run_id"])
        assert "Taza" in path.read_text(encoding="utf-8")

    def test_unknown_run(self, config, db):
        with pytest.raises(ValueError):
            MonitorRunner(config, database=db).rebuild_report(999)

    def test_requires_database(self, config):
        with pytest.raises(ValueError):
            MonitorRunner(config).rebuild_report(1)
