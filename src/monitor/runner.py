"""出品モニター実行エンジン

SKUごとに スナップショット保存 → 抽出 → 履歴記録 を行い、
最後にCSV・HTMLレポートを出力してメール送信する。
SKU単位のエラーは記録して処理を継続する。
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from src.browser.humanize import random_pause
from src.db.database import Database
from src.extract.pipeline import extract_record
from src.extract.snapshot import read_snapshot, snapshot_path
from src.monitor.config import resolve_path
from src.notifications.mailer import EmailNotifier, default_subject
from src.report.csv_export import write_results_csv
from src.report.html_report import (
    build_html_report,
    detect_changes,
    write_html_report,
)

logger = logging.getLogger(__name__)

MODE_BROWSER = "browser"
MODE_SNAPSHOT = "snapshot"


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class MonitorRunner:
    """出品モニター実行エンジン"""

    def __init__(
        self,
        config: Dict[str, Any],
        database: Optional[Database] = None,
        notifier: Optional[EmailNotifier] = None,
        confirm: Optional[Callable[[str, List[str], List[str]], Dict[str, Any]]] = None,
    ):
        """
        Args:
            config: load_config() の設定
            database: 履歴DB（Noneなら記録しない）
            notifier: メール送信（Noneなら送信スキップ）
            confirm: 送信前確認 (subject, to, cc) -> {"subject", "ok"}
        """
        self.config = config
        self.db = database
        self.notifier = notifier
        self.confirm = confirm

        self.out_dir = str(resolve_path(config, "out_dir"))
        self.csv_path = resolve_path(config, "results_csv")
        self.report_path = Path(self.out_dir) / config["report"]["report_name"]
        self.base_url = config["marketplace"]["base_url"]
        self.tz = config["report"]["timezone"]

    # --- 抽出 ---

    def run_batch(
        self,
        session,
        skus: List[str],
        on_record: Optional[Callable[[Dict[str, Any]], None]] = None,
    ) -> Dict[str, Any]:
        """ブラウザで各SKUの検索結果を開いて抽出

        Args:
            session: ログイン済みの MarketplaceSession
            skus: 対象SKU
            on_record: レコード取得ごとのコールバック（進捗表示用）
        """
        def fetch(sku):
            random_pause(180, 420)
            html = session.save_html_for_sku(sku, self.out_dir)
            record = extract_record(sku, html, page=session.page)
            random_pause(300, 700)
            return record

        def on_error(sku):
            random_pause(600, 1200)

        return self._process(MODE_BROWSER, skus, fetch, on_record, on_error)

    def parse_snapshots(
        self,
        skus: List[str],
        on_record: Optional[Callable[[Dict[str, Any]], None]] = None,
    ) -> Dict[str, Any]:
        """保存済みスナップショットのみから抽出（ブラウザ不要）"""
        def fetch(sku):
            html = read_snapshot(sku, self.out_dir)
            if html is None:
                raise FileNotFoundError(
                    "スナップショットがありません: {}".format(
                        snapshot_path(self.out_dir, sku)
                    )
                )
            return extract_record(sku, html)

        return self._process(MODE_SNAPSHOT, skus, fetch, on_record)

    def _process(
        self,
        mode: str,
        skus: List[str],
        fetch: Callable[[str], Optional[Dict[str, Any]]],
        on_record: Optional[Callable[[Dict[str, Any]], None]] = None,
        on_error: Optional[Callable[[str], None]] = None,
    ) -> Dict[str, Any]:
        results = {
            "mode": mode,
            "run_id": None,
            "records": [],
            "missing": [],
            "errors": [],
        }  # type: Dict[str, Any]

        if self.db:
            results["run_id"] = self.db.create_run(mode, len(skus))

        try:
            for sku in skus:
                try:
                    record = fetch(sku)
                except Exception as e:
                    error_msg = f"SKU {sku}: {e}"
                    logger.error(error_msg)
                    results["errors"].append(error_msg)
                    if on_error:
                        on_error(sku)
                    continue

                if record is None:
                    logger.warning(
                        f"SKU {sku}: 該当行が見つからないか抽出できませんでした "
                        f"({snapshot_path(self.out_dir, sku)})"
                    )
                    results["missing"].append(sku)
                    continue

                record["checked_at"] = now_iso()
                results["records"].append(record)
                if self.db:
                    self.db.add_check(results["run_id"], record)
                logger.info(
                    f"SKU {sku}: {record['competition_status']} | "
                    f"{record['operational_status']} | {record['item_id']} | "
                    f"{record['title']}"
                )
                if on_record:
                    on_record(record)

            if self.db:
                self.db.complete_run(
                    results["run_id"],
                    records_count=len(results["records"]),
                    missing=results["missing"],
                    errors=results["errors"],
                    success=True,
                )

        except Exception as e:
            logger.error(f"モニター実行失敗: {e}")
            if self.db:
                self.db.complete_run(
                    results["run_id"],
                    records_count=len(results["records"]),
                    missing=results["missing"],
                    errors=results["errors"] + [str(e)],
                    success=False,
                )
            raise

        return results

    # --- 出力 ---

    def finalize(self, results: Dict[str, Any], send_email: bool = True) -> Dict[str, Any]:
        """CSV・HTMLレポートを出力し、必要ならメール送信

        Returns:
            results に csv_path / report_path / changes / email_sent を追加したもの
        """
        records = results["records"]
        run_id = results.get("run_id")

        csv_path = write_results_csv(records, self.csv_path, self.base_url)
        logger.info(f"{csv_path} 再生成 ({len(records)}行)")

        previous = {}
        if self.db and run_id is not None:
            previous = self.db.get_latest_checks(before_run_id=run_id)
        changes = detect_changes(previous, records)

        html = build_html_report(
            records, changes=changes, base_url=self.base_url, tz=self.tz
        )
        report_path = write_html_report(html, self.report_path)
        logger.info(f"レポート保存: {report_path}")

        email_sent = False
        if send_email and self.config.get("email", {}).get("enabled", True):
            email_sent = self._send_email(html, csv_path)

        if self.db and run_id is not None:
            self.db.update_run_outputs(
                run_id,
                csv_path=str(csv_path),
                report_path=str(report_path),
                email_sent=email_sent,
            )

        results.update({
            "csv_path": csv_path,
            "report_path": report_path,
            "changes": changes,
            "email_sent": email_sent,
        })
        return results

    def _send_email(self, html: str, csv_path: Path) -> bool:
        """レポートメール送信（失敗しても実行結果には影響させない）"""
        if not self.notifier:
            logger.info(f"メール未設定のため送信スキップ。{self.report_path} を参照")
            return False

        subject = default_subject(tz=self.tz)
        if self.confirm:
            decision = self.confirm(subject, self.notifier.to, self.notifier.cc)
            if not decision["ok"]:
                logger.info("メール送信はユーザーによりキャンセルされました")
                return False
            subject = decision["subject"]

        attachments = []
        if self.config.get("email", {}).get("attach_csv", True):
            attachments.append(csv_path)

        try:
            self.notifier.send_report(html, subject, attachments=attachments)
            return True
        except Exception as e:
            logger.error(f"メール送信失敗: {e}")
            return False

    def rebuild_report(self, run_id: int) -> Path:
        """DBに記録済みの実行からHTMLレポートを再生成"""
        if not self.db:
            raise ValueError("レポート再生成には履歴DBが必要です。")

        run = self.db.get_run(run_id)
        if not run:
            raise ValueError("実行ID {} が見つかりません".format(run_id))

        records = self.db.get_checks(run_id)
        previous = self.db.get_latest_checks(before_run_id=run_id)
        html = build_html_report(
            records,
            now=datetime.fromisoformat(run["started_at"]),
            changes=detect_changes(previous, records),
            base_url=self.base_url,
            tz=self.tz,
        )
        path = Path(self.out_dir) / "report-run-{}.html".format(run_id)
        return write_html_report(html, path)
