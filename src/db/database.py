"""SQLiteデータベース接続管理

同期sqlite3を使用（DB操作はサブミリ秒、async不要）。
実行履歴の記録と、SKU単位のステータス推移の取得を提供。
"""

import json
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from src.db.schema import ALL_INDEXES, ALL_TABLES

CHECK_COLUMNS = [
    "sku",
    "item_id",
    "competition_status",
    "operational_status",
    "title",
    "listing_url",
    "source",
    "checked_at",
]


def _decode_run(row: sqlite3.Row) -> dict:
    """JSONカラムをリストに戻す"""
    run = dict(row)
    for key in ("missing", "errors"):
        run[key] = json.loads(run[key]) if run.get(key) else []
    run["email_sent"] = bool(run.get("email_sent"))
    return run


def _utc_now() -> str:
    """UTCのISO-8601文字列（checked_at と同じ形式）"""
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class Database:
    """SQLiteデータベースマネージャー"""

    def __init__(self, db_path: Optional[str] = None):
        if db_path is None:
            # プロジェクトルートからの相対パス
            project_root = Path(__file__).parent.parent.parent
            db_path = str(project_root / "data" / "monitor.db")

        self.db_path = str(db_path)
        # dataディレクトリが存在しない場合は作成
        os.makedirs(os.path.dirname(os.path.abspath(self.db_path)), exist_ok=True)

    @contextmanager
    def connect(self):
        """コネクション管理（コンテキストマネージャー）"""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init_tables(self) -> List[str]:
        """全テーブルを作成（冪等）。作成したテーブル名リストを返す"""
        created = []
        with self.connect() as conn:
            for name, sql in ALL_TABLES:
                conn.execute(sql)
                created.append(name)
            for sql in ALL_INDEXES:
                conn.execute(sql)
        return created

    # --- 実行履歴 ---

    def create_run(self, mode: str, skus_total: int = 0) -> int:
        """実行を開始。run IDを返す"""
        with self.connect() as conn:
            cursor = conn.execute(
                """INSERT INTO monitor_runs (mode, status, skus_total, started_at)
                   VALUES (?, 'running', ?, ?)""",
                (mode, skus_total, _utc_now()),
            )
            return cursor.lastrowid

    def complete_run(
        self,
        run_id: int,
        records_count: int,
        missing: Optional[List[str]] = None,
        errors: Optional[List[str]] = None,
        success: bool = True,
    ) -> None:
        """実行を完了"""
        status = "completed" if success else "failed"
        with self.connect() as conn:
            conn.execute(
                """UPDATE monitor_runs
                   SET status = ?, records_count = ?, missing = ?,
                       errors = ?, completed_at = ?
                   WHERE id = ?""",
                (
                    status,
                    records_count,
                    json.dumps(missing) if missing else None,
                    json.dumps(errors, ensure_ascii=False) if errors else None,
                    _utc_now(),
                    run_id,
                ),
            )

    def update_run_outputs(
        self,
        run_id: int,
        csv_path: Optional[str] = None,
        report_path: Optional[str] = None,
        email_sent: Optional[bool] = None,
    ) -> None:
        """出力ファイルパス・メール送信フラグを記録"""
        updates = {}
        if csv_path is not None:
            updates["csv_path"] = csv_path
        if report_path is not None:
            updates["report_path"] = report_path
        if email_sent is not None:
            updates["email_sent"] = email_sent
        if not updates:
            return

        set_clause = ", ".join("{} = ?".format(k) for k in updates)
        with self.connect() as conn:
            conn.execute(
                "UPDATE monitor_runs SET {} WHERE id = ?".format(set_clause),
                list(updates.values()) + [run_id],
            )

    def get_run(self, run_id: int) -> Optional[dict]:
        """実行をIDで取得"""
        with self.connect() as conn:
            row = conn.execute(
                "SELECT * FROM monitor_runs WHERE id = ?",
                (run_id,),
            ).fetchone()
            return _decode_run(row) if row else None

    def get_runs(self, limit: int = 20, offset: int = 0) -> List[dict]:
        """実行一覧（新しい順）"""
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM monitor_runs ORDER BY id DESC LIMIT ? OFFSET ?",
                (limit, offset),
            ).fetchall()
            return [_decode_run(row) for row in rows]

    def get_latest_run(self, status: Optional[str] = "completed") -> Optional[dict]:
        """最新の実行（デフォルトは完了したもののみ）"""
        query = "SELECT * FROM monitor_runs"
        params: List[Any] = []
        if status:
            query += " WHERE status = ?"
            params.append(status)
        query += " ORDER BY id DESC LIMIT 1"

        with self.connect() as conn:
            row = conn.execute(query, params).fetchone()
            return _decode_run(row) if row else None

    # --- チェック結果 ---

    def add_check(self, run_id: int, record: Dict[str, Any]) -> int:
        """SKU1件分の抽出結果を保存"""
        values = [record.get(col) or "" for col in CHECK_COLUMNS]
        placeholders = ", ".join("?" for _ in CHECK_COLUMNS)
        with self.connect() as conn:
            cursor = conn.execute(
                "INSERT INTO listing_checks (run_id, {}) VALUES (?, {})".format(
                    ", ".join(CHECK_COLUMNS), placeholders
                ),
                [run_id] + values,
            )
            return cursor.lastrowid

    def get_checks(self, run_id: int) -> List[dict]:
        """実行内のチェック結果（記録順）"""
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM listing_checks WHERE run_id = ? ORDER BY id",
                (run_id,),
            ).fetchall()
            return [dict(row) for row in rows]

    def get_latest_checks(self, before_run_id: Optional[int] = None) -> Dict[str, dict]:
        """SKUごとの直近のチェック結果

        Args:
            before_run_id: 指定時はこのrunより前の実行のみ対象（前回比較用）

        Returns:
            {sku: check}
        """
        query = """SELECT c.* FROM listing_checks c
                   JOIN (
                       SELECT sku, MAX(id) AS max_id FROM listing_checks
                       WHERE 1=1 {}
                       GROUP BY sku
                   ) latest ON c.id = latest.max_id"""
        params: List[Any] = []
        if before_run_id is not None:
            query = query.format("AND run_id < ?")
            params.append(before_run_id)
        else:
            query = query.format("")

        with self.connect() as conn:
            rows = conn.execute(query, params).fetchall()
            return {row["sku"]: dict(row) for row in rows}

    def get_sku_history(self, sku: str, limit: int = 50) -> List[dict]:
        """SKUのステータス推移（新しい順）"""
        with self.connect() as conn:
            rows = conn.execute(
                """SELECT c.*, r.mode FROM listing_checks c
                   JOIN monitor_runs r ON r.id = c.run_id
                   WHERE c.sku = ?
                   ORDER BY c.id DESC LIMIT ?""",
                (sku, limit),
            ).fetchall()
            return [dict(row) for row in rows]

    # --- 統計 ---

    def get_stats(self) -> Dict[str, Any]:
        """DB統計（実行数・チェック数・最新実行のステータス内訳）"""
        with self.connect() as conn:
            runs = conn.execute("SELECT COUNT(*) AS cnt FROM monitor_runs").fetchone()
            checks = conn.execute("SELECT COUNT(*) AS cnt FROM listing_checks").fetchone()
            skus = conn.execute(
                "SELECT COUNT(DISTINCT sku) AS cnt FROM listing_checks"
            ).fetchone()

            stats = {
                "monitor_runs": runs["cnt"],
                "listing_checks": checks["cnt"],
                "distinct_skus": skus["cnt"],
            }

            latest = conn.execute(
                """SELECT id FROM monitor_runs WHERE status = 'completed'
                   ORDER BY id DESC LIMIT 1"""
            ).fetchone()
            if latest:
                stats["latest_run_id"] = latest["id"]
                for column, key in (
                    ("competition_status", "latest_by_competition"),
                    ("operational_status", "latest_by_operational"),
                ):
                    rows = conn.execute(
                        """SELECT {col} AS status, COUNT(*) AS cnt
                           FROM listing_checks WHERE run_id = ?
                           GROUP BY {col} ORDER BY cnt DESC""".format(col=column),
                        (latest["id"],),
                    ).fetchall()
                    stats[key] = {row["status"]: row["cnt"] for row in rows}

        return stats
