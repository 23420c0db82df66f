"""Webダッシュボード（Flask）

ブラウザで最新レポートと実行履歴を閲覧するためのWeb UI。
起動: python -m src.cli.main web --port 8080
- /: 最新のHTMLレポートを配信
- JSON API: /api/* で実行履歴・SKU推移・統計を提供
"""

import os
from typing import Any, Dict, Optional

from flask import Flask, Response, jsonify, request

from src.db.database import Database
from src.monitor.config import load_config, resolve_path


def create_app(db_path=None, config=None):
    # type: (Optional[str], Optional[Dict[str, Any]]) -> Flask
    """Flaskアプリファクトリ"""
    app = Flask(__name__, static_folder=None)

    if config is None:
        config = load_config()
    report_file = str(resolve_path(config, "out_dir") / config["report"]["report_name"])

    # データベース初期化
    db = Database(db_path=db_path)
    db.init_tables()

    def parse_limit(default):
        # type: (int) -> int
        limit = request.args.get("limit", str(default), type=str)
        try:
            return max(1, int(limit))
        except ValueError:
            return default

    # --- ページルート ---

    @app.route("/")
    def index():
        """最新レポート（未生成ならメッセージ）"""
        run = db.get_latest_run()
        path = report_file
        if run and run.get("report_path") and os.path.isfile(run["report_path"]):
            path = run["report_path"]

        if not os.path.isfile(path):
            return Response(
                "レポートがまだありません。`run` または `parse` を実行してください。",
                status=404,
                mimetype="text/plain",
            )

        with open(path, "r", encoding="utf-8") as f:
            return Response(f.read(), mimetype="text/html")

    # --- GET JSON API ---

    @app.route("/api/runs")
    def api_runs():
        """実行履歴一覧"""
        runs = db.get_runs(limit=parse_limit(20))
        return jsonify({"runs": runs, "total": len(runs)})

    @app.route("/api/runs/<int:run_id>")
    def api_run_detail(run_id):
        """実行詳細（チェック結果含む）"""
        run = db.get_run(run_id)
        if not run:
            return jsonify({"error": "実行ID {} が見つかりません".format(run_id)}), 404

        checks = db.get_checks(run_id)
        return jsonify({"run": run, "checks": checks, "total": len(checks)})

    @app.route("/api/skus/<sku>/history")
    def api_sku_history(sku):
        """SKUのステータス推移"""
        history = db.get_sku_history(sku, limit=parse_limit(50))
        return jsonify({"sku": sku, "history": history, "total": len(history)})

    @app.route("/api/stats")
    def api_stats():
        """DB統計"""
        return jsonify({"stats": db.get_stats()})

    return app
