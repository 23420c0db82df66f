"""cron用 出品モニターエントリポイント

ヘッドレスで実行。事前に `python -m src.cli.main run --headed` で
ログインし、永続プロファイルにセッションを保存しておくこと。

crontab設定例:
    0 */2 * * * cd /path/to/meli-monitor && python scripts/cron_monitor.py >> logs/monitor.log 2>&1
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

from dotenv import load_dotenv

# プロジェクト設定
_project_root = Path(__file__).parent.parent
_env_path = _project_root / "config" / ".env"
if _env_path.exists():
    load_dotenv(_env_path)

sys.path.insert(0, str(_project_root))

# ログ設定
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("cron_monitor")


def main():
    """出品モニターを実行"""
    from src.browser.session import MarketplaceSession
    from src.db.database import Database
    from src.monitor.config import load_config, resolve_path
    from src.monitor.runner import MonitorRunner
    from src.monitor.skus import read_skus_csv
    from src.notifications.mailer import EmailNotifier

    logger.info("出品モニター開始")
    start = datetime.now()

    config = load_config()
    skus = read_skus_csv(resolve_path(config, "skus_csv"))
    if not skus:
        logger.warning("SKUがありません。終了します。")
        return

    database = Database(db_path=str(resolve_path(config, "db_path")))
    database.init_tables()

    # 通知
    notifier = None
    try:
        notifier = EmailNotifier()
    except ValueError as e:
        logger.warning(f"メール未設定。レポート保存のみで実行: {e}")

    runner = MonitorRunner(config, database=database, notifier=notifier)

    try:
        with MarketplaceSession(config, headless=True) as session:
            session.open_listings()
            if not session.is_logged_in():
                logger.error("ログインセッションがありません。headedで一度ログインしてください。")
                sys.exit(1)
            results = runner.run_batch(session, skus)

        results = runner.finalize(results)
        elapsed = (datetime.now() - start).total_seconds()
        logger.info(
            f"出品モニター完了: "
            f"取得={len(results['records'])}件, "
            f"行なし={len(results['missing'])}件, "
            f"エラー={len(results['errors'])}件, "
            f"変化={len(results['changes'])}件, "
            f"所要時間={elapsed:.1f}秒"
        )
    except Exception as e:
        logger.error(f"出品モニター失敗: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
