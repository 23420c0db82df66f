"""CLIエントリポイント

使い方:
    python -m src.cli.main run [--skus skus.csv] [--headless] [--no-email]
    python -m src.cli.main parse [--skus skus.csv] [--email]
    python -m src.cli.main history runs [-l 20]
    python -m src.cli.main history sku 1234
    python -m src.cli.main report rebuild --run-id 3
    python -m src.cli.main db init
    python -m src.cli.main db stats
    python -m src.cli.main web --port 8080
"""

import logging
import os
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

# .envファイル読み込み
_project_root = Path(__file__).parent.parent.parent
_env_path = _project_root / "config" / ".env"
if _env_path.exists():
    load_dotenv(_env_path)

# プロジェクトルートをパスに追加（python -m 実行用）
sys.path.insert(0, str(_project_root))

from src.db.database import Database
from src.monitor.config import load_config, resolve_path

console = Console()

# 競争ステータスの表示色
_COMPETITION_STYLES = {
    "Ganando": "green",
    "Compartiendo primer lugar": "yellow",
    "Perdiendo": "red",
    "SIN_ESTADO": "dim",
}


# --- メイングループ ---

@click.group()
@click.option("-v", "--verbose", is_flag=True, help="デバッグログを表示")
@click.option("-c", "--config", "config_path", default=None, help="config.yamlのパス")
@click.pass_context
def cli(ctx, verbose, config_path):
    """出品モニター: 競争/稼働ステータスの定期チェック"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = load_config(config_path)
    except ValueError as e:
        console.print(f"[red]設定エラー: {e}[/red]")
        sys.exit(1)


def _database(config):
    database = Database(db_path=str(resolve_path(config, "db_path")))
    database.init_tables()
    return database


# --- run / parse コマンド ---

@cli.command("run")
@click.option("--skus", "skus_path", default=None, help="SKU一覧CSV（デフォルト: config設定値）")
@click.option("--headless/--headed", default=None, help="ヘッドレス実行（初回ログインはheaded）")
@click.option("--no-email", is_flag=True, help="メール送信しない")
@click.pass_context
def run_monitor(ctx, skus_path, headless, no_email):
    """ブラウザでSKUごとの出品行を取得してレポート作成"""
    from src.browser.session import MarketplaceSession
    from src.monitor.runner import MonitorRunner
    from src.monitor.skus import read_skus_csv

    config = ctx.obj["config"]
    skus_file = skus_path or resolve_path(config, "skus_csv")
    skus = read_skus_csv(skus_file)
    if not skus:
        console.print(f"[yellow]⚠️ {skus_file} が空か存在しません。[/yellow]")
        return

    runner = MonitorRunner(
        config,
        database=_database(config),
        notifier=None if no_email else _init_notifier(),
        confirm=_init_confirm(),
    )

    try:
        session = MarketplaceSession(config, headless=headless)
        session.start()
    except RuntimeError as e:
        console.print(f"[red]エラー: {e}[/red]")
        sys.exit(1)

    try:
        console.print("[bold]➡️ 出品一覧を開いています…[/bold]")
        session.open_listings()

        if session.is_logged_in():
            console.print("[green]✓[/green] 既存セッションを検出")
        else:
            timeout = config["browser"]["login_timeout_seconds"]
            console.print(
                f"🔐 ブラウザでログインしてください（2FA/CAPTCHA）。最大{timeout}秒待機します。"
            )
            with console.status("ログイン待機中…") as status:
                ok = session.wait_for_manual_login(
                    timeout,
                    on_wait=lambda left: status.update(f"ログイン待機中… 残り{left}秒"),
                )
            if not ok:
                console.print("[red]❌ ログインを検知できませんでした。終了します。[/red]")
                sys.exit(1)
            console.print("[green]✓[/green] ログインを検知")

        console.print(f"[bold]チェック開始:[/bold] {len(skus)}件")
        results = runner.run_batch(session, skus)
    finally:
        session.close()

    _finish(runner, results, send_email=not no_email)


@cli.command("parse")
@click.option("--skus", "skus_path", default=None, help="SKU一覧CSV（デフォルト: config設定値）")
@click.option("--email", "send_email", is_flag=True, help="レポートをメール送信")
@click.pass_context
def parse_snapshots(ctx, skus_path, send_email):
    """保存済みHTMLスナップショットから再抽出（ブラウザ不要）"""
    from src.monitor.runner import MonitorRunner
    from src.monitor.skus import read_skus_csv

    config = ctx.obj["config"]
    skus_file = skus_path or resolve_path(config, "skus_csv")
    skus = read_skus_csv(skus_file)
    if not skus:
        console.print(f"[yellow]⚠️ {skus_file} が空か存在しません。[/yellow]")
        return

    runner = MonitorRunner(
        config,
        database=_database(config),
        notifier=_init_notifier() if send_email else None,
        confirm=_init_confirm(),
    )
    console.print(f"[bold]スナップショット解析:[/bold] {len(skus)}件 ({runner.out_dir})")
    results = runner.parse_snapshots(skus)
    _finish(runner, results, send_email=send_email)


def _finish(runner, results, send_email):
    """結果テーブル表示 → CSV/レポート出力 → メール"""
    records = results["records"]

    table = Table(title="チェック結果")
    table.add_column("SKU", style="cyan")
    table.add_column("ITEM_ID")
    table.add_column("COMPETENCIA")
    table.add_column("OPERATIVO")
    table.add_column("TITULO", max_width=80)

    for r in records:
        style = _COMPETITION_STYLES.get(r["competition_status"], "")
        table.add_row(
            r["sku"],
            r["item_id"] or "-",
            f"[{style}]{r['competition_status']}[/{style}]" if style else r["competition_status"],
            r["operational_status"],
            (r["title"] or "")[:80],
        )
    console.print(table)

    if results["missing"]:
        console.print(
            "[yellow]行なし: {}[/yellow]".format(", ".join(results["missing"]))
        )
    if results["errors"]:
        console.print("[red]エラー: {}件[/red]".format(len(results["errors"])))

    results = runner.finalize(results, send_email=send_email)

    console.print(f"[green]✓[/green] {results['csv_path']} 再生成 ({len(records)}行)")
    console.print(f"[green]✓[/green] レポート保存: {results['report_path']}")
    if results["changes"]:
        console.print("[bold]前回からの変化: {}件[/bold]".format(len(results["changes"])))
    if results["email_sent"]:
        console.print("[green]✓[/green] レポートをメール送信しました。")
    console.print("[green]✓ 完了[/green]")


# --- history コマンド ---

@cli.group()
def history():
    """実行履歴"""
    pass


@history.command("runs")
@click.option("-l", "--limit", default=20, help="表示件数（デフォルト: 20）")
@click.pass_context
def history_runs(ctx, limit):
    """実行履歴一覧"""
    database = _database(ctx.obj["config"])
    runs = database.get_runs(limit=limit)
    if not runs:
        console.print("[yellow]実行履歴がありません。[/yellow]")
        return

    table = Table(title="実行履歴")
    table.add_column("ID", justify="right", style="dim")
    table.add_column("モード")
    table.add_column("状態")
    table.add_column("SKU数", justify="right")
    table.add_column("取得", justify="right", style="green")
    table.add_column("行なし", justify="right", style="yellow")
    table.add_column("エラー", justify="right", style="red")
    table.add_column("メール")
    table.add_column("開始")

    for run in runs:
        table.add_row(
            str(run["id"]),
            run["mode"],
            run["status"],
            str(run["skus_total"]),
            str(run["records_count"]),
            str(len(run["missing"])),
            str(len(run["errors"])),
            "✓" if run["email_sent"] else "-",
            (run["started_at"] or "")[:19],
        )
    console.print(table)


@history.command("sku")
@click.argument("sku")
@click.option("-l", "--limit", default=20, help="表示件数（デフォルト: 20）")
@click.pass_context
def history_sku(ctx, sku, limit):
    """SKUのステータス推移"""
    database = _database(ctx.obj["config"])
    checks = database.get_sku_history(sku, limit=limit)
    if not checks:
        console.print(f"[yellow]SKU {sku} の履歴がありません。[/yellow]")
        return

    table = Table(title=f"SKU {sku} の推移")
    table.add_column("実行", justify="right", style="dim")
    table.add_column("日時")
    table.add_column("COMPETENCIA")
    table.add_column("OPERATIVO")
    table.add_column("ITEM_ID")
    table.add_column("抽出")

    for c in checks:
        table.add_row(
            str(c["run_id"]),
            (c["checked_at"] or "")[:19],
            c["competition_status"],
            c["operational_status"],
            c["item_id"] or "-",
            c["source"] or "-",
        )
    console.print(table)


# --- report コマンド ---

@cli.group()
def report():
    """レポート管理"""
    pass


@report.command("rebuild")
@click.option("--run-id", required=True, type=int, help="実行ID")
@click.pass_context
def report_rebuild(ctx, run_id):
    """記録済みの実行からHTMLレポートを再生成"""
    from src.monitor.runner import MonitorRunner

    config = ctx.obj["config"]
    runner = MonitorRunner(config, database=_database(config))
    try:
        path = runner.rebuild_report(run_id)
    except ValueError as e:
        console.print(f"[red]エラー: {e}[/red]")
        return
    console.print(f"[green]✓[/green] レポート再生成: {path}")


# --- db コマンド ---

@cli.group()
def db():
    """データベース管理"""
    pass


@db.command("init")
@click.pass_context
def db_init(ctx):
    """テーブル作成"""
    database = Database(db_path=str(resolve_path(ctx.obj["config"], "db_path")))
    console.print(f"[bold]DB:[/bold] {database.db_path}")
    tables = database.init_tables()
    console.print(f"[green]✓[/green] テーブル作成: {', '.join(tables)}")


@db.command("stats")
@click.pass_context
def db_stats(ctx):
    """DB統計を表示"""
    db_path = str(resolve_path(ctx.obj["config"], "db_path"))
    if not os.path.exists(db_path):
        console.print("[red]DBが存在しません。先に `db init` を実行してください。[/red]")
        return

    stats = Database(db_path=db_path).get_stats()

    table = Table(title="DB統計")
    table.add_column("項目", style="cyan")
    table.add_column("値", justify="right")
    for key, value in stats.items():
        if not isinstance(value, dict):
            table.add_row(key, str(value))
    console.print(table)

    for key, label in (("latest_by_competition", "競争ステータス"),
                       ("latest_by_operational", "稼働ステータス")):
        if key in stats:
            console.print(f"\n[bold]最新実行 ({label}):[/bold]")
            for status, count in stats[key].items():
                console.print(f"  {status}: {count}")


# --- web コマンド ---

@cli.command("web")
@click.option("--host", default="127.0.0.1", help="バインドアドレス")
@click.option("--port", default=8080, help="ポート番号")
@click.option("--debug", is_flag=True, help="デバッグモード")
@click.pass_context
def web(ctx, host, port, debug):
    """Webダッシュボードを起動"""
    from src.dashboard.web import create_app

    config = ctx.obj["config"]
    app = create_app(
        db_path=str(resolve_path(config, "db_path")),
        config=config,
    )
    console.print(f"[bold]ダッシュボード:[/bold] http://{host}:{port}/")
    app.run(host=host, port=port, debug=debug)


# --- ヘルパー関数 ---

def _init_notifier():
    """EmailNotifier を初期化（SMTP未設定ならNone）"""
    from src.notifications.mailer import EmailNotifier

    try:
        return EmailNotifier()
    except ValueError as e:
        console.print(f"[yellow]✉️  {e} report.html のみ保存します。[/yellow]")
        return None


def _init_confirm():
    """MAIL_INTERACTIVE=true なら送信前確認プロンプトを返す"""
    from src.notifications.mailer import is_interactive, prompt_subject_and_confirm

    return prompt_subject_and_confirm if is_interactive() else None


# --- エントリポイント ---

def main():
    cli(obj={})


if __name__ == "__main__":
    main()
