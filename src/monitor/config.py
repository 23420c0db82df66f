"""設定読み込み

config/config.yaml を読み込み、デフォルト値とマージして返す。
SMTP等の秘密情報は config/.env（環境変数）側で管理する。
"""

import copy
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

PROJECT_ROOT = Path(__file__).parent.parent.parent

_CONFIG_PATH = PROJECT_ROOT / "config" / "config.yaml"

DEFAULT_CONFIG = {
    "marketplace": {
        "base_url": "https://www.mercadolibre.com.uy",
        "listings_path": (
            "/publicaciones/listado"
            "?filters=CHANNEL_ONLY_MARKETPLACE&page=1&sort=DEFAULT"
        ),
    },
    "paths": {
        "out_dir": "out",
        "results_csv": "results.csv",
        "skus_csv": "skus.csv",
        "profile_dir": ".meli-profile",
        "db_path": "data/monitor.db",
    },
    "browser": {
        "headless": False,
        "login_timeout_seconds": 300,
        "locale": "es-UY",
        "timezone": "America/Montevideo",
    },
    "report": {
        "timezone": "America/Montevideo",
        "report_name": "report.html",
    },
    "email": {
        "enabled": True,
        "attach_csv": True,
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """ネストしたdictを再帰的にマージ（overrideが優先）"""
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """config.yamlを読み込み

    ファイルがなければデフォルト設定を返す。
    環境変数 MONITOR_HEADLESS が設定されていればbrowser.headlessを上書き。
    """
    config_path = Path(path) if path else _CONFIG_PATH
    try:
        with open(config_path, encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
    except FileNotFoundError:
        loaded = {}

    if not isinstance(loaded, dict):
        raise ValueError(
            "設定ファイルの形式が不正です: {}".format(config_path)
        )

    config = _merge(DEFAULT_CONFIG, loaded)

    headless_env = os.environ.get("MONITOR_HEADLESS")
    if headless_env:
        config["browser"]["headless"] = headless_env.strip().lower() == "true"

    return config


def resolve_path(config: Dict[str, Any], key: str) -> Path:
    """paths.<key> をプロジェクトルート基準の絶対パスに解決"""
    raw = config["paths"][key]
    path = Path(raw)
    if not path.is_absolute():
        path = PROJECT_ROOT / path
    return path


def listings_url(config: Dict[str, Any]) -> str:
    """出品一覧ページURL"""
    market = config["marketplace"]
    return market["base_url"].rstrip("/") + market["listings_path"]
