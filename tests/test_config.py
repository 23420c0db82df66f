"""設定読み込みテスト"""

import os
import tempfile

import pytest

from src.monitor.config import (
    DEFAULT_CONFIG,
    PROJECT_ROOT,
    listings_url,
    load_config,
    resolve_path,
)


@pytest.fixture
def yaml_file():
    paths = []

    def _write(content):
        with tempfile.NamedTemporaryFile(
            "w", suffix=".yaml", delete=False, encoding="utf-8"
        ) as f:
            f.write(content)
            paths.append(f.name)
            return f.name

    yield _write

    for p in paths:
        os.unlink(p)


class TestLoadConfig:
    """config.yaml読み込み"""

    def test_missing_file_defaults(self, monkeypatch):
        monkeypatch.delenv("MONITOR_HEADLESS", raising=False)
        config = load_config("/nonexistent/config.yaml")
        assert config == DEFAULT_CONFIG
        assert config is not DEFAULT_CONFIG

    def test_partial_override(self, yaml_file, monkeypatch):
        """指定したキーのみ上書きし、他はデフォルトを維持"""
        monkeypatch.delenv("MONITOR_HEADLESS", raising=False)
        path = yaml_file(
            "marketplace:\n"
            "  base_url: https://www.mercadolibre.com.ar\n"
            "browser:\n"
            "  login_timeout_seconds: 60\n"
        )
        config = load_config(path)
        assert config["marketplace"]["base_url"] == "https://www.mercadolibre.com.ar"
        assert config["marketplace"]["listings_path"] == (
            DEFAULT_CONFIG["marketplace"]["listings_path"]
        )
        assert config["browser"]["login_timeout_seconds"] == 60
        assert config["browser"]["locale"] == "es-UY"

    def test_empty_file(self, yaml_file, monkeypatch):
        monkeypatch.delenv("MONITOR_HEADLESS", raising=False)
        assert load_config(yaml_file("")) == DEFAULT_CONFIG

    def test_invalid_format(self, yaml_file):
        with pytest.raises(ValueError):
            load_config(yaml_file("- a\n- b\n"))

    def test_headless_env(self, monkeypatch):
        monkeypatch.setenv("MONITOR_HEADLESS", "true")
        assert load_config("/nonexistent/config.yaml")["browser"]["headless"] is True
        monkeypatch.setenv("MONITOR_HEADLESS", "false")
        assert load_config("/nonexistent/config.yaml")["browser"]["headless"] is False


class TestPaths:
    """パス・URL解決"""

    def test_relative_path(self):
        config = load_config("/nonexistent/config.yaml")
        assert resolve_path(config, "out_dir") == PROJECT_ROOT / "out"

    def test_absolute_path(self):
        config = load_config("/nonexistent/config.yaml")
        config["paths"]["db_path"] = "/tmp/monitor.db"
        assert str(resolve_path(config, "db_path")) == "/tmp/monitor.db"

    def test_listings_url(self):
        config = load_config("/nonexistent/config.yaml")
        config["marketplace"]["base_url"] = "https://www.mercadolibre.com.uy/"
        assert listings_url(config) == (
            "https://www.mercadolibre.com.uy/publicaciones/listado"
            "?filters=CHANNEL_ONLY_MARKETPLACE&page=1&sort=DEFAULT"
        )
