"""SQLiteスキーマ定義

実行履歴（monitor_runs）とSKUごとのチェック結果（listing_checks）。
冪等に実行可能（IF NOT EXISTS）。
"""

# モニター実行1回分
MONITOR_RUNS_TABLE = """
CREATE TABLE IF NOT EXISTS monitor_runs (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    mode                TEXT NOT NULL,            -- 'browser' or 'snapshot'
    status              TEXT DEFAULT 'running',   -- 'running','completed','failed'
    skus_total          INTEGER DEFAULT 0,
    records_count       INTEGER DEFAULT 0,
    missing             TEXT,                     -- JSON array（行が見つからなかったSKU）
    errors              TEXT,                     -- JSON array
    report_path         TEXT,
    csv_path            TEXT,
    email_sent          BOOLEAN DEFAULT FALSE,
    started_at          DATETIME DEFAULT CURRENT_TIMESTAMP,
    completed_at        DATETIME
);
"""

# SKUごとの抽出結果
LISTING_CHECKS_TABLE = """
CREATE TABLE IF NOT EXISTS listing_checks (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id              INTEGER REFERENCES monitor_runs(id) ON DELETE CASCADE,
    sku                 TEXT NOT NULL,
    item_id             TEXT,                     -- 'MLU123456789'
    competition_status  TEXT,                     -- 'Ganando','Perdiendo','Compartiendo primer lugar','SIN_ESTADO'
    operational_status  TEXT,                     -- 'Activa','Pausada','Inactiva','UNKNOWN'
    title               TEXT,
    listing_url         TEXT,
    source              TEXT,                     -- 'snapshot','dom','live'
    checked_at          DATETIME
);
"""

LISTING_CHECKS_SKU_INDEX = """
CREATE INDEX IF NOT EXISTS idx_listing_checks_sku
    ON listing_checks (sku, run_id);
"""

# 全テーブル定義（作成順）
ALL_TABLES = [
    ("monitor_runs", MONITOR_RUNS_TABLE),
    ("listing_checks", LISTING_CHECKS_TABLE),
]

ALL_INDEXES = [
    LISTING_CHECKS_SKU_INDEX,
]
