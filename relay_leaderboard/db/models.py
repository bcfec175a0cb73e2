"""SQLite database schema and models."""

SCHEMA = """
-- Singleton sync cursor (id is always 1)
CREATE TABLE IF NOT EXISTS relay_sync_state (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    last_processed_timestamp INTEGER NOT NULL DEFAULT 0,
    last_continuation TEXT,
    -- Highest createdAt seen since the continuation chain began
    pending_max_timestamp INTEGER NOT NULL DEFAULT 0,
    updated_at TIMESTAMP NOT NULL
);

-- Cumulative per-wallet totals; volume is a decimal string
CREATE TABLE IF NOT EXISTS wallet_volume (
    wallet_address TEXT PRIMARY KEY,
    total_volume_usd TEXT NOT NULL,
    total_tx INTEGER NOT NULL DEFAULT 0 CHECK (total_tx >= 0),
    last_updated TIMESTAMP NOT NULL
);

-- Published leaderboard; replaced wholesale by the snapshot job
CREATE TABLE IF NOT EXISTS leaderboard_top (
    rank INTEGER PRIMARY KEY,
    wallet_address TEXT NOT NULL,
    total_volume_usd TEXT NOT NULL,
    total_tx INTEGER NOT NULL DEFAULT 0,
    updated_at TIMESTAMP NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_leaderboard_top_wallet
    ON leaderboard_top(wallet_address);
"""

SNAPSHOT_TABLE = "leaderboard_top"
SNAPSHOT_STAGING_TABLE = "leaderboard_top_staging"
SNAPSHOT_OLD_TABLE = "leaderboard_top_old"

SNAPSHOT_TABLE_DDL = """
CREATE TABLE {table} (
    rank INTEGER PRIMARY KEY,
    wallet_address TEXT NOT NULL,
    total_volume_usd TEXT NOT NULL,
    total_tx INTEGER NOT NULL DEFAULT 0,
    updated_at TIMESTAMP NOT NULL
)
"""

SNAPSHOT_INDEX_DDL = (
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_leaderboard_top_wallet "
    f"ON {SNAPSHOT_TABLE}(wallet_address)"
)
