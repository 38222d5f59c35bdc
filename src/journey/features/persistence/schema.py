from __future__ import annotations

KV_TABLE_NAME = "kv_store"
TELEMETRY_TABLE_NAME = "telemetry"

KV_DDL = f"""
CREATE TABLE IF NOT EXISTS {KV_TABLE_NAME} (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""

TELEMETRY_DDL = f"""
CREATE TABLE IF NOT EXISTS {TELEMETRY_TABLE_NAME} (
    ts_utc TIMESTAMP NOT NULL,

    session_id TEXT,
    user_id TEXT,

    kind TEXT NOT NULL,
    name TEXT NOT NULL,
    url TEXT,
    value DOUBLE,

    properties_json TEXT,
    measurements_json TEXT,

    error_type TEXT,
    error_message TEXT
);
"""

TELEMETRY_COLUMNS = (
    "ts_utc",
    "session_id",
    "user_id",
    "kind",
    "name",
    "url",
    "value",
    "properties_json",
    "measurements_json",
    "error_type",
    "error_message",
)

TELEMETRY_INDEXES = [
    f"CREATE INDEX IF NOT EXISTS idx_telemetry_session_id ON {TELEMETRY_TABLE_NAME}(session_id);",
    f"CREATE INDEX IF NOT EXISTS idx_telemetry_name ON {TELEMETRY_TABLE_NAME}(name);",
]


def create_schema(conn) -> None:
    """
    Create tables/indexes. No migrations. Safe to call on every open.
    """
    conn.execute(KV_DDL)
    conn.execute(TELEMETRY_DDL)
    for ddl in TELEMETRY_INDEXES:
        conn.execute(ddl)
