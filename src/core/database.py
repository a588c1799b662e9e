"""
SQLite database operations for the API request log.
"""

import sqlite3

from core.config import DB_PATH, MAX_LOGS_PER_CREDENTIAL


def get_connection() -> sqlite3.Connection:
    """Get a database connection."""
    return sqlite3.connect(DB_PATH)


def create_tables(conn: sqlite3.Connection):
    """Create the request log tables and indexes if they don't exist."""
    cursor = conn.cursor()

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS api_requests (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            request_id TEXT UNIQUE NOT NULL,
            timestamp TEXT NOT NULL,
            endpoint TEXT NOT NULL,
            method TEXT NOT NULL,
            client_ip TEXT,
            credential_key TEXT,
            workspace_id TEXT,
            status_code INTEGER NOT NULL,
            error_code TEXT,
            error_message TEXT,
            processing_time_ms INTEGER NOT NULL,
            items_total INTEGER,
            items_failed INTEGER
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS api_request_details (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            request_id TEXT NOT NULL,
            detail_type TEXT NOT NULL CHECK(detail_type IN ('validation_error', 'item_failed', 'item_skipped', 'warning')),
            message TEXT NOT NULL,
            FOREIGN KEY (request_id) REFERENCES api_requests(request_id)
        )
    """)

    cursor.execute(
        "CREATE INDEX IF NOT EXISTS idx_api_requests_credential ON api_requests(credential_key, timestamp)"
    )
    cursor.execute(
        "CREATE INDEX IF NOT EXISTS idx_api_requests_status ON api_requests(status_code)"
    )
    cursor.execute(
        "CREATE INDEX IF NOT EXISTS idx_api_request_details_request ON api_request_details(request_id)"
    )
    conn.commit()


def prune_request_logs(
    conn: sqlite3.Connection, credential_key: str, keep: int = MAX_LOGS_PER_CREDENTIAL
) -> int:
    """Delete all but the newest `keep` requests for one credential. Returns rows removed."""
    cursor = conn.cursor()
    cursor.execute(
        """
        SELECT request_id FROM api_requests
        WHERE credential_key = ?
        ORDER BY timestamp DESC, id DESC
        LIMIT -1 OFFSET ?
        """,
        (credential_key, keep),
    )
    stale = [row[0] for row in cursor.fetchall()]
    if not stale:
        return 0

    placeholders = ", ".join("?" for _ in stale)
    cursor.execute(f"DELETE FROM api_request_details WHERE request_id IN ({placeholders})", stale)
    cursor.execute(f"DELETE FROM api_requests WHERE request_id IN ({placeholders})", stale)
    conn.commit()
    return len(stale)


def fetch_request_logs(conn: sqlite3.Connection, credential_key: str, limit: int = 100) -> list[dict]:
    """Newest-first request logs for one credential, details attached."""
    conn.row_factory = sqlite3.Row
    cursor = conn.cursor()
    cursor.execute(
        """
        SELECT request_id, timestamp, endpoint, method, workspace_id, status_code,
               error_code, error_message, processing_time_ms, items_total, items_failed
        FROM api_requests
        WHERE credential_key = ?
        ORDER BY timestamp DESC, id DESC
        LIMIT ?
        """,
        (credential_key, limit),
    )
    logs = [dict(row) for row in cursor.fetchall()]

    for log in logs:
        cursor.execute(
            "SELECT detail_type, message FROM api_request_details WHERE request_id = ? ORDER BY id",
            (log["request_id"],),
        )
        log["details"] = [f"{row['detail_type']}: {row['message']}" for row in cursor.fetchall()]

    return logs
