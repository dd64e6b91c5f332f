"""
Persist scan results to SQLite: incidents, per-log summaries, failures and
the configuration used. Loading restores them without re-parsing any log.
"""

import json
import pickle
import sqlite3
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..config import ScanConfig
from ..events import LogSource
from ..log_processor import FileFailure, ScanResult

# Schema version for future migrations
SCHEMA_VERSION = 1


def _default_db_path() -> Path:
    """Default path for the scans database (user's home)."""
    base = Path.home() / ".evlog_anomaly"
    base.mkdir(parents=True, exist_ok=True)
    return base / "sessions.db"


def _connect(db_path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def _init_schema(conn: sqlite3.Connection) -> None:
    conn.executescript("""
        CREATE TABLE IF NOT EXISTS scans (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            roots TEXT,
            created_at TEXT NOT NULL,
            version INTEGER NOT NULL DEFAULT 1
        );
        CREATE TABLE IF NOT EXISTS scan_data (
            scan_id INTEGER NOT NULL REFERENCES scans(id) ON DELETE CASCADE,
            key TEXT NOT NULL,
            value BLOB,
            value_text TEXT,
            PRIMARY KEY (scan_id, key)
        );
        CREATE INDEX IF NOT EXISTS idx_scan_data_scan_id ON scan_data(scan_id);
    """)


def create_scan(
    db_path: Path | None = None,
    name: str | None = None,
    roots: list[str] | None = None,
) -> int:
    """Create a new scan row and return its id."""
    db_path = db_path or _default_db_path()
    conn = _connect(db_path)
    try:
        _init_schema(conn)
        now = datetime.now(timezone.utc).isoformat()
        roots = roots or []
        name = name or (Path(roots[0]).name if roots else "Scan")
        cur = conn.execute(
            "INSERT INTO scans (name, roots, created_at, version) VALUES (?, ?, ?, ?)",
            (name, json.dumps(roots), now, SCHEMA_VERSION),
        )
        conn.commit()
        return cur.lastrowid
    finally:
        conn.close()


def save_scan(
    scan_id: int,
    result: ScanResult,
    config: ScanConfig | None = None,
    db_path: Path | None = None,
) -> None:
    """Store a ScanResult under an existing scan id (overwrites previous data)."""
    db_path = db_path or _default_db_path()
    conn = _connect(db_path)
    try:
        _init_schema(conn)

        def put(key: str, blob: bytes | None = None, text: str | None = None) -> None:
            conn.execute(
                "INSERT OR REPLACE INTO scan_data (scan_id, key, value, value_text) VALUES (?, ?, ?, ?)",
                (scan_id, key, blob, text),
            )

        # Incidents and per-log pairs: pickle (nested dataclasses)
        put("collections", blob=pickle.dumps(result.collections, protocol=pickle.HIGHEST_PROTOCOL))
        put("logs", blob=pickle.dumps(result.logs, protocol=pickle.HIGHEST_PROTOCOL))
        put("failures", text=json.dumps([asdict(f) for f in result.failures]))
        if config is not None:
            put("config", text=json.dumps(asdict(config)))
        conn.commit()
    finally:
        conn.close()


def load_scan(scan_id: int, db_path: Path | None = None) -> dict[str, Any]:
    """Load a stored scan. Returns {"name", "roots", "created_at", "result", "config"}."""
    db_path = db_path or _default_db_path()
    conn = _connect(db_path)
    try:
        _init_schema(conn)
        row = conn.execute("SELECT name, roots, created_at FROM scans WHERE id = ?", (scan_id,)).fetchone()
        if not row:
            raise FileNotFoundError(f"Scan id {scan_id} not found")

        rows = conn.execute("SELECT key, value, value_text FROM scan_data WHERE scan_id = ?", (scan_id,)).fetchall()
        data = {r["key"]: (r["value"], r["value_text"]) for r in rows}

        def get_blob(key: str) -> Any:
            blob, _ = data.get(key, (None, None))
            if blob is None:
                return None
            return pickle.loads(blob)

        def get_text(key: str) -> str | None:
            _, text = data.get(key, (None, None))
            return text

        raw_failures = get_text("failures")
        failures = [
            FileFailure(LogSource(**f["source"]), f["error_type"], f["message"])
            for f in (json.loads(raw_failures) if raw_failures else [])
        ]
        result = ScanResult(
            collections=get_blob("collections") or [],
            logs=get_blob("logs") or [],
            failures=failures,
        )
        raw_config = get_text("config")
        return {
            "name": row["name"],
            "roots": json.loads(row["roots"]) if row["roots"] else [],
            "created_at": row["created_at"],
            "result": result,
            "config": ScanConfig(**json.loads(raw_config)) if raw_config else None,
        }
    finally:
        conn.close()


def list_scans(db_path: Path | None = None) -> list[tuple[int, str, list[str], str]]:
    """Return list of (id, name, roots, created_at), newest first."""
    db_path = db_path or _default_db_path()
    if not db_path.is_file():
        return []
    conn = _connect(db_path)
    try:
        _init_schema(conn)
        rows = conn.execute(
            "SELECT id, name, roots, created_at FROM scans ORDER BY created_at DESC, id DESC"
        ).fetchall()
        return [(r["id"], r["name"], json.loads(r["roots"] or "[]"), r["created_at"]) for r in rows]
    finally:
        conn.close()


def delete_scan(scan_id: int, db_path: Path | None = None) -> bool:
    """Remove a scan and its data. Returns False if no scan has that id."""
    db_path = db_path or _default_db_path()
    conn = _connect(db_path)
    try:
        _init_schema(conn)
        cur = conn.execute("DELETE FROM scans WHERE id = ?", (scan_id,))
        conn.commit()
        return cur.rowcount > 0
    finally:
        conn.close()
