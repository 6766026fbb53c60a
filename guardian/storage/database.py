"""SQLite persistence for the whitelist and scan history."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Iterable, Optional

import aiosqlite

from ..analyzer.models import RiskAssessment
from ..errors import PersistenceError

logger = logging.getLogger(__name__)


class Database:
    """Async SQLite database for Guardian state."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._connection: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def connect(self):
        """Establish database connection and create tables."""
        try:
            self._connection = await aiosqlite.connect(self.db_path)
        except Exception as exc:
            raise PersistenceError(f"Cannot open database {self.db_path}: {exc}") from exc
        self._connection.row_factory = aiosqlite.Row
        # Best-effort because some SQLite builds/settings may reject these pragmas.
        try:
            await self._connection.execute("PRAGMA journal_mode=WAL")
            await self._connection.execute("PRAGMA synchronous=NORMAL")
            await self._connection.execute("PRAGMA busy_timeout=5000")
            await self._connection.commit()
        except Exception:
            pass
        await self._create_tables()

    async def close(self):
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    def _require_connection(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise PersistenceError("Database is not connected")
        return self._connection

    async def _create_tables(self):
        """Create database tables if they don't exist."""
        async with self._lock:
            await self._connection.executescript(
                """
                    CREATE TABLE IF NOT EXISTS whitelist (
                        domain TEXT PRIMARY KEY,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    );

                    CREATE TABLE IF NOT EXISTS scan_history (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        url TEXT NOT NULL,
                        domain TEXT,
                        risk_score INTEGER DEFAULT 0,
                        risk_level TEXT,
                        threats TEXT,
                        timestamp TEXT,
                        scan_type TEXT,
                        store TEXT DEFAULT 'background'
                    );

                    CREATE INDEX IF NOT EXISTS idx_scan_history_store ON scan_history(store, id);
                """
            )
            await self._connection.commit()

    async def load_whitelist(self) -> set[str]:
        """Return all whitelisted domains."""
        async with self._lock:
            conn = self._require_connection()
            try:
                cursor = await conn.execute("SELECT domain FROM whitelist")
                rows = await cursor.fetchall()
            except aiosqlite.Error as exc:
                raise PersistenceError(f"Failed to load whitelist: {exc}") from exc
            return {row["domain"] for row in rows}

    async def save_whitelist(self, domains: Iterable[str]) -> None:
        """Replace the stored whitelist."""
        async with self._lock:
            conn = self._require_connection()
            try:
                await conn.execute("DELETE FROM whitelist")
                await conn.executemany(
                    "INSERT OR IGNORE INTO whitelist (domain) VALUES (?)",
                    [(d,) for d in sorted(set(domains)) if d],
                )
                await conn.commit()
            except aiosqlite.Error as exc:
                raise PersistenceError(f"Failed to save whitelist: {exc}") from exc

    async def load_history(self, store: str = "background", limit: int = 1000) -> list[RiskAssessment]:
        """Return stored assessments for a history store, newest first."""
        async with self._lock:
            conn = self._require_connection()
            try:
                cursor = await conn.execute(
                    """
                    SELECT * FROM scan_history
                    WHERE store = ?
                    ORDER BY id ASC
                    LIMIT ?
                    """,
                    (store, limit),
                )
                rows = await cursor.fetchall()
            except aiosqlite.Error as exc:
                raise PersistenceError(f"Failed to load history: {exc}") from exc

        entries = []
        for row in rows:
            try:
                threats = json.loads(row["threats"] or "[]")
            except (TypeError, ValueError):
                threats = []
            entries.append(
                RiskAssessment.from_dict(
                    {
                        "url": row["url"],
                        "domain": row["domain"],
                        "riskScore": row["risk_score"],
                        "riskLevel": row["risk_level"],
                        "threats": threats,
                        "timestamp": row["timestamp"],
                        "scanType": row["scan_type"],
                    }
                )
            )
        return entries

    async def replace_history(self, store: str, entries: Iterable[RiskAssessment]) -> None:
        """Overwrite a history store with entries given newest first."""
        rows = [
            (
                e.url,
                e.domain,
                e.risk_score,
                str(e.risk_level),
                json.dumps(list(e.threats)),
                e.timestamp.isoformat(),
                e.scan_type.value,
                store,
            )
            for e in entries
        ]
        async with self._lock:
            conn = self._require_connection()
            try:
                await conn.execute("DELETE FROM scan_history WHERE store = ?", (store,))
                await conn.executemany(
                    """
                    INSERT INTO scan_history
                        (url, domain, risk_score, risk_level, threats, timestamp, scan_type, store)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    rows,
                )
                await conn.commit()
            except aiosqlite.Error as exc:
                raise PersistenceError(f"Failed to save history: {exc}") from exc
