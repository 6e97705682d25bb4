"""
Persistence collaborators for predictor state.

The ensemble only needs two hooks: upsert one predictor row (keyed by id)
and bulk-load all rows at startup. Stores are optional; an ensemble without
one starts from defaults and behaves identically.

InMemoryStore: dict of rows. Used in tests and short-lived processes.
SQLiteStore:   a single `predictors` table, upserted on conflict.
"""

import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

from .types import PredictorStats


class StateStore(ABC):
    """Where predictor rows live between processes."""

    @abstractmethod
    def upsert(self, stats: PredictorStats) -> None:
        """Insert or replace the row for stats.id."""

    @abstractmethod
    def load_all(self) -> List[PredictorStats]:
        """Every stored row."""

    def close(self) -> None:
        pass


class InMemoryStore(StateStore):
    """Rows kept in a dict keyed by predictor id."""

    def __init__(self):
        self.rows: Dict[str, PredictorStats] = {}
        self.writes: int = 0
        self._lock = threading.Lock()

    def upsert(self, stats: PredictorStats) -> None:
        with self._lock:
            self.rows[stats.id] = PredictorStats(**stats.to_dict())
            self.writes += 1

    def load_all(self) -> List[PredictorStats]:
        with self._lock:
            return [PredictorStats(**s.to_dict()) for s in self.rows.values()]

    def get(self, predictor_id: str) -> Optional[PredictorStats]:
        with self._lock:
            return self.rows.get(predictor_id)


class SQLiteStore(StateStore):
    """SQLite-backed predictor table."""

    SCHEMA = """
    CREATE TABLE IF NOT EXISTS predictors (
        id TEXT PRIMARY KEY,
        name TEXT,
        weight REAL NOT NULL,
        wins INTEGER DEFAULT 0,
        losses INTEGER DEFAULT 0,
        ema_accuracy REAL DEFAULT 0.5,
        updated_at REAL
    );
    """

    UPSERT = """
    INSERT INTO predictors (id, name, weight, wins, losses, ema_accuracy, updated_at)
    VALUES (?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT(id) DO UPDATE SET
        name = excluded.name,
        weight = excluded.weight,
        wins = excluded.wins,
        losses = excluded.losses,
        ema_accuracy = excluded.ema_accuracy,
        updated_at = excluded.updated_at
    """

    def __init__(self, db_path: str):
        self._db_path = db_path
        self._lock = threading.Lock()
        self._conn: Optional[sqlite3.Connection] = None
        self._init_db()

    def _init_db(self) -> None:
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        # The notification worker writes from its own thread
        self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(self.SCHEMA)
        self._conn.commit()

    def upsert(self, stats: PredictorStats) -> None:
        with self._lock:
            self._conn.execute(
                self.UPSERT,
                (
                    stats.id,
                    stats.name,
                    stats.weight,
                    stats.wins,
                    stats.losses,
                    stats.ema_accuracy,
                    time.time(),
                ),
            )
            self._conn.commit()

    def load_all(self) -> List[PredictorStats]:
        with self._lock:
            cursor = self._conn.execute(
                "SELECT id, name, weight, wins, losses, ema_accuracy FROM predictors"
            )
            rows = cursor.fetchall()
        return [PredictorStats.from_mapping(dict(row)) for row in rows]

    def close(self) -> None:
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None
