from __future__ import annotations

import json
import sqlite3
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Set

from carrier_ingest.normalize import parse_timestamp, utc_now
from carrier_ingest.schema.records import EntityRecord, SafetyRatingEvent, normalize_record


def _iso(value) -> Optional[str]:
    parsed = parse_timestamp(value)
    if parsed is None:
        return None
    return parsed.replace(microsecond=0).isoformat()


class EntityStore(ABC):
    """Whole-record persistence; per-entity last write wins, rating log append-only."""

    @abstractmethod
    def upsert_entity(self, record: EntityRecord, synced_at=None) -> None:
        raise NotImplementedError

    @abstractmethod
    def append_rating_event(self, event: SafetyRatingEvent) -> None:
        raise NotImplementedError

    @abstractmethod
    def get_entity(self, external_id: str) -> Optional[EntityRecord]:
        raise NotImplementedError

    @abstractmethod
    def list_stale_entities(
        self, threshold_age: timedelta, limit: int, now: Optional[datetime] = None
    ) -> List[str]:
        raise NotImplementedError

    @abstractmethod
    def list_rating_events(self, external_id: str) -> List[SafetyRatingEvent]:
        raise NotImplementedError

    @abstractmethod
    def list_unsynced_entities(self, limit: int) -> List[str]:
        raise NotImplementedError

    @abstractmethod
    def known_ids(self) -> Set[str]:
        raise NotImplementedError

    @abstractmethod
    def last_synced_at(self, external_id: str) -> Optional[str]:
        raise NotImplementedError

    def max_external_id(self) -> Optional[int]:
        ids = [int(value) for value in self.known_ids() if str(value).isdigit()]
        return max(ids) if ids else None

    def list_entities(self) -> List[EntityRecord]:
        records = [self.get_entity(external_id) for external_id in self.known_ids()]
        return sorted(
            (r for r in records if r is not None), key=lambda r: int(r.external_id)
        )

    def close(self) -> None:
        return None


class MemoryStore(EntityStore):
    def __init__(self):
        self._records: Dict[str, str] = {}
        self._synced: Dict[str, Optional[str]] = {}
        self._events: Dict[str, List[SafetyRatingEvent]] = {}

    def upsert_entity(self, record, synced_at=None):
        # Stored as JSON; every read returns a fresh record.
        self._records[record.external_id] = record.to_json()
        self._synced[record.external_id] = _iso(synced_at)

    def append_rating_event(self, event):
        self._events.setdefault(event.entity_id, []).append(event)

    def get_entity(self, external_id):
        raw = self._records.get(str(external_id))
        if raw is None:
            return None
        return normalize_record(json.loads(raw))

    def list_stale_entities(self, threshold_age, limit, now=None):
        cutoff = (parse_timestamp(now) or utc_now()) - threshold_age
        rows = []
        for external_id, synced in self._synced.items():
            synced_at = parse_timestamp(synced)
            if synced_at is not None and synced_at < cutoff:
                rows.append((synced_at, int(external_id), external_id))
        rows.sort()
        return [external_id for _, _, external_id in rows[: max(0, limit)]]

    def list_rating_events(self, external_id):
        return list(self._events.get(str(external_id), []))

    def list_unsynced_entities(self, limit):
        ids = sorted(
            (k for k, v in self._synced.items() if v is None), key=lambda k: int(k)
        )
        return ids[: max(0, limit)]

    def known_ids(self):
        return set(self._records)

    def last_synced_at(self, external_id):
        return self._synced.get(str(external_id))


class SQLiteStore(EntityStore):
    def __init__(self, path: str):
        self.path = Path(path)
        if str(path) != ":memory:":
            self.path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._init_schema()

    def _init_schema(self) -> None:
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS entities (
                external_id TEXT PRIMARY KEY,
                legal_name TEXT NOT NULL,
                is_carrier_entity INTEGER NOT NULL,
                safety_rating TEXT,
                insurance_expiry_date TEXT,
                record_json TEXT NOT NULL,
                synced_at TEXT
            )
            """
        )
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS safety_rating_events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                entity_id TEXT NOT NULL,
                old_rating TEXT,
                new_rating TEXT NOT NULL,
                change_date TEXT NOT NULL,
                source TEXT
            )
            """
        )
        self.conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_entities_synced_at ON entities(synced_at)"
        )
        self.conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_rating_events_entity ON safety_rating_events(entity_id, change_date)"
        )
        self.conn.commit()

    def upsert_entity(self, record, synced_at=None):
        with self._lock:
            self.conn.execute(
                """
                INSERT INTO entities (
                    external_id, legal_name, is_carrier_entity, safety_rating,
                    insurance_expiry_date, record_json, synced_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(external_id) DO UPDATE SET
                    legal_name = excluded.legal_name,
                    is_carrier_entity = excluded.is_carrier_entity,
                    safety_rating = excluded.safety_rating,
                    insurance_expiry_date = excluded.insurance_expiry_date,
                    record_json = excluded.record_json,
                    synced_at = excluded.synced_at
                """,
                (
                    record.external_id,
                    record.legal_name,
                    1 if record.is_carrier_entity else 0,
                    record.safety_rating,
                    record.insurance_expiry_date,
                    record.to_json(),
                    _iso(synced_at),
                ),
            )
            self.conn.commit()

    def append_rating_event(self, event):
        with self._lock:
            self.conn.execute(
                """
                INSERT INTO safety_rating_events (entity_id, old_rating, new_rating, change_date, source)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    event.entity_id,
                    event.old_rating,
                    event.new_rating,
                    event.change_date,
                    event.source,
                ),
            )
            self.conn.commit()

    def get_entity(self, external_id):
        row = self.conn.execute(
            "SELECT record_json FROM entities WHERE external_id = ?",
            (str(external_id),),
        ).fetchone()
        if row is None:
            return None
        return normalize_record(json.loads(row["record_json"]))

    def list_stale_entities(self, threshold_age, limit, now=None):
        cutoff = _iso((parse_timestamp(now) or utc_now()) - threshold_age)
        rows = self.conn.execute(
            """
            SELECT external_id FROM entities
            WHERE synced_at IS NOT NULL AND synced_at < ?
            ORDER BY synced_at ASC, CAST(external_id AS INTEGER) ASC
            LIMIT ?
            """,
            (cutoff, max(0, int(limit))),
        ).fetchall()
        return [row["external_id"] for row in rows]

    def list_rating_events(self, external_id):
        rows = self.conn.execute(
            """
            SELECT entity_id, old_rating, new_rating, change_date, source
            FROM safety_rating_events
            WHERE entity_id = ?
            ORDER BY change_date ASC, id ASC
            """,
            (str(external_id),),
        ).fetchall()
        return [SafetyRatingEvent(**dict(row)) for row in rows]

    def list_unsynced_entities(self, limit):
        rows = self.conn.execute(
            """
            SELECT external_id FROM entities
            WHERE synced_at IS NULL
            ORDER BY CAST(external_id AS INTEGER) ASC
            LIMIT ?
            """,
            (max(0, int(limit)),),
        ).fetchall()
        return [row["external_id"] for row in rows]

    def known_ids(self):
        rows = self.conn.execute("SELECT external_id FROM entities").fetchall()
        return {row["external_id"] for row in rows}

    def max_external_id(self):
        row = self.conn.execute(
            "SELECT MAX(CAST(external_id AS INTEGER)) AS top FROM entities"
        ).fetchone()
        return row["top"] if row and row["top"] is not None else None

    def last_synced_at(self, external_id):
        row = self.conn.execute(
            "SELECT synced_at FROM entities WHERE external_id = ?",
            (str(external_id),),
        ).fetchone()
        return row["synced_at"] if row else None

    def close(self) -> None:
        self.conn.close()
