"""
Voice Evals - Storage Layer

Session evaluations and golden samples are persisted as JSON arrays under
namespaced keys in a small key-value store. Keeping the array layout means
records written by the browser console load unchanged.

Two backends:
  - SqliteKeyValueStore: local SQLite database (one kv_store table)
  - MemoryKeyValueStore: process-local dict, for tests and demos

Database location: ~/.voice_evals/store.db (configurable via VOICE_EVALS_DB_PATH)
"""

import json
import logging
import os
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from voice_evals.models import (
    CorrectionRecord,
    FieldCapture,
    SessionEvaluation,
    normalize_field_key,
)

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path.home() / ".voice_evals" / "store.db"

SESSIONS_KEY = "ghl-master-sessions"
GOLDEN_DATASET_KEY = "ghl-voice-ai-golden-dataset"

DEFAULT_MAX_SESSIONS = 50


def get_db_path() -> str:
    path = os.environ.get("VOICE_EVALS_DB_PATH", str(DEFAULT_DB_PATH))
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    return path


@contextmanager
def get_connection(db_path: Optional[str] = None):
    """Context manager for SQLite connections with WAL mode for concurrent reads."""
    conn = sqlite3.connect(db_path or get_db_path())
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


# ─── Key-value backends ───────────────────────────────────────────────────────


class KeyValueStore(ABC):
    """String values under string keys"""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass

    def describe(self) -> Dict[str, Any]:
        return {"backend": self.__class__.__name__}

    def load_list(self, key: str) -> List[Dict[str, Any]]:
        """
        Read the JSON array stored under key.

        A missing key, a corrupted value or a value that is not an array
        all read as an empty list. Elements that are not objects are dropped.
        """
        raw = self.get(key)
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.error(f"Corrupted value under {key}, treating as empty: {e}")
            return []
        if not isinstance(data, list):
            logger.error(f"Value under {key} is not a list, treating as empty")
            return []
        records = [item for item in data if isinstance(item, dict)]
        if len(records) != len(data):
            logger.error(f"Dropped {len(data) - len(records)} non-object entries under {key}")
        return records

    def save_list(self, key: str, items: List[Dict[str, Any]]) -> None:
        self.set(key, json.dumps(items))


class MemoryKeyValueStore(KeyValueStore):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data = dict(initial or {})

    def get(self, key):
        return self._data.get(key)

    def set(self, key, value):
        self._data[key] = value

    def delete(self, key):
        self._data.pop(key, None)


class SqliteKeyValueStore(KeyValueStore):
    """
    Key-value table in a SQLite database.

    Usage:
        kv = SqliteKeyValueStore()  # uses VOICE_EVALS_DB_PATH
        sessions = SessionStore(kv)
    """

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or get_db_path()
        self.init_db()

    def init_db(self):
        """Create tables if they don't exist."""
        with get_connection(self.db_path) as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );
            """)
        logger.info(f"Database initialized at {self.db_path}")

    def get(self, key):
        with get_connection(self.db_path) as conn:
            row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set(self, key, value):
        now = datetime.utcnow().isoformat()
        with get_connection(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, value, now),
            )

    def delete(self, key):
        with get_connection(self.db_path) as conn:
            conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))

    def describe(self):
        return {"backend": self.__class__.__name__, "db_path": self.db_path}


# ─── Sessions ─────────────────────────────────────────────────────────────────


def _now_ms() -> int:
    return int(time.time() * 1000)


class SessionStore:
    """
    Session evaluations keyed by conversation id, newest first.

    Every read-modify-write runs under one re-entrant lock so a manual
    correction can't race a re-evaluation of the same conversation.

    Usage:
        store = SessionStore(SqliteKeyValueStore(), max_sessions=50)
        store.save_session(evaluation)
        store.apply_manual_corrections("conv-1", fields={"email": "a@b.co"})
    """

    def __init__(self, kv: KeyValueStore, max_sessions: int = DEFAULT_MAX_SESSIONS):
        if max_sessions < 1:
            raise ValueError("max_sessions must be at least 1")
        self.kv = kv
        self.max_sessions = max_sessions
        self._lock = threading.RLock()

    def _load(self) -> List[Dict[str, Any]]:
        return self.kv.load_list(SESSIONS_KEY)

    def _save(self, records: List[Dict[str, Any]]) -> None:
        self.kv.save_list(SESSIONS_KEY, records)

    def save_session(self, session: SessionEvaluation) -> SessionEvaluation:
        """Upsert by conversation id; the saved session moves to the front."""
        with self._lock:
            records = [
                r for r in self._load()
                if r.get("conversationId") != session.conversation_id
            ]
            records.insert(0, session.to_dict())
            evicted = len(records) - self.max_sessions
            if evicted > 0:
                logger.info(f"Session cap {self.max_sessions} reached, evicting {evicted} oldest")
                records = records[:self.max_sessions]
            self._save(records)

        logger.info(f"Saved session {session.conversation_id} (confidence {session.confidence})")
        return session

    def get_session(self, conversation_id: str) -> Optional[SessionEvaluation]:
        for record in self._load():
            if record.get("conversationId") == conversation_id:
                return SessionEvaluation.from_dict(record)
        return None

    def list_sessions(
        self,
        agent_id: Optional[str] = None,
        niche: Optional[str] = None,
    ) -> List[SessionEvaluation]:
        """Stored sessions, newest first, optionally filtered."""
        out = []
        for record in self._load():
            if agent_id and record.get("agentId") != agent_id:
                continue
            if niche and record.get("niche") != niche:
                continue
            try:
                out.append(SessionEvaluation.from_dict(record))
            except (KeyError, ValueError) as e:
                logger.warning(f"Skipping unreadable session record: {e}")
        return out

    def apply_manual_corrections(
        self,
        conversation_id: str,
        fields: Optional[Dict[str, str]] = None,
        turn_id: Optional[str] = None,
        corrected_response: Optional[str] = None,
        source: str = "manual",
        reason: Optional[str] = None,
    ) -> Optional[SessionEvaluation]:
        """
        Record a correction against a stored session.

        Field overrides replace any earlier manual capture of the same key
        and are stored as manual captures, which win over detected ones.
        A turn correction is appended as an audit record; the transcript
        itself is left as it was.

        Returns:
            The updated session, or None when the conversation id is unknown
        """
        with self._lock:
            records = self._load()
            index = next(
                (i for i, r in enumerate(records) if r.get("conversationId") == conversation_id),
                None,
            )
            if index is None:
                logger.warning(f"Cannot apply correction: unknown conversation {conversation_id}")
                return None

            session = SessionEvaluation.from_dict(records[index])

            for raw_key, value in (fields or {}).items():
                key = normalize_field_key(raw_key)
                session.collected_fields = [
                    c for c in session.collected_fields
                    if not (c.key == key and c.source == "manual")
                ]
                session.collected_fields.append(FieldCapture(
                    key=key,
                    value=str(value),
                    turn_id=turn_id or "manual",
                    valid=True,
                    source="manual",
                ))

            if turn_id and corrected_response is not None:
                original = next(
                    (t.text for t in (session.transcript or []) if t.id == turn_id),
                    "Unknown question",
                )
                session.corrections.append(CorrectionRecord(
                    turn_id=turn_id,
                    corrected_response=corrected_response,
                    original_turn_text=original,
                    applied_at=_now_ms(),
                    source=source,
                    reason=reason,
                ))

            session.corrections_applied += 1
            records[index] = session.to_dict()
            self._save(records)

        logger.info(
            f"Applied {source} correction to {conversation_id} "
            f"(corrections applied: {session.corrections_applied})"
        )
        return session

    def clear_sessions(self) -> None:
        with self._lock:
            self.kv.delete(SESSIONS_KEY)
        logger.info("Cleared all sessions")

    def export_sessions(self) -> str:
        """All stored sessions as a JSON document"""
        return json.dumps(self._load(), indent=2)

    def import_sessions(self, payload: str) -> int:
        """
        Merge sessions from an exported JSON document.

        Imported records replace stored ones with the same conversation id.
        Returns the number of sessions imported.
        """
        data = json.loads(payload)
        if not isinstance(data, list):
            raise ValueError("Session export must be a JSON array")

        imported = [SessionEvaluation.from_dict(r).to_dict() for r in data]
        ids = {r["conversationId"] for r in imported}

        with self._lock:
            kept = [r for r in self._load() if r.get("conversationId") not in ids]
            self._save((imported + kept)[:self.max_sessions])

        logger.info(f"Imported {len(imported)} sessions")
        return len(imported)
