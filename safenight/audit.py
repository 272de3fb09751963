"""Append-only, tamper-evident log of SOS events.

The default backend is a hash chain in SQLite: each row's hash covers the
previous row's hash plus its own canonical JSON, and the signature is an HMAC
of that hash. Rewriting any row breaks every later link. A distributed-ledger
backend can replace it by implementing ``AuditLog``.
"""

from __future__ import annotations

import abc
import asyncio
import hashlib
import hmac
import json
import logging
import sqlite3
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

GENESIS_HASH = "0" * 64


@dataclass(frozen=True)
class AuditReceipt:
    hash: str
    signature: str
    timestamp: datetime
    slot: int


@dataclass(frozen=True)
class Verification:
    verified: bool
    event: dict[str, Any] | None = None


@dataclass(frozen=True)
class ChainCheck:
    ok: bool
    length: int
    broken_slot: int | None = None


def canonical_json(data: Any) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=True)


def chain_hash(prev_hash: str, slot: int, logged_at: str, payload_json: str) -> str:
    material = f"{prev_hash}|{slot}|{logged_at}|{payload_json}"
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


def format_receipt(receipt: AuditReceipt) -> str:
    """Short human-readable receipt for display next to an SOS event."""
    return "\n".join(
        [
            f"Hash: {receipt.hash[:8]}...{receipt.hash[-8:]}",
            f"Signature: {receipt.signature[:8]}...{receipt.signature[-8:]}",
            f"Slot: {receipt.slot:,}",
            f"Time: {receipt.timestamp.isoformat(timespec='seconds')}",
        ]
    )


class AuditLog(abc.ABC):
    """Append-only audit backend. There is deliberately no update or delete."""

    @abc.abstractmethod
    async def append(self, event) -> AuditReceipt:
        """Record ``event.audit_payload()`` and return its receipt."""

    @abc.abstractmethod
    async def verify(self, signature: str) -> Verification:
        """Look up a signature; unknown signatures give ``verified=False``."""


class SQLiteAuditLog(AuditLog):
    def __init__(self, db_path: str, key: bytes):
        if not key:
            raise ValueError("audit signing key must not be empty")
        self.db_path = db_path
        self._key = key
        self._write_lock = threading.Lock()
        self.init_db()

    def init_db(self) -> None:
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS audit_log (
                    slot INTEGER PRIMARY KEY,
                    logged_at TEXT NOT NULL,
                    event_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    payload_json TEXT NOT NULL,
                    prev_hash TEXT NOT NULL,
                    hash TEXT NOT NULL UNIQUE,
                    signature TEXT NOT NULL UNIQUE
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_audit_log_user_id ON audit_log(user_id)")
            conn.execute(
                """
                CREATE TRIGGER IF NOT EXISTS audit_log_no_update
                BEFORE UPDATE ON audit_log
                BEGIN SELECT RAISE(ABORT, 'audit log is append-only'); END
                """
            )
            conn.execute(
                """
                CREATE TRIGGER IF NOT EXISTS audit_log_no_delete
                BEFORE DELETE ON audit_log
                BEGIN SELECT RAISE(ABORT, 'audit log is append-only'); END
                """
            )
            conn.commit()

    def _sign(self, digest: str) -> str:
        return hmac.new(self._key, digest.encode("utf-8"), hashlib.sha256).hexdigest()

    def _append_sync(self, payload: dict[str, Any]) -> AuditReceipt:
        payload_json = canonical_json(payload)
        now = datetime.now(timezone.utc)
        logged_at = now.isoformat()
        with self._write_lock, sqlite3.connect(self.db_path) as conn:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute("SELECT slot, hash FROM audit_log ORDER BY slot DESC LIMIT 1").fetchone()
            prev_slot, prev_hash = row if row else (0, GENESIS_HASH)
            slot = prev_slot + 1
            digest = chain_hash(prev_hash, slot, logged_at, payload_json)
            signature = self._sign(digest)
            conn.execute(
                """
                INSERT INTO audit_log (slot, logged_at, event_id, user_id, payload_json, prev_hash, hash, signature)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    slot,
                    logged_at,
                    str(payload.get("id", "")),
                    str(payload.get("user_id", "")),
                    payload_json,
                    prev_hash,
                    digest,
                    signature,
                ),
            )
            conn.commit()
        return AuditReceipt(hash=digest, signature=signature, timestamp=now, slot=slot)

    async def append(self, event) -> AuditReceipt:
        receipt = await asyncio.to_thread(self._append_sync, event.audit_payload())
        logger.info("Audit entry %d written", receipt.slot)
        return receipt

    def _row_intact(self, row: sqlite3.Row) -> bool:
        digest = chain_hash(row["prev_hash"], row["slot"], row["logged_at"], row["payload_json"])
        return digest == row["hash"] and hmac.compare_digest(self._sign(digest), row["signature"])

    def _verify_sync(self, signature: str) -> Verification:
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            row = conn.execute("SELECT * FROM audit_log WHERE signature = ?", (signature,)).fetchone()
        if row is None:
            return Verification(False)
        if not self._row_intact(row):
            logger.warning("Audit entry %d failed integrity check", row["slot"])
            return Verification(False)
        try:
            data = json.loads(row["payload_json"])
        except json.JSONDecodeError:
            return Verification(False)
        return Verification(
            True,
            {"type": "SOS_EVENT", "timestamp": row["logged_at"], "slot": row["slot"], "data": data},
        )

    async def verify(self, signature: str) -> Verification:
        if not signature:
            return Verification(False)
        return await asyncio.to_thread(self._verify_sync, signature)

    def verify_chain(self) -> ChainCheck:
        """Walk every entry; report the first slot whose link or signature is wrong."""
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            rows = conn.execute("SELECT * FROM audit_log ORDER BY slot ASC").fetchall()

        prev_hash = GENESIS_HASH
        for expected_slot, row in enumerate(rows, start=1):
            if row["slot"] != expected_slot or row["prev_hash"] != prev_hash or not self._row_intact(row):
                return ChainCheck(False, len(rows), row["slot"])
            prev_hash = row["hash"]
        return ChainCheck(True, len(rows))

    def history(self, user_id: str, limit: int = 50) -> list[dict[str, Any]]:
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            rows = conn.execute(
                """
                SELECT slot, logged_at, hash, signature, payload_json
                FROM audit_log
                WHERE user_id = ?
                ORDER BY slot DESC
                LIMIT ?
                """,
                (user_id, max(1, min(limit, 200))),
            ).fetchall()

        out: list[dict[str, Any]] = []
        for row in rows:
            try:
                data = json.loads(row["payload_json"] or "{}")
            except json.JSONDecodeError:
                data = {}
            out.append(
                {
                    "slot": row["slot"],
                    "logged_at": row["logged_at"],
                    "hash": row["hash"],
                    "signature": row["signature"],
                    "event": data,
                }
            )
        return out
