"""Tamper-evident append-only audit ledger for HSP.

Each entry commits to its predecessor:
- previous_hash: hash of the prior entry (None for the first entry)
- hash: SHA256 of canonical JSON over every other field of the entry

Appends are serialized by a per-ledger lock, so concurrent writers still
produce one linear chain. The ledger lives in memory and belongs to whoever
constructs it; export_jsonl/from_jsonl let an exported copy be verified
offline.

Note: a chain that was forged end-to-end (every hash recomputed) still
verifies. Ship exports to a store the agent host cannot write to.
"""

from __future__ import annotations

import json
import logging
import threading
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from jsonschema import Draft202012Validator

from . import metrics
from .clock import Clock, IdSource, SystemClock, UuidIdSource
from .crypto import canonical_json_dumps, sha256_hex
from .errors import HSPError, hsp_error, HSP_E_LEDGER_RECORD_INVALID
from .types import AuditEntry, AuditEventType

logger = logging.getLogger("hsp_core.ledger")

SCHEMA_PATH = Path(__file__).resolve().parent / "schemas" / "audit_entry.schema.json"


@lru_cache(maxsize=1)
def _entry_validator() -> Draft202012Validator:
    with SCHEMA_PATH.open("r", encoding="utf-8") as f:
        schema = json.load(f)
    Draft202012Validator.check_schema(schema)
    return Draft202012Validator(schema)


def compute_entry_hash(content: Dict[str, Any]) -> str:
    return sha256_hex(canonical_json_dumps(content).encode("utf-8"))


class AuditLedger:
    """Append-only hash-chained audit ledger."""

    def __init__(self, clock: Optional[Clock] = None, ids: Optional[IdSource] = None):
        self.clock = clock or SystemClock()
        self.ids = ids or UuidIdSource()
        self._entries: List[AuditEntry] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def last_hash(self) -> Optional[str]:
        with self._lock:
            return self._entries[-1].hash if self._entries else None

    def append(
        self,
        session_id: str,
        event_type: AuditEventType,
        actor_id: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> AuditEntry:
        """Append an event and return the created entry.

        Raises HSPError (HSP_E_CANON_*) if details cannot be canonicalized;
        the ledger is left untouched in that case.
        """
        with self._lock:
            previous_hash = self._entries[-1].hash if self._entries else None
            content = {
                "id": self.ids.new_id(),
                "session_id": session_id,
                "event_type": event_type.value,
                "timestamp": self.clock.now().isoformat(),
                "actor_id": actor_id,
                "details": details or {},
                "previous_hash": previous_hash,
            }
            canonical = canonical_json_dumps(content)
            # Store the canonical form so the entry is detached from caller
            # objects and re-hashes identically after export.
            stored = json.loads(canonical)
            stored["hash"] = sha256_hex(canonical.encode("utf-8"))
            entry = AuditEntry.from_dict(stored)
            self._entries.append(entry)

        metrics.record_audit_entry(event_type.value)
        return entry

    def entries(self) -> Tuple[AuditEntry, ...]:
        """Read-only snapshot; it does not follow later appends."""
        with self._lock:
            return tuple(self._entries)

    def verify_chain(self) -> Tuple[bool, List[str]]:
        """
        Check that every entry links to its predecessor.

        This detects broken links (removed, reordered or re-hashed entries)
        but not content edits that leave the stored hash alone; see
        recompute_and_verify for that.
        """
        return self._verify(self.entries(), recompute=False)

    def recompute_and_verify(self) -> Tuple[bool, List[str]]:
        """Check links and re-derive every entry hash from its content."""
        return self._verify(self.entries(), recompute=True)

    def verify_integrity(self) -> bool:
        ok, errors = self.recompute_and_verify()
        if not ok:
            metrics.record_integrity_failure()
            logger.warning("Audit ledger integrity check failed: %s", errors[0])
        return ok

    @staticmethod
    def _verify(entries: Tuple[AuditEntry, ...], *, recompute: bool) -> Tuple[bool, List[str]]:
        errors: List[str] = []
        if not entries:
            return True, errors

        if entries[0].previous_hash is not None:
            errors.append(f"Entry 0: first entry must not have previous_hash, got {entries[0].previous_hash[:16]}...")

        for i, entry in enumerate(entries):
            if i > 0:
                expected_prev = entries[i - 1].hash
                if entry.previous_hash != expected_prev:
                    errors.append(
                        f"Entry {i}: Chain broken. Expected previous_hash={expected_prev[:16]}..., "
                        f"got {str(entry.previous_hash)[:16]}..."
                    )
            if recompute:
                try:
                    expected = compute_entry_hash(entry.hashable_content())
                except HSPError as e:
                    errors.append(f"Entry {i}: content not canonicalizable ({e.code})")
                    continue
                if expected != entry.hash:
                    errors.append(f"Entry {i}: Hash mismatch. Stored {entry.hash[:16]}..., computed {expected[:16]}...")

        return len(errors) == 0, errors

    def export_jsonl(self, path: str) -> int:
        """Write the ledger as JSONL (one entry per line). Returns the entry count."""
        snapshot = self.entries()
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        with p.open("w", encoding="utf-8") as f:
            for entry in snapshot:
                f.write(json.dumps(entry.to_dict(), sort_keys=True, ensure_ascii=False) + "\n")
        return len(snapshot)

    @staticmethod
    def _read_records(path: Path) -> List[AuditEntry]:
        validator = _entry_validator()
        records: List[AuditEntry] = []
        with path.open("r", encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    rec = json.loads(line)
                except json.JSONDecodeError as e:
                    raise hsp_error(HSP_E_LEDGER_RECORD_INVALID, "record is not valid JSON", line=lineno, reason="PARSE_ERROR") from e
                errs = sorted(validator.iter_errors(rec), key=lambda err: list(err.path))
                if errs:
                    raise hsp_error(
                        HSP_E_LEDGER_RECORD_INVALID,
                        f"record fails schema: {errs[0].message}",
                        line=lineno,
                        reason="SCHEMA_INVALID",
                    )
                try:
                    records.append(AuditEntry.from_dict(rec))
                except ValueError as e:
                    raise hsp_error(HSP_E_LEDGER_RECORD_INVALID, f"record has invalid field: {e}", line=lineno, reason="PARSE_ERROR") from e
        return records

    @classmethod
    def from_jsonl(cls, path: str, clock: Optional[Clock] = None, ids: Optional[IdSource] = None) -> "AuditLedger":
        """Load an exported ledger without re-hashing anything."""
        ledger = cls(clock=clock, ids=ids)
        ledger._entries = cls._read_records(Path(path))
        return ledger

    @classmethod
    def verify_file(cls, path: str) -> Tuple[bool, str, int]:
        """Verify an exported ledger file. Returns (ok, reason, count)."""
        p = Path(path)
        if not p.exists():
            return True, "NO_FILE", 0
        try:
            records = cls._read_records(p)
        except HSPError as e:
            return False, str(e.details.get("reason", "PARSE_ERROR")), int(e.details.get("line", 0))

        ok_links, _ = cls._verify(tuple(records), recompute=False)
        if not ok_links:
            return False, "CHAIN_BROKEN", len(records)
        ok_all, _ = cls._verify(tuple(records), recompute=True)
        if not ok_all:
            return False, "HASH_MISMATCH", len(records)
        return True, "OK", len(records)
