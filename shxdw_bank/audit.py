"""
Audit Log Module

Hash-chained append-only journal of operator actions, with SHA-256 for
tamper detection. Writing is best effort: an audit failure is logged and
never propagates into the operation that triggered it.
"""

import hashlib
import json
import threading
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union
from enum import Enum

from .storage import StorageInterface, StorageRecord
from .logging_config import get_logger


class AuditAction(Enum):
    """Action tags written by the banking service"""
    CLIENT_CREATED = "client_created"
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_DELETED = "account_deleted"
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    TRANSFER = "transfer"
    USER_REGISTERED = "user_registered"
    BOOTSTRAP_ADMIN_CREATED = "bootstrap_admin_created"
    LOGIN = "login"
    PASSWORD_CHANGED = "password_changed"
    ACCESS_DENIED = "access_denied"


@dataclass
class AuditEntry(StorageRecord):
    """
    Immutable audit entry chained to its predecessor by hash
    """
    actor: str
    action: str
    details: str
    previous_hash: str
    current_hash: str

    @property
    def timestamp(self) -> datetime:
        return self.created_at

    def calculate_hash(self) -> str:
        """SHA-256 over every field except current_hash"""
        hash_data = {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'actor': self.actor,
            'action': self.action,
            'details': self.details,
            'previous_hash': self.previous_hash,
        }
        json_data = json.dumps(hash_data, sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(json_data.encode('utf-8')).hexdigest()

    def verify_hash(self) -> bool:
        return self.current_hash == self.calculate_hash()


class AuditLog:
    """
    Append-only audit journal
    """

    def __init__(self, storage: StorageInterface, table_name: str = "audit_entries",
                 enabled: bool = True):
        self.storage = storage
        self.table_name = table_name
        self.enabled = enabled
        self.logger = get_logger("shxdw.audit")
        self._lock = threading.Lock()
        self._last_hash = ""
        entries = self._load_entries()
        if entries:
            self._last_hash = entries[-1].current_hash

    def log(self, actor: str, action: Union[AuditAction, str], details: str = "") -> Optional[AuditEntry]:
        """
        Record an action. Never raises.

        Args:
            actor: Username of the operator who performed the action
            action: Action tag
            details: Free-text description

        Returns:
            The stored entry, or None if auditing is disabled or the write failed
        """
        if not self.enabled:
            return None

        action_tag = action.value if isinstance(action, AuditAction) else str(action)
        try:
            with self._lock:
                with self.storage.atomic():
                    now = datetime.now(timezone.utc)
                    entry = AuditEntry(
                        id=self.storage.next_id(self.table_name),
                        created_at=now,
                        updated_at=now,
                        actor=actor,
                        action=action_tag,
                        details=details,
                        previous_hash=self._last_hash,
                        current_hash=""
                    )
                    entry.current_hash = entry.calculate_hash()
                    self.storage.insert(self.table_name, entry.id, entry.to_dict())
                self._last_hash = entry.current_hash
            return entry
        except Exception:
            self.logger.error(f"Audit write failed for {action_tag} by {actor}", exc_info=True)
            return None

    def get_recent(self, n: int) -> List[AuditEntry]:
        """Newest ``n`` entries, newest first"""
        if n <= 0:
            return []
        entries = self._load_entries()
        entries.reverse()
        return entries[:n]

    def get_entries_for_actor(self, actor: str) -> List[AuditEntry]:
        """All entries written for one operator, oldest first"""
        found = self.storage.find(self.table_name, {"actor": actor})
        return sorted((AuditEntry.from_dict(d) for d in found), key=lambda e: (e.created_at, e.id))

    def count(self) -> int:
        return self.storage.count(self.table_name)

    def verify_integrity(self) -> Dict[str, Any]:
        """
        Verify the integrity of the entire audit chain

        Returns:
            Dictionary with integrity check results
        """
        result = {
            'valid': True,
            'total_entries': 0,
            'hash_errors': [],
            'chain_breaks': [],
        }

        entries = self._load_entries()
        result['total_entries'] = len(entries)

        previous_hash = ""
        for position, entry in enumerate(entries):
            if not entry.verify_hash():
                result['valid'] = False
                result['hash_errors'].append({
                    'entry_id': entry.id,
                    'position': position,
                    'expected_hash': entry.calculate_hash(),
                    'actual_hash': entry.current_hash
                })
            if entry.previous_hash != previous_hash:
                result['valid'] = False
                result['chain_breaks'].append({
                    'entry_id': entry.id,
                    'position': position,
                    'expected_previous_hash': previous_hash,
                    'actual_previous_hash': entry.previous_hash
                })
            previous_hash = entry.current_hash

        return result

    def _load_entries(self) -> List[AuditEntry]:
        entries = [AuditEntry.from_dict(d) for d in self.storage.load_all(self.table_name)]
        entries.sort(key=lambda e: (e.created_at, e.id))
        return entries
