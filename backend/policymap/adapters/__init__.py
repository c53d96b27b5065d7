"""Persistence adapters for the proposal collection."""

from policymap.adapters.base import PersistenceError, ProposalAdapter
from policymap.adapters.keyvalue import (
    HISTORY_KEY,
    MIGRATION_FLAG_KEY,
    MIGRATION_LEDGER_KEY,
    PROPOSALS_KEY,
    JsonFileKeyValueStore,
    KeyValueStore,
    MemoryKeyValueStore,
)
from policymap.adapters.local import LocalProposalAdapter
from policymap.adapters.remote import SqlProposalAdapter
from policymap.adapters.static_files import JsonFileAdapter, JsSourceFileAdapter

__all__ = [
    "HISTORY_KEY",
    "MIGRATION_FLAG_KEY",
    "MIGRATION_LEDGER_KEY",
    "PROPOSALS_KEY",
    "JsSourceFileAdapter",
    "JsonFileAdapter",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "LocalProposalAdapter",
    "MemoryKeyValueStore",
    "PersistenceError",
    "ProposalAdapter",
    "SqlProposalAdapter",
]
