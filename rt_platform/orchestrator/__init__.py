# Public surface of the orchestrator package.
from ..id_map import minimal, canonical_key, ID_KEYS  # single source of truth
from ._types import (
    ENTITY_CLASSES, ItemOutcome, ItemStatus, LocalItem, LocalLibrary, MatchResult, MatchTier,
    OperationResult, OpKind, ProtocolError, RegistryRecord, RemoteClient, RemoteItem,
    SyncError, SyncOperation, SyncSummary, TransportError,
)
from ._matcher import RemoteIndex, match
from .facade import Orchestrator

__all__ = [
    "Orchestrator", "RemoteIndex", "match", "minimal", "canonical_key", "ID_KEYS",
    "ENTITY_CLASSES", "ItemOutcome", "ItemStatus", "LocalItem", "LocalLibrary", "MatchResult",
    "MatchTier", "OperationResult", "OpKind", "ProtocolError", "RegistryRecord", "RemoteClient",
    "RemoteItem", "SyncError", "SyncOperation", "SyncSummary", "TransportError",
]
