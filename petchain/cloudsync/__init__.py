"""Offline mutation queue and authenticated request pipeline."""

from .auth import CredentialManager, CredentialPair, decode_claims
from .conflict import record_timestamp, resolve_conflict
from .context import SyncContext
from .errors import (
    AuthorizationFailure,
    PersistenceFailure,
    RefreshFailure,
    RefreshFailureReason,
    RemoteRejected,
    SyncClientError,
    TransportError,
    describe_status,
)
from .models import (
    AppointmentPayload,
    EntityType,
    FlushResult,
    MedicationPayload,
    MutationAction,
    PetPayload,
    QueuedMutation,
    SyncStatus,
)
from .mutation_queue import MutationQueue
from .pipeline import AuthenticatedPipeline
from .store import KeyValueStore, MemoryStore, SQLiteStore
from .transport import AiohttpTransport, Transport, TransportRequest, TransportResponse

__all__ = [
    "AiohttpTransport",
    "AppointmentPayload",
    "AuthenticatedPipeline",
    "AuthorizationFailure",
    "CredentialManager",
    "CredentialPair",
    "EntityType",
    "FlushResult",
    "KeyValueStore",
    "MedicationPayload",
    "MemoryStore",
    "MutationAction",
    "MutationQueue",
    "PersistenceFailure",
    "PetPayload",
    "QueuedMutation",
    "RefreshFailure",
    "RefreshFailureReason",
    "RemoteRejected",
    "SQLiteStore",
    "SyncClientError",
    "SyncContext",
    "SyncStatus",
    "Transport",
    "TransportError",
    "TransportRequest",
    "TransportResponse",
    "decode_claims",
    "describe_status",
    "record_timestamp",
    "resolve_conflict",
]
