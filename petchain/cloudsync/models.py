"""Queue records and the per-entity payload variants they carry."""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, ClassVar


def parse_timestamp(value: Any) -> datetime | None:
    """Parse ISO-8601 text or epoch seconds/milliseconds into an aware datetime."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, int | float):
        seconds = float(value)
        # JavaScript clients persist milliseconds.
        if seconds > 1e11:
            seconds /= 1000
        try:
            return datetime.fromtimestamp(seconds, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed.astimezone(UTC)
    return None


def _format_timestamp(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class EntityType(StrEnum):
    PET = "pet"
    APPOINTMENT = "appointment"
    MEDICATION = "medication"

    @property
    def collection_path(self) -> str:
        return f"/{self.value}s"


class MutationAction(StrEnum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(slots=True)
class _Payload:
    """Shared wire handling for the payload variants.

    Subclasses declare their fields in snake_case and list the camelCase wire
    names in ``WIRE_NAMES``. Unknown wire keys survive a round trip in
    ``extra``.
    """

    WIRE_NAMES: ClassVar[dict[str, str]] = {}
    TIMESTAMP_FIELDS: ClassVar[frozenset[str]] = frozenset({"updated_at"})

    @classmethod
    def from_wire(cls, payload: Mapping[str, Any]):
        known: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        reverse = {wire: name for name, wire in cls.WIRE_NAMES.items()}
        names = {f.name for f in fields(cls)} - {"extra"}
        for key, value in payload.items():
            name = reverse.get(key, key)
            if name not in names:
                extra[key] = value
                continue
            if name in cls.TIMESTAMP_FIELDS:
                value = parse_timestamp(value)
            elif name == "id" and value is not None:
                value = str(value)
            known[name] = value
        return cls(**known, extra=extra)

    def to_wire(self) -> dict[str, Any]:
        payload: dict[str, Any] = dict(self.extra)
        for f in fields(self):
            if f.name == "extra":
                continue
            value = getattr(self, f.name)
            if value is None:
                continue
            if isinstance(value, datetime):
                value = value.isoformat()
            payload[self.WIRE_NAMES.get(f.name, f.name)] = value
        return payload


@dataclass(slots=True)
class PetPayload(_Payload):
    WIRE_NAMES: ClassVar[dict[str, str]] = {
        "owner_id": "ownerId",
        "date_of_birth": "dateOfBirth",
        "updated_at": "updatedAt",
    }

    id: str | None = None
    name: str | None = None
    species: str | None = None
    breed: str | None = None
    date_of_birth: str | None = None
    owner_id: str | None = None
    updated_at: datetime | None = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class AppointmentPayload(_Payload):
    WIRE_NAMES: ClassVar[dict[str, str]] = {
        "pet_id": "petId",
        "vet_id": "vetId",
        "date_time": "dateTime",
        "appointment_type": "type",
        "updated_at": "updatedAt",
    }

    id: str | None = None
    pet_id: str | None = None
    vet_id: str | None = None
    date_time: str | None = None
    appointment_type: str | None = None
    status: str | None = None
    notes: str | None = None
    updated_at: datetime | None = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class MedicationPayload(_Payload):
    WIRE_NAMES: ClassVar[dict[str, str]] = {
        "pet_id": "petId",
        "start_date": "startDate",
        "end_date": "endDate",
        "updated_at": "updatedAt",
    }

    id: str | None = None
    pet_id: str | None = None
    name: str | None = None
    dosage: str | None = None
    frequency: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    active: bool | None = None
    updated_at: datetime | None = None
    extra: dict[str, Any] = field(default_factory=dict)


EntityPayload = PetPayload | AppointmentPayload | MedicationPayload

PAYLOAD_TYPES: dict[EntityType, type[_Payload]] = {
    EntityType.PET: PetPayload,
    EntityType.APPOINTMENT: AppointmentPayload,
    EntityType.MEDICATION: MedicationPayload,
}


def coerce_payload(entity_type: EntityType, payload: EntityPayload | Mapping[str, Any]) -> EntityPayload:
    """Return ``payload`` as the variant registered for ``entity_type``."""

    expected = PAYLOAD_TYPES[entity_type]
    if isinstance(payload, expected):
        return payload
    if isinstance(payload, _Payload):
        raise ValueError(f"{type(payload).__name__} cannot be queued as a {entity_type.value}")
    if isinstance(payload, Mapping):
        return expected.from_wire(payload)
    raise ValueError(f"unsupported payload for {entity_type.value}: {type(payload).__name__}")


@dataclass(slots=True)
class QueuedMutation:
    """A local write waiting to be delivered to the remote API."""

    id: str
    entity_type: EntityType
    action: MutationAction
    payload: EntityPayload
    enqueued_at: datetime
    retry_count: int = 0
    last_error: str | None = None

    @classmethod
    def new(
        cls,
        entity_type: EntityType,
        action: MutationAction,
        payload: EntityPayload,
        *,
        now: datetime | None = None,
    ) -> QueuedMutation:
        return cls(
            id=f"{entity_type.value}_{uuid.uuid4().hex}",
            entity_type=entity_type,
            action=action,
            payload=payload,
            enqueued_at=now or datetime.now(tz=UTC),
        )

    @property
    def target_id(self) -> str | None:
        return self.payload.id

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "entity_type": self.entity_type.value,
            "action": self.action.value,
            "payload": self.payload.to_wire(),
            "enqueued_at": self.enqueued_at.isoformat(),
            "retry_count": self.retry_count,
            "last_error": self.last_error,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> QueuedMutation:
        entity_type = EntityType(data["entity_type"])
        return cls(
            id=str(data["id"]),
            entity_type=entity_type,
            action=MutationAction(data["action"]),
            payload=coerce_payload(entity_type, data.get("payload") or {}),
            enqueued_at=parse_timestamp(data.get("enqueued_at")) or datetime.now(tz=UTC),
            retry_count=int(data.get("retry_count") or 0),
            last_error=data.get("last_error"),
        )


@dataclass(slots=True)
class SyncStatus:
    is_syncing: bool = False
    last_sync_at: datetime | None = None
    pending_count: int = 0
    failed_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_syncing": self.is_syncing,
            "last_sync_at": _format_timestamp(self.last_sync_at),
            "pending_count": self.pending_count,
            "failed_count": self.failed_count,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> SyncStatus:
        if not isinstance(data, Mapping):
            return cls()
        return cls(
            is_syncing=bool(data.get("is_syncing")),
            last_sync_at=parse_timestamp(data.get("last_sync_at")),
            pending_count=int(data.get("pending_count") or 0),
            failed_count=int(data.get("failed_count") or 0),
        )


@dataclass(slots=True)
class FlushResult:
    """Summary of one flush pass."""

    sent: int = 0
    retried: int = 0
    failed: int = 0
    skipped: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"sent": self.sent, "retried": self.retried, "failed": self.failed, "skipped": self.skipped}


__all__ = [
    "AppointmentPayload",
    "EntityPayload",
    "EntityType",
    "FlushResult",
    "MedicationPayload",
    "MutationAction",
    "PAYLOAD_TYPES",
    "PetPayload",
    "QueuedMutation",
    "SyncStatus",
    "coerce_payload",
    "parse_timestamp",
]
