from datetime import UTC, datetime, timedelta

import pytest

from petchain.cloudsync import (
    EntityType,
    MutationAction,
    PetPayload,
    QueuedMutation,
    record_timestamp,
    resolve_conflict,
)

EARLY = datetime(2024, 1, 1, tzinfo=UTC)
LATE = EARLY + timedelta(hours=1)


def test_newer_local_wins():
    local = {"id": "p1", "updatedAt": LATE.isoformat()}
    remote = {"id": "p1", "updatedAt": EARLY.isoformat()}
    assert resolve_conflict(local, remote) is local


def test_newer_remote_wins():
    local = {"id": "p1", "updated_at": EARLY.isoformat()}
    remote = {"id": "p1", "updated_at": LATE.isoformat()}
    assert resolve_conflict(local, remote) is remote


def test_tie_goes_to_remote():
    local = {"updatedAt": LATE.isoformat()}
    remote = {"updatedAt": LATE.isoformat()}
    assert resolve_conflict(local, remote) is remote


def test_records_without_timestamps_resolve_to_remote():
    local = {"name": "Rex"}
    remote = {"name": "Max"}
    assert resolve_conflict(local, remote) is remote


def test_enqueue_time_is_used_when_update_time_is_missing():
    local = {"enqueued_at": LATE.isoformat()}
    remote = {"updatedAt": EARLY.isoformat()}
    assert resolve_conflict(local, remote) is local


@pytest.mark.parametrize(
    "value",
    [LATE, LATE.isoformat(), LATE.timestamp(), int(LATE.timestamp() * 1000), "2024-01-01T01:00:00Z"],
)
def test_record_timestamp_formats(value):
    assert record_timestamp({"updatedAt": value}) == pytest.approx(LATE.timestamp())


def test_unparseable_timestamp_counts_as_missing():
    assert record_timestamp({"updatedAt": "yesterday"}) == 0.0


def test_queued_mutation_prefers_payload_update_time():
    entry = QueuedMutation.new(EntityType.PET, MutationAction.UPDATE, PetPayload(id="p1", updated_at=LATE), now=EARLY)
    assert record_timestamp(entry) == LATE.timestamp()

    bare = QueuedMutation.new(EntityType.PET, MutationAction.UPDATE, PetPayload(id="p1"), now=EARLY)
    assert record_timestamp(bare) == EARLY.timestamp()
    assert resolve_conflict(entry, {"updatedAt": EARLY.isoformat()}) is entry


def test_objects_with_attributes():
    class Remote:
        updated_at = LATE

    remote = Remote()
    assert resolve_conflict({"updatedAt": EARLY.isoformat()}, remote) is remote


def test_out_of_range_timestamp_counts_as_missing():
    local = {"updatedAt": 1e20}
    remote = {"updatedAt": float("nan")}
    assert record_timestamp(local) == 0.0
    assert resolve_conflict(local, remote) is remote
