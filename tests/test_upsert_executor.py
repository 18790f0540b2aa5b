"""Tests for writing records to the target."""

import pytest

from record_migrator.clients.exceptions import AuthenticationError, InstanceError
from record_migrator.loaders.upsert_executor import UpsertExecutor
from record_migrator.models.record import ErrorCode, MigrationRecord, RecordStatus, UpsertResult
from record_migrator.progress import CancellationToken, ProgressChannel


def accounts(*names):
    return [
        MigrationRecord(f"S00acc{i:03d}", "Account", fields={"Name": name})
        for i, name in enumerate(names)
    ]


class TestInsertMode:
    def test_batches_of_batch_size(self, target):
        executor = UpsertExecutor(target, batch_size=2)

        result = executor.upsert_records("Account", accounts("a", "b", "c", "d", "e"))

        assert [c[2] for c in target.calls if c[0] == "insert"] == [2, 2, 1]
        assert len(result.created_ids) == 5
        assert result.updated_ids == []
        assert set(result.id_map) == {f"S00acc{i:03d}" for i in range(5)}

    def test_batch_size_is_capped(self, target):
        assert UpsertExecutor(target, batch_size=1000).batch_size == 200

    def test_one_bad_record_does_not_stop_the_batch(self, target):
        records = accounts("a", "b", None, "d")

        result = UpsertExecutor(target).upsert_records("Account", records)

        assert len(result.created_ids) == 3
        assert result.total_failed == 1
        failure = result.failures[0]
        assert failure.code == ErrorCode.REQUIRED_FIELD_MISSING
        assert failure.record_id == "S00acc002"
        assert failure.fields == ["Name"]
        assert [o.status for o in result.outcomes] == [
            RecordStatus.CREATED, RecordStatus.CREATED, RecordStatus.FAILED, RecordStatus.CREATED,
        ]

    def test_running_twice_duplicates(self, target):
        executor = UpsertExecutor(target)

        executor.upsert_records("Account", accounts("a", "b", "c"))
        executor.upsert_records("Account", accounts("a", "b", "c"))

        assert len(target.rows("Account")) == 6

    def test_request_failure_fails_every_record_of_the_batch(self, target):
        original = target.insert_records
        calls = {"n": 0}

        def flaky(object_type, records):
            calls["n"] += 1
            if calls["n"] == 1:
                raise InstanceError("Insert failed (500)", 500)
            return original(object_type, records)

        target.insert_records = flaky

        result = UpsertExecutor(target, batch_size=2).upsert_records("Account", accounts("a", "b", "c"))

        assert result.total_failed == 2
        assert len(result.created_ids) == 1
        assert {f.code for f in result.failures} == {ErrorCode.UNKNOWN_ERROR}

    def test_child_request_failure_is_a_relationship_failure(self, target):
        def broken(object_type, records):
            raise InstanceError("Insert failed (500)", 500)

        target.insert_records = broken
        records = [MigrationRecord("S00c1", "Contact", fields={"LastName": "x"})]

        result = UpsertExecutor(target).upsert_records("Contact", records, phase="child")

        assert result.failures[0].code == ErrorCode.RELATIONSHIP_MIGRATION_FAILED
        assert result.failures[0].phase == "child"


class TestUpsertMode:
    def test_running_twice_updates_instead_of_duplicating(self, target):
        executor = UpsertExecutor(target)

        first = executor.upsert_records("Account", accounts("a", "b", "c"), external_id_field="Legacy_Id__c")
        second = executor.upsert_records("Account", accounts("a", "b", "c"), external_id_field="Legacy_Id__c")

        assert len(target.rows("Account")) == 3
        assert len(first.created_ids) == 3
        assert second.created_ids == []
        assert second.updated_ids == first.created_ids
        assert target.count_calls("upsert") == 6

    def test_external_id_is_the_source_id(self, target):
        UpsertExecutor(target).upsert_records("Account", accounts("a"), external_id_field="Legacy_Id__c")

        assert target.rows("Account")[0]["Legacy_Id__c"] == "S00acc000"

    def test_ambiguous_external_id_is_a_duplicate_failure(self, target):
        target.add_record("Account", Name="x", Legacy_Id__c="S00acc000")
        target.add_record("Account", Name="y", Legacy_Id__c="S00acc000")

        result = UpsertExecutor(target).upsert_records(
            "Account", accounts("a"), external_id_field="Legacy_Id__c"
        )

        assert result.failures[0].code == ErrorCode.DUPLICATE_VALUE


class TestInterruption:
    def test_authentication_error_propagates_with_partial_result(self, target):
        target.revoke_after_writes = 1
        partial = UpsertResult(object_type="Account")

        with pytest.raises(AuthenticationError):
            UpsertExecutor(target, batch_size=1).upsert_records(
                "Account", accounts("a", "b", "c"), result=partial
            )

        assert len(partial.created_ids) == 1
        assert target.get(partial.created_ids[0])["Name"] == "a"

    def test_cancel_stops_before_next_unit(self, target):
        token = CancellationToken()

        def on_event(event):
            if event.completed == 1:
                token.cancel()

        executor = UpsertExecutor(
            target, batch_size=1, progress=ProgressChannel(on_event), cancel_token=token
        )
        result = executor.upsert_records("Account", accounts("a", "b", "c"), step="write")

        assert result.cancelled is True
        assert len(result.created_ids) == 1
        assert len(target.rows("Account")) == 1


def test_progress_is_ordered_and_closes_at_total(target):
    events = []
    executor = UpsertExecutor(target, batch_size=2, progress=ProgressChannel(events.append))

    executor.upsert_records("Account", accounts("a", "b", "c", "d", "e"), step="write")

    completed = [e.completed for e in events]
    assert completed == sorted(completed)
    assert events[0].completed == 0
    assert events[-1].completed == events[-1].total == 5
