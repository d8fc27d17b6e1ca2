import json

import pytest

from capronesearch import Bulk, BulkItemError, ResponseError, Settings

from fakes import api_error


def entries(call):
    return [json.loads(line) for line in call["operations"]]


class TestBuffering:
    def test_serializes_actions_and_payloads(self, connection, fake):
        # Updating and deleting missing documents fails with 404
        with Bulk(connection, "products", ignore_errors=[404]) as bulk:
            bulk.index(1, {"title": "a"}, {"routing": "r"})
            bulk.create(2, {"title": "b"})
            bulk.update(3, {"doc": {"title": "c"}})
            bulk.delete(4, {"version": 2, "version_type": "external"})

        assert entries(fake.calls_to("bulk")[0]) == [
            {"index": {"routing": "r", "_id": 1}},
            {"title": "a"},
            {"create": {"_id": 2}},
            {"title": "b"},
            {"update": {"_id": 3}},
            {"doc": {"title": "c"}},
            {"delete": {"version": 2, "version_type": "external", "_id": 4}},
        ]

    def test_flushes_once_per_bulk_limit_items(self, connection, fake):
        with Bulk(connection, "products", bulk_limit=3) as bulk:
            for id in range(6):
                bulk.index(id, {"id": id})
            assert bulk.flushes == 2
            assert bulk.pending == 0

        assert bulk.flushes == 2
        assert [len(call["operations"]) for call in fake.calls_to("bulk")] == [6, 6]

    def test_final_flush_for_remaining_items(self, connection, fake):
        with Bulk(connection, "products", bulk_limit=3) as bulk:
            for id in range(4):
                bulk.index(id, {"id": id})

        assert bulk.flushes == 2
        assert len(fake.docs["products"]) == 4

    def test_empty_scope_sends_nothing(self, connection, fake):
        with Bulk(connection, "products"):
            pass

        assert fake.calls_to("bulk") == []

    def test_flushes_before_an_item_that_would_reach_max_bytes(self, connection, fake):
        blob = "x" * 600_000

        with Bulk(connection, "products", bulk_max_mb=1) as bulk:
            bulk.index(1, {"blob": blob})
            assert bulk.flushes == 0

            bulk.index(2, {"blob": blob})
            assert bulk.flushes == 1
            assert bulk.pending == 1

        assert bulk.flushes == 2

    def test_flushes_after_a_single_oversized_item(self, connection):
        with Bulk(connection, "products", bulk_max_mb=1) as bulk:
            bulk.index(1, {"blob": "x" * (1024 * 1024)})
            assert bulk.flushes == 1
            assert bulk.pending_bytes == 0

    def test_limits_default_to_settings(self, fake):
        from capronesearch import Connection

        connection = Connection(settings=Settings(bulk_limit=2, bulk_max_mb=5), client=fake)
        bulk = Bulk(connection, "products")

        assert (bulk.bulk_limit, bulk.bulk_max_mb) == (2, 5)
        assert Bulk(connection, "products", bulk_limit=7).bulk_limit == 7

    def test_no_flush_when_the_block_raises(self, connection, fake):
        with pytest.raises(RuntimeError):
            with Bulk(connection, "products") as bulk:
                bulk.index(1, {"id": 1})
                raise RuntimeError("abort")

        assert fake.calls_to("bulk") == []


class TestItemErrors:
    def test_conflicts_raise_by_default(self, connection):
        with Bulk(connection, "products") as bulk:
            bulk.create(1, {"id": 1})

        with pytest.raises(BulkItemError) as excinfo:
            with Bulk(connection, "products") as bulk:
                bulk.create(1, {"id": 1})

        assert excinfo.value.status_code == 409
        assert excinfo.value.action == "create"
        assert excinfo.value.item["error"]["type"] == "version_conflict_engine_exception"

    def test_ignored_statuses_only(self, connection, fake):
        fake.forced_statuses = {"1": 409, "2": 500}

        with pytest.raises(BulkItemError) as excinfo:
            with Bulk(connection, "products", ignore_errors=[409]) as bulk:
                bulk.index(1, {"id": 1})
                bulk.index(2, {"id": 2})

        assert excinfo.value.status_code == 500
        assert excinfo.value.item["_id"] == "2"

    def test_ignored_statuses_do_not_raise(self, connection, fake):
        fake.forced_statuses = {"1": 409}

        with Bulk(connection, "products", ignore_errors=[409]) as bulk:
            bulk.index(1, {"id": 1})
            bulk.index(2, {"id": 2})

        assert set(fake.docs["products"]) == {"2"}

    def test_raise_on_error_disabled(self, connection, fake):
        fake.forced_statuses = {"1": 500}

        with Bulk(connection, "products", raise_on_error=False) as bulk:
            bulk.index(1, {"id": 1})

        assert bulk.flushes == 1

    def test_buffer_is_reset_before_raising(self, connection, fake):
        fake.forced_statuses = {"1": 500}
        bulk = Bulk(connection, "products")
        bulk.index(1, {"id": 1})

        with pytest.raises(BulkItemError):
            bulk.flush()

        assert bulk.pending == 0
        assert bulk.flush() is None
        assert len(fake.calls_to("bulk")) == 1

    def test_buffer_is_reset_on_request_errors(self, connection, fake):
        fake.fail("bulk", api_error(413, "request_entity_too_large"))
        bulk = Bulk(connection, "products")
        bulk.index(1, {"id": 1})

        with pytest.raises(ResponseError):
            bulk.flush()

        assert bulk.pending == 0
        assert bulk.flushes == 0
