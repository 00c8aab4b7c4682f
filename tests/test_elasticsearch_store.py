"""
Tests for the Elasticsearch activity store against a mocked async client.
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest
from elasticsearch import ConflictError as ESConflictError, NotFoundError

from fitflow.exceptions import ConflictError, StorageError
from fitflow.storage import ElasticsearchActivityStore, activity_document_id


def es_error(cls, status):
    return cls(message="error", meta=Mock(status=status), body={})


@pytest.fixture
def es_client():
    return AsyncMock()


@pytest.fixture
def es_store(es_client):
    return ElasticsearchActivityStore({}, index_prefix="test", client=es_client)


ACTIVITY = {'user_id': "user-1", 'activity_timestamp': "2024-01-15T10:30:00.000Z", 'name': "Ride"}


class TestIndices:

    def test_index_names(self, es_store):
        assert sorted(es_store.index_names.values()) == [
            "test-activities", "test-activity-records", "test-laps",
        ]

    def test_creates_missing_indices(self, es_store, es_client):
        es_client.indices.exists.return_value = False

        status = asyncio.run(es_store.ensure_indices())

        assert status == {
            "test-activities": "created",
            "test-laps": "created",
            "test-activity-records": "created",
        }
        assert es_client.indices.create.await_count == 3
        _, kwargs = es_client.indices.create.call_args_list[0]
        assert kwargs['mappings']['properties']['activity_timestamp'] == {"type": "date"}

    def test_keeps_existing_indices(self, es_store, es_client):
        es_client.indices.exists.return_value = True

        status = asyncio.run(es_store.ensure_indices())

        assert set(status.values()) == {"exists"}
        es_client.indices.create.assert_not_awaited()
        es_client.indices.delete.assert_not_awaited()

    def test_force_recreate(self, es_store, es_client):
        es_client.indices.exists.return_value = True

        asyncio.run(es_store.ensure_indices(force_recreate=True))

        assert es_client.indices.delete.await_count == 3
        assert es_client.indices.create.await_count == 3


class TestActivities:

    def test_insert_uses_deterministic_id(self, es_store, es_client):
        activity_id = asyncio.run(es_store.insert_activity(ACTIVITY))

        assert activity_id == activity_document_id("user-1", "2024-01-15T10:30:00.000Z")
        _, kwargs = es_client.create.call_args
        assert kwargs['index'] == "test-activities"
        assert kwargs['id'] == activity_id
        assert kwargs['document'] == ACTIVITY

    def test_deterministic_id_depends_on_user_and_time(self):
        first = activity_document_id("user-1", "2024-01-15T10:30:00.000Z")
        assert first == activity_document_id("user-1", "2024-01-15T10:30:00.000Z")
        assert first != activity_document_id("user-2", "2024-01-15T10:30:00.000Z")
        assert first != activity_document_id("user-1", "2024-01-15T10:30:01.000Z")

    def test_conflict(self, es_store, es_client):
        es_client.create.side_effect = es_error(ESConflictError, 409)

        with pytest.raises(ConflictError) as exc_info:
            asyncio.run(es_store.insert_activity(ACTIVITY))
        assert exc_info.value.conflicting_date == "2024-01-15T10:30:00.000Z"

    def test_find_activity_id(self, es_store, es_client):
        es_client.search.return_value = {'hits': {'hits': [{'_id': "abc"}]}}

        assert asyncio.run(es_store.find_activity_id("user-1", "2024-01-15T10:30:00.000Z")) == "abc"
        _, kwargs = es_client.search.call_args
        assert {'term': {'user_id': "user-1"}} in kwargs['query']['bool']['filter']

    def test_find_activity_id_missing_index(self, es_store, es_client):
        es_client.search.side_effect = es_error(NotFoundError, 404)
        assert asyncio.run(es_store.find_activity_id("user-1", "2024-01-15T10:30:00.000Z")) is None

    def test_delete_missing_activity_is_not_an_error(self, es_store, es_client):
        es_client.delete.side_effect = es_error(NotFoundError, 404)
        asyncio.run(es_store.delete_activity("abc"))


class TestBulk:

    def test_lap_ids_follow_submission_order(self, es_store, es_client):
        es_client.bulk.return_value = {
            'errors': False,
            'items': [{'index': {'_id': "lap-a", 'status': 201}}, {'index': {'_id': "lap-b", 'status': 201}}],
        }

        ids = asyncio.run(es_store.insert_laps("act-1", [{'lap_index': 0}, {'lap_index': 1}]))

        assert ids == ["lap-a", "lap-b"]
        operations = es_client.bulk.call_args.kwargs['operations']
        assert operations[0] == {"index": {"_index": "test-laps"}}
        assert operations[1] == {'lap_index': 0, 'activity_id': "act-1"}

    def test_item_errors_fail_the_batch(self, es_store, es_client):
        es_client.bulk.return_value = {
            'errors': True,
            'items': [
                {'index': {'_id': "r1", 'status': 201}},
                {'index': {'status': 400, 'error': {'type': 'mapper_parsing_exception'}}},
            ],
        }

        with pytest.raises(StorageError) as exc_info:
            asyncio.run(es_store.insert_records([{'time': 1}, {'time': 2}]))
        assert exc_info.value.details['first_error'] == {'type': 'mapper_parsing_exception'}

    def test_empty_insert_skips_request(self, es_store, es_client):
        assert asyncio.run(es_store.insert_records([])) == 0
        es_client.bulk.assert_not_awaited()

    def test_delete_records_by_activity(self, es_store, es_client):
        es_client.delete_by_query.return_value = {'deleted': 42}

        assert asyncio.run(es_store.delete_records("act-1")) == 42
        _, kwargs = es_client.delete_by_query.call_args
        assert kwargs['index'] == "test-activity-records"
        assert kwargs['query'] == {"term": {"activity_id": "act-1"}}

    def test_delete_refreshes_before_querying(self, es_store, es_client):
        calls = []
        es_client.indices.refresh.side_effect = lambda **kwargs: calls.append(("refresh", kwargs['index']))

        def delete_by_query(**kwargs):
            calls.append(("delete_by_query", kwargs['index']))
            return {'deleted': 3}
        es_client.delete_by_query.side_effect = delete_by_query

        assert asyncio.run(es_store.delete_laps("act-1")) == 3
        assert calls == [("refresh", "test-laps"), ("delete_by_query", "test-laps")]

    def test_delete_on_missing_index(self, es_store, es_client):
        es_client.indices.refresh.side_effect = es_error(NotFoundError, 404)

        assert asyncio.run(es_store.delete_records("act-1")) == 0
        es_client.delete_by_query.assert_not_awaited()


class TestSummary:

    def test_summary(self, es_store, es_client):
        es_client.get.return_value = {'_source': ACTIVITY}
        es_client.count.return_value = {'count': 3}
        es_client.search.return_value = {
            'hits': {'total': {'value': 1200}},
            'aggregations': {
                'first_record': {'value_as_string': "2024-01-15T10:30:00.000Z"},
                'last_record': {'value_as_string': "2024-01-15T11:30:00.000Z"},
            },
        }

        summary = asyncio.run(es_store.get_activity_summary("act-1"))

        assert summary['lap_count'] == 3
        assert summary['record_count'] == 1200
        assert summary['last_record_time'] == "2024-01-15T11:30:00.000Z"
        assert summary['activity'] == ACTIVITY

    def test_summary_of_unknown_activity(self, es_store, es_client):
        es_client.get.side_effect = es_error(NotFoundError, 404)
        assert asyncio.run(es_store.get_activity_summary("missing")) is None
