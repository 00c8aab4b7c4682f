"""
Pytest configuration and fixtures for FitFlow tests.

Provides in-memory activity and blob stores that honour the storage
protocols, plus builders for decoded FIT message trees.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from fitflow.exceptions import conflict_error, storage_error
from fitflow.models import MessageTree
from fitflow.processors import FitDecoder
from fitflow.storage import ActivityStore, BlobStorage


BASE_TIME = datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)


class InMemoryActivityStore(ActivityStore):
    """
    ActivityStore keeping documents in dicts.

    Every call is appended to ``calls`` as (operation, detail). Set an entry in
    ``failures`` (keyed by method name) to make that method raise, and
    ``fail_record_batch`` to fail the n-th (1-based) insert_records call.
    """

    def __init__(self):
        self.activities: Dict[str, Dict[str, Any]] = {}
        self.laps: Dict[str, Dict[str, Any]] = {}
        self.records: List[Dict[str, Any]] = []
        self.calls: List[tuple] = []
        self.failures: Dict[str, Exception] = {}
        self.fail_record_batch: Optional[int] = None
        self.record_batches: List[int] = []
        self._inserting = False
        self._next_id = 0
        self.closed = False

    def _id(self, prefix: str) -> str:
        self._next_id += 1
        return f"{prefix}-{self._next_id}"

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.failures:
            raise self.failures[operation]

    async def insert_activity(self, document):
        self.calls.append(("insert_activity", document['activity_timestamp']))
        self._maybe_fail("insert_activity")
        for existing in self.activities.values():
            if (existing['user_id'], existing['activity_timestamp']) == (
                    document['user_id'], document['activity_timestamp']):
                raise conflict_error("Activity already exists",
                                     conflicting_date=document['activity_timestamp'])
        activity_id = self._id("activity")
        self.activities[activity_id] = dict(document)
        return activity_id

    async def insert_laps(self, activity_id, documents):
        self.calls.append(("insert_laps", len(documents)))
        self._maybe_fail("insert_laps")
        ids = []
        for doc in documents:
            lap_id = self._id("lap")
            self.laps[lap_id] = dict(doc, activity_id=activity_id)
            ids.append(lap_id)
        return ids

    async def insert_records(self, documents):
        if self._inserting:
            raise AssertionError("record batches overlapped")
        self._inserting = True
        try:
            batch_number = len(self.record_batches) + 1
            self.calls.append(("insert_records:start", batch_number))
            await asyncio.sleep(0)
            self.record_batches.append(len(documents))
            if self.fail_record_batch == batch_number:
                raise storage_error("insert rejected")
            self.records.extend(documents)
            self.calls.append(("insert_records:end", batch_number))
            return len(documents)
        finally:
            self._inserting = False

    async def delete_activity(self, activity_id):
        self.calls.append(("delete_activity", activity_id))
        self._maybe_fail("delete_activity")
        self.activities.pop(activity_id, None)

    async def delete_laps(self, activity_id):
        self.calls.append(("delete_laps", activity_id))
        self._maybe_fail("delete_laps")
        doomed = [k for k, v in self.laps.items() if v['activity_id'] == activity_id]
        for key in doomed:
            del self.laps[key]
        return len(doomed)

    async def delete_records(self, activity_id):
        self.calls.append(("delete_records", activity_id))
        self._maybe_fail("delete_records")
        before = len(self.records)
        self.records = [r for r in self.records if r['activity_id'] != activity_id]
        return before - len(self.records)

    async def find_activity_id(self, user_id, activity_timestamp):
        self.calls.append(("find_activity_id", activity_timestamp))
        self._maybe_fail("find_activity_id")
        for activity_id, doc in self.activities.items():
            if doc['user_id'] == user_id and doc['activity_timestamp'] == activity_timestamp:
                return activity_id
        return None

    async def get_activity_summary(self, activity_id):
        if activity_id not in self.activities:
            return None
        records = [r for r in self.records if r['activity_id'] == activity_id]
        return {
            'activity_id': activity_id,
            'activity': self.activities[activity_id],
            'lap_count': sum(1 for lap in self.laps.values() if lap['activity_id'] == activity_id),
            'record_count': len(records),
        }

    async def close(self):
        self.closed = True

    @property
    def operations(self) -> List[str]:
        return [name for name, _ in self.calls]


class InMemoryBlobStorage(BlobStorage):
    """BlobStorage over a dict; set ``fail_with`` to make uploads raise."""

    def __init__(self):
        self.files: Dict[str, bytes] = {}
        self.fail_with: Optional[Exception] = None

    async def upload(self, path, data):
        if self.fail_with is not None:
            raise self.fail_with
        if path in self.files:
            raise storage_error("File already exists", path=path)
        self.files[path] = data
        return path

    async def list_files(self, user_id, limit=50, offset=0, year=None, month=None):
        paths = sorted((p for p in self.files if p.startswith(f"{user_id}/")), reverse=True)
        return [{'path': p, 'size': len(self.files[p])} for p in paths[offset:offset + limit]]

    async def delete_files(self, paths):
        deleted = [p for p in paths if self.files.pop(p, None) is not None]
        return {'deleted': deleted, 'failed': []}


class StaticDecoder(FitDecoder):
    """Decoder returning a prepared tree, or raising a prepared error."""

    def __init__(self, tree: Optional[MessageTree] = None, error: Optional[Exception] = None):
        self.tree = tree
        self.error = error
        self.calls = 0

    def decode(self, data):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.tree


def record(seconds: float, **fields) -> Dict[str, Any]:
    """Raw sample at BASE_TIME + seconds with full sensor coverage by default."""
    sample = {
        'timestamp': BASE_TIME + timedelta(seconds=seconds),
        'elapsed_time': seconds,
        'timer_time': seconds,
        'distance': (seconds + 1) * 10.0,
        'speed': 10.0,
        'position_lat': 52.5200001,
        'position_long': 13.4049999,
        'altitude': 34.0,
        'power': 200,
        'cadence': 90,
        'heart_rate': 140,
        'temperature': 21.5,
    }
    sample.update(fields)
    return sample


def lap(records: List[Dict[str, Any]], start: float = 0, end: Optional[float] = None, **fields) -> Dict[str, Any]:
    end = end if end is not None else start + max(len(records), 1)
    raw = {
        'start_time': BASE_TIME + timedelta(seconds=start),
        'timestamp': BASE_TIME + timedelta(seconds=end),
        'total_distance': 1000.0,
        'total_elapsed_time': end - start,
        'total_timer_time': end - start,
        'start_position_lat': 52.52,
        'start_position_long': 13.405,
        'end_position_lat': 52.53,
        'end_position_long': 13.41,
        'records': records,
    }
    raw.update(fields)
    return raw


def tree(laps: List[Dict[str, Any]], timestamp: Optional[datetime] = BASE_TIME,
         sport: Optional[str] = "cycling", sub_sport: Optional[str] = "road", **session_fields) -> MessageTree:
    session = {
        'sport': sport,
        'sub_sport': sub_sport,
        'total_distance': 42195.0,
        'total_timer_time': 3600.0,
        'total_elapsed_time': 3700.0,
        'laps': laps,
    }
    session.update(session_fields)
    return MessageTree.from_raw({
        'activity': {
            'timestamp': timestamp,
            'sessions': [session],
            'device_infos': [{'manufacturer': 'garmin', 'product_name': 'edge_530'}],
        }
    })


@pytest.fixture
def store():
    return InMemoryActivityStore()


@pytest.fixture
def blob_storage():
    return InMemoryBlobStorage()


@pytest.fixture
def make_record():
    return record


@pytest.fixture
def make_lap():
    return lap


@pytest.fixture
def make_tree():
    return tree


@pytest.fixture
def static_decoder():
    return StaticDecoder


@pytest.fixture
def scenario_a_tree():
    """Two laps; lap 0 speeds 10/12/14 (one sample without heart rate), lap 1 speeds 300/5."""
    return tree([
        lap([
            record(0, speed=10),
            record(1, speed=12, heart_rate=None),
            record(2, speed=14),
        ], start=0, end=3),
        lap([
            record(3, speed=300),
            record(4, speed=5),
        ], start=3, end=5),
    ])


@pytest.fixture
def simple_tree():
    return tree([lap([record(i) for i in range(5)], start=0, end=5)])
