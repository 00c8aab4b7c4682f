#!/usr/bin/env python3
"""
Elasticsearch activity store - implements ActivityStore on the async client
"""
import hashlib
from typing import Any, Dict, List, Optional

from elasticsearch import AsyncElasticsearch, ApiError, ConflictError as ESConflictError, NotFoundError, TransportError

from ..exceptions import StorageError, conflict_error, storage_error
from ..utils.logging import get_logger
from .interface import ActivityStore, DataType


logger = get_logger(__name__)

_ES_ERRORS = (ApiError, TransportError)


def activity_document_id(user_id: str, activity_timestamp: str) -> str:
    """
    Deterministic activity id.

    Creating the document with op_type=create turns this id into the
    (user, timestamp) uniqueness constraint.
    """
    return hashlib.sha1(f"{user_id}|{activity_timestamp}".encode("utf-8")).hexdigest()


class ElasticsearchActivityStore(ActivityStore):
    """Elasticsearch storage implementation"""

    def __init__(self, config: Dict[str, Any], index_prefix: str = "fitflow",
                 client: Optional[AsyncElasticsearch] = None):
        """
        Args:
            config: Client keyword arguments, see ElasticsearchConfig.to_dict()
            index_prefix: Prefix for the three index names
            client: Pre-built client, mainly for tests
        """
        self.es = client or AsyncElasticsearch(**config)
        self.index_names = {
            DataType.ACTIVITY: f"{index_prefix}-activities",
            DataType.LAP: f"{index_prefix}-laps",
            DataType.RECORD: f"{index_prefix}-activity-records",
        }
        self.index_mappings = self._get_index_mappings()

    async def ensure_indices(self, force_recreate: bool = False) -> Dict[str, str]:
        """
        Create missing indices.

        Returns:
            Map of index name to "created" or "exists"
        """
        status = {}
        try:
            for data_type, index_name in self.index_names.items():
                if await self.es.indices.exists(index=index_name):
                    if not force_recreate:
                        logger.info("Index already exists", index=index_name)
                        status[index_name] = "exists"
                        continue
                    await self.es.indices.delete(index=index_name)
                    logger.info("Deleted existing index", index=index_name)

                await self.es.indices.create(index=index_name, **self.index_mappings[data_type])
                logger.info("Created index", index=index_name)
                status[index_name] = "created"
        except _ES_ERRORS as e:
            raise StorageError(f"Index creation failed: {e}") from e
        return status

    async def insert_activity(self, document: Dict[str, Any]) -> str:
        doc_id = activity_document_id(document['user_id'], document['activity_timestamp'])
        try:
            await self.es.create(
                index=self.index_names[DataType.ACTIVITY],
                id=doc_id,
                document=document,
                refresh="wait_for",
            )
        except ESConflictError as e:
            raise conflict_error(
                "Activity already exists",
                conflicting_date=document['activity_timestamp'],
                user_id=document['user_id'],
            ) from e
        except _ES_ERRORS as e:
            raise storage_error(f"Failed to create activity: {e}") from e
        return doc_id

    async def insert_laps(self, activity_id: str, documents: List[Dict[str, Any]]) -> List[str]:
        docs = [dict(doc, activity_id=activity_id) for doc in documents]
        return await self._bulk_index(DataType.LAP, docs)

    async def insert_records(self, documents: List[Dict[str, Any]]) -> int:
        return len(await self._bulk_index(DataType.RECORD, documents))

    async def _bulk_index(self, data_type: DataType, documents: List[Dict[str, Any]]) -> List[str]:
        """Bulk index and return generated ids in submission order."""
        if not documents:
            return []
        index_name = self.index_names[data_type]

        operations: List[Dict[str, Any]] = []
        for doc in documents:
            operations.append({"index": {"_index": index_name}})
            operations.append(doc)

        try:
            response = await self.es.bulk(operations=operations)
        except _ES_ERRORS as e:
            raise storage_error(f"Bulk insert into {index_name} failed: {e}") from e

        items = [item.get("index", {}) for item in response.get("items", [])]
        failed = [item for item in items if item.get("error")]
        if response.get("errors") or failed or len(items) != len(documents):
            first_error = failed[0].get("error") if failed else None
            raise storage_error(
                f"Bulk insert into {index_name} failed for {len(failed)} of {len(documents)} documents",
                first_error=first_error,
            )

        logger.debug("Bulk indexed documents", index=index_name, count=len(items))
        return [item["_id"] for item in items]

    async def delete_activity(self, activity_id: str) -> None:
        try:
            await self.es.delete(index=self.index_names[DataType.ACTIVITY], id=activity_id, refresh=True)
        except NotFoundError:
            logger.debug("Activity already absent", activity_id=activity_id)
        except _ES_ERRORS as e:
            raise storage_error(f"Failed to delete activity: {e}", activity_id=activity_id) from e

    async def delete_laps(self, activity_id: str) -> int:
        return await self._delete_by_activity(DataType.LAP, activity_id)

    async def delete_records(self, activity_id: str) -> int:
        return await self._delete_by_activity(DataType.RECORD, activity_id)

    async def _delete_by_activity(self, data_type: DataType, activity_id: str) -> int:
        index_name = self.index_names[data_type]
        try:
            # Bulk writes are not searchable until the next refresh
            await self.es.indices.refresh(index=index_name)
            response = await self.es.delete_by_query(
                index=index_name,
                query={"term": {"activity_id": activity_id}},
                conflicts="proceed",
                refresh=True,
            )
        except NotFoundError:
            return 0
        except _ES_ERRORS as e:
            raise storage_error(f"Failed to delete from {index_name}: {e}", activity_id=activity_id) from e
        return response.get("deleted", 0)

    async def find_activity_id(self, user_id: str, activity_timestamp: str) -> Optional[str]:
        try:
            response = await self.es.search(
                index=self.index_names[DataType.ACTIVITY],
                query={
                    "bool": {
                        "filter": [
                            {"term": {"user_id": user_id}},
                            {"term": {"activity_timestamp": activity_timestamp}},
                        ]
                    }
                },
                size=1,
                source=False,
            )
        except NotFoundError:
            return None
        except _ES_ERRORS as e:
            raise storage_error(f"Duplicate lookup failed: {e}", user_id=user_id) from e

        hits = response["hits"]["hits"]
        return hits[0]["_id"] if hits else None

    async def get_activity_summary(self, activity_id: str) -> Optional[Dict[str, Any]]:
        try:
            activity = await self.es.get(index=self.index_names[DataType.ACTIVITY], id=activity_id)
        except NotFoundError:
            return None
        except _ES_ERRORS as e:
            raise storage_error(f"Failed to load activity: {e}", activity_id=activity_id) from e

        by_activity = {"term": {"activity_id": activity_id}}
        try:
            laps = await self.es.count(index=self.index_names[DataType.LAP], query=by_activity)
            records = await self.es.search(
                index=self.index_names[DataType.RECORD],
                query=by_activity,
                size=0,
                aggs={
                    "first_record": {"min": {"field": "time"}},
                    "last_record": {"max": {"field": "time"}},
                },
                track_total_hits=True,
            )
        except _ES_ERRORS as e:
            raise storage_error(f"Failed to summarize activity: {e}", activity_id=activity_id) from e

        aggs = records.get("aggregations", {})
        return {
            "activity_id": activity_id,
            "activity": activity["_source"],
            "lap_count": laps["count"],
            "record_count": records["hits"]["total"]["value"],
            "first_record_time": aggs.get("first_record", {}).get("value_as_string"),
            "last_record_time": aggs.get("last_record", {}).get("value_as_string"),
        }

    async def close(self) -> None:
        await self.es.close()

    def _get_index_mappings(self) -> Dict[DataType, Dict[str, Any]]:
        """Get index mapping definitions"""
        coordinates = {"type": "double"}
        return {
            DataType.ACTIVITY: {
                "mappings": {
                    "properties": {
                        "user_id": {"type": "keyword"},
                        "activity_timestamp": {"type": "date"},
                        "name": {"type": "text", "fields": {"keyword": {"type": "keyword"}}},
                        "sport": {"type": "keyword"},
                        "sub_sport": {"type": "keyword"},
                        "total_distance": {"type": "float"},
                        "total_timer_time": {"type": "float"},
                        "total_elapsed_time": {"type": "float"},
                        "start_lat": coordinates,
                        "start_lng": coordinates,
                        "end_lat": coordinates,
                        "end_lng": coordinates,
                        "avg_speed": {"type": "float"},
                        "max_speed": {"type": "float"},
                        "avg_power": {"type": "integer"},
                        "max_power": {"type": "float"},
                        "avg_heart_rate": {"type": "integer"},
                        "max_heart_rate": {"type": "float"},
                    }
                }
            },
            DataType.LAP: {
                "mappings": {
                    "properties": {
                        "activity_id": {"type": "keyword"},
                        "lap_index": {"type": "integer"},
                        "start_time": {"type": "date"},
                        "end_time": {"type": "date"},
                        "total_distance": {"type": "float"},
                        "total_elapsed_time": {"type": "float"},
                        "total_timer_time": {"type": "float"},
                        "start_lat": coordinates,
                        "start_lng": coordinates,
                        "end_lat": coordinates,
                        "end_lng": coordinates,
                        "avg_speed": {"type": "float"},
                        "max_speed": {"type": "float"},
                        "avg_power": {"type": "integer"},
                        "max_power": {"type": "float"},
                        "avg_cadence": {"type": "integer"},
                        "avg_heart_rate": {"type": "integer"},
                        "trigger": {"type": "keyword"},
                    }
                }
            },
            DataType.RECORD: {
                "settings": {"number_of_shards": 1, "refresh_interval": "5s"},
                "mappings": {
                    "properties": {
                        "activity_id": {"type": "keyword"},
                        "lap_id": {"type": "keyword"},
                        "lap_index": {"type": "integer"},
                        "time": {"type": "date"},
                        "elapsed_time": {"type": "float"},
                        "timer_time": {"type": "float"},
                        "distance": {"type": "float"},
                        "speed": {"type": "float"},
                        "latitude": coordinates,
                        "longitude": coordinates,
                        "altitude": {"type": "float"},
                        "power": {"type": "integer"},
                        "cadence": {"type": "integer"},
                        "heart_rate": {"type": "integer"},
                        "temperature": {"type": "float"},
                        "record_type": {"type": "keyword"},
                        "data_quality": {"type": "integer"},
                    }
                },
            },
        }
