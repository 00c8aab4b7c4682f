"""
Storage backends for activities and raw files.
"""

from .interface import ActivityStore, BlobStorage, DataType
from .elasticsearch import ElasticsearchActivityStore, activity_document_id
from .blob import LocalBlobStorage, generate_fit_file_path

__all__ = [
    'ActivityStore',
    'BlobStorage',
    'DataType',
    'ElasticsearchActivityStore',
    'activity_document_id',
    'LocalBlobStorage',
    'generate_fit_file_path',
]
