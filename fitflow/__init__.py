"""
FitFlow - FIT activity ingestion pipeline.

Decodes FIT files, validates and normalizes their samples, and stores
activities, laps and records in Elasticsearch.
"""

__version__ = "0.1.0"
