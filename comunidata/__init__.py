"""
ComuniData ingestion pipeline.

Normalizes uploaded citizen-report CSV files, validates them with a
bias/category classification service, embeds them for semantic retrieval,
and persists the enriched reports.
"""

__version__ = "0.1.0"
