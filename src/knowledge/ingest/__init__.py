"""
Ingestion for the knowledge module.

Source enumeration and the concurrent embed-and-store pipeline.
"""

from .sources import (
    SourceType,
    SourceSpec,
    matches_file_types,
    walk_files,
    read_text_file,
    fetch_url,
    iter_jobs,
)
from .pipeline import (
    PipelineConfig,
    IngestReport,
    IngestionPipeline,
    ingest,
)

__all__ = [
    "SourceType",
    "SourceSpec",
    "matches_file_types",
    "walk_files",
    "read_text_file",
    "fetch_url",
    "iter_jobs",
    "PipelineConfig",
    "IngestReport",
    "IngestionPipeline",
    "ingest",
]
