from .base_processor import BaseProcessor
from .csv_normalizer import (
    CSVNormalizer,
    DatasetSchema,
    FailedRow,
    NormalizationResult,
    NormalizedRecord,
    SDV_DATA_SCHEMA,
    SITE_DATA_ENTRY_SCHEMA,
    build_merge_key,
    schema_for,
)


def get_normalizer(job_type, **kwargs) -> CSVNormalizer:
    """Normalizer for the export kind an upload job carries."""
    return CSVNormalizer(schema_for(job_type), **kwargs)


__all__ = [
    "BaseProcessor",
    "CSVNormalizer",
    "DatasetSchema",
    "FailedRow",
    "NormalizationResult",
    "NormalizedRecord",
    "SDV_DATA_SCHEMA",
    "SITE_DATA_ENTRY_SCHEMA",
    "build_merge_key",
    "get_normalizer",
    "schema_for",
]
