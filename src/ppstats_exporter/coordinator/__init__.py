from .policy import RetryPolicy, default_retry_classifier
from .schema_sync import SYSTEM_DATASET_ID, SchemaEvent, SchemaEventKind, SchemaSynchronizer

__all__ = [
    "RetryPolicy",
    "default_retry_classifier",
    "SYSTEM_DATASET_ID",
    "SchemaEvent",
    "SchemaEventKind",
    "SchemaSynchronizer",
]
