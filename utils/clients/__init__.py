# Clients subpackage - External API clients and collaborator adapters
from .anthropic import call_anthropic_api_with_retry, get_anthropic_client
from .gemini import call_gemini_api_with_retry
from .metrics import BaseMetrics, CloudWatchMetrics, LoggingMetrics, create_metrics
from .openai import call_openai_api_with_retry, get_openai_client
from .records import (
    BaseRecordStore,
    InMemoryRecordStore,
    RecordStoreError,
    SupabaseRecordStore,
    create_record_store,
)
from .storage import S3Storage, StorageError

__all__ = [
    "call_anthropic_api_with_retry",
    "get_anthropic_client",
    "call_gemini_api_with_retry",
    "call_openai_api_with_retry",
    "get_openai_client",
    "BaseMetrics",
    "CloudWatchMetrics",
    "LoggingMetrics",
    "create_metrics",
    "BaseRecordStore",
    "InMemoryRecordStore",
    "RecordStoreError",
    "SupabaseRecordStore",
    "create_record_store",
    "S3Storage",
    "StorageError",
]
