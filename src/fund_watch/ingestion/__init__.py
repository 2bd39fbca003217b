"""Fund page ingestion: client, extractor, and storage."""

from fund_watch.ingestion.client import PageClient, PageResponse
from fund_watch.ingestion.extractor import PageExtractor
from fund_watch.ingestion.store import SqliteStore, StorageProtocol, create_store

__all__ = [
    "PageClient",
    "PageResponse",
    "PageExtractor",
    "SqliteStore",
    "StorageProtocol",
    "create_store",
]
