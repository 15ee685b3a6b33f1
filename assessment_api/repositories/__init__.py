from __future__ import annotations

from assessment_api.repositories.base import AttemptStore, CatalogReader, Page, ResponseStore
from assessment_api.repositories.sql import SqlAttemptStore, SqlCatalogReader, SqlResponseStore

__all__ = [
    "AttemptStore",
    "CatalogReader",
    "Page",
    "ResponseStore",
    "SqlAttemptStore",
    "SqlCatalogReader",
    "SqlResponseStore",
]
