"""Reusable FastAPI dependencies for storage access."""
from dataclasses import dataclass

from fastapi import Query

from .database import get_db
from .uploads import BlobStore, LocalBlobStore

__all__ = ["Pagination", "get_blob_store", "get_db", "pagination"]


@dataclass
class Pagination:
    page: int
    limit: int


def pagination(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> Pagination:
    return Pagination(page=page, limit=limit)


def get_blob_store() -> BlobStore:
    return LocalBlobStore()
