"""Application wiring for the capability catalog."""
from __future__ import annotations

from functools import lru_cache

from ..catalog import CatalogService
from ..catalog.repository import PostgresCatalogRepository


@lru_cache(maxsize=1)
def get_catalog_repository() -> PostgresCatalogRepository:
    return PostgresCatalogRepository()


@lru_cache(maxsize=1)
def get_catalog_service() -> CatalogService:
    return CatalogService(repository=get_catalog_repository())


__all__ = ["get_catalog_repository", "get_catalog_service"]
