"""
Database Package

Provides SQLAlchemy async session management, model definitions, the catalog
repository and the pgvector-backed vector store.
"""

from .session import async_engine, AsyncSessionLocal, init_models
from .models import Base, CatalogItem, ItemEmbedding
from .catalog_repository import CatalogRepository, DuplicateItemError
from .vector_store import VectorStore, VectorHit

__all__ = [
    "async_engine",
    "AsyncSessionLocal",
    "init_models",
    "Base",
    "CatalogItem",
    "ItemEmbedding",
    "CatalogRepository",
    "DuplicateItemError",
    "VectorStore",
    "VectorHit",
]
