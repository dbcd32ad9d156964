"""
Catalog access - the record store and its canonical accessors.
"""

from .records import CatalogRef, display_name, storage_locator, to_ref
from .store import CatalogStore

__all__ = ["CatalogRef", "CatalogStore", "display_name", "storage_locator", "to_ref"]
