"""Object store adapters for uploadgate."""

from uploadgate.storage.backend import MultipartStore, StoreError, call_store

__all__ = ["MultipartStore", "StoreError", "call_store"]
