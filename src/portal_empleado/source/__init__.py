from .receipts import ReceiptSource, build_candidate_keys, build_object_store
from .transport import MISSING, ObjectMetadata, ObjectStore, StoredObject

__all__ = [
    "ReceiptSource",
    "build_candidate_keys",
    "build_object_store",
    "MISSING",
    "ObjectMetadata",
    "ObjectStore",
    "StoredObject",
]
