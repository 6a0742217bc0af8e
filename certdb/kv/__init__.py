# certdb/kv/__init__.py
from certdb.config import KVConfig
from certdb.kv.accessor import KVAccessor
from certdb.kv.stores import DocumentStore, MemoryStore, open_store


def kv_accessor(cfg: KVConfig) -> KVAccessor:
    return KVAccessor(
        open_store(cfg),
        prefix=cfg.prefix,
        key_scheme=cfg.key_scheme,
        cas_retries=cfg.cas_retries,
    )


__all__ = ["DocumentStore", "KVAccessor", "MemoryStore", "kv_accessor"]
