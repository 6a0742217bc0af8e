# certdb/kv/stores/__init__.py
from certdb.config import KVConfig
from certdb.kv.stores.base import CasMismatch, DocumentStore
from certdb.kv.stores.memory_store import MemoryStore


def open_store(cfg: KVConfig) -> DocumentStore:
    """
    Pick the document store for a KV configuration.

    Client libraries are imported only for the store actually selected.
    """
    store = cfg.store

    if store == "couchbase":
        from certdb.kv.stores.couchbase_store import CouchbaseStore
        return CouchbaseStore(cfg)

    if store == "consul":
        from certdb.kv.stores.consul_store import ConsulStore
        return ConsulStore(cfg)

    return MemoryStore()


__all__ = ["CasMismatch", "DocumentStore", "MemoryStore", "open_store"]
