import itertools
import json
import threading
from typing import Any, Dict, List, Optional, Tuple
from certdb.errors import CorruptRecord, DuplicateKey
from certdb.kv.stores.base import CasMismatch, Document, DocumentStore, unexpired


class MemoryStore(DocumentStore):
    """
    In-process document store with CAS semantics.

    Documents are held as JSON text so callers never share mutable state
    with the store. Every write bumps a store-wide CAS counter.
    """
    name = "memory"

    def __init__(self):
        self.docs: Dict[str, Tuple[str, int]] = {}
        self._lock = threading.Lock()
        self._cas = itertools.count(1)

    def _load(self, key: str, raw: str) -> Document:
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise CorruptRecord(f"document {key!r} is not valid JSON") from exc

    def get(self, key: str) -> Optional[Tuple[Document, Any]]:
        with self._lock:
            entry = self.docs.get(key)
        if entry is None:
            return None
        raw, cas = entry
        return self._load(key, raw), cas

    def insert(self, key: str, doc: Document) -> None:
        raw = json.dumps(doc)
        with self._lock:
            if key in self.docs:
                raise DuplicateKey(f"document {key!r} already exists")
            self.docs[key] = (raw, next(self._cas))

    def replace(self, key: str, doc: Document, cas: Any) -> None:
        raw = json.dumps(doc)
        with self._lock:
            entry = self.docs.get(key)
            if entry is None or entry[1] != cas:
                raise CasMismatch(key)
            self.docs[key] = (raw, next(self._cas))

    def upsert(self, key: str, doc: Document) -> None:
        raw = json.dumps(doc)
        with self._lock:
            self.docs[key] = (raw, next(self._cas))

    def scan(self, doc_type: str, prefix: str, now_ms: int) -> List[Document]:
        with self._lock:
            snapshot = [(k, raw) for k, (raw, _) in self.docs.items() if k.startswith(prefix)]
        out = []
        for key, raw in snapshot:
            doc = self._load(key, raw)
            if unexpired(doc, doc_type, now_ms, key):
                out.append(doc)
        return out
