from __future__ import annotations
from typing import Any, Dict, List, Optional, Tuple
from certdb.errors import CorruptRecord
from certdb.utils import parse_rfc3339, to_millis

Document = Dict[str, Any]


class CasMismatch(Exception):
    """The stored document changed (or vanished) since the CAS token was read."""


class DocumentStore:
    """
    Minimal document-store surface the KV accessor needs.

    `get` returns the decoded document together with an opaque CAS token;
    the token is handed back unchanged to `replace`. Stores raise
    DuplicateKey from `insert`, CasMismatch from `replace`, and
    BackendUnavailable for any client or transport failure.
    """
    name: str = "base"

    def get(self, key: str) -> Optional[Tuple[Document, Any]]:
        raise NotImplementedError

    def insert(self, key: str, doc: Document) -> None:
        raise NotImplementedError

    def replace(self, key: str, doc: Document, cas: Any) -> None:
        raise NotImplementedError

    def upsert(self, key: str, doc: Document) -> None:
        raise NotImplementedError

    def scan(self, doc_type: str, prefix: str, now_ms: int) -> List[Document]:
        """All documents of `doc_type` under `prefix` whose record.expiry is after now_ms."""
        raise NotImplementedError

    def close(self) -> None:
        return


def unexpired(doc: Any, doc_type: str, now_ms: int, key: str = "") -> bool:
    # Client-side equivalent of the Couchbase scan predicate
    if not isinstance(doc, dict) or doc.get("type") != doc_type:
        return False
    record = doc.get("record")
    try:
        expiry = parse_rfc3339(record.get("expiry")) if isinstance(record, dict) else None
    except ValueError as exc:
        raise CorruptRecord(f"document {key!r} has an unreadable expiry") from exc
    if expiry is None:
        raise CorruptRecord(f"document {key!r} has no expiry")
    return to_millis(expiry) > now_ms
